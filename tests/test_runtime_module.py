from __future__ import annotations

import argparse
import io
import json

import pytest

from zentaobugs.config import ZenTaoConfig
from zentaobugs.errors import ConfigError
from zentaobugs.logging import configure_logging
from zentaobugs.runtime import execute_command, prepare_config


def _loader(path: str | None) -> ZenTaoConfig:
    return ZenTaoConfig(base_url="http://zt", account="me", password="pw")


def test_prepare_config_skips_check_env() -> None:
    args = argparse.Namespace(cmd="check-env", config=None)
    assert prepare_config(args, loader=_loader) is None


def test_prepare_config_applies_overrides() -> None:
    args = argparse.Namespace(
        cmd="bugs", config=None, page_size=25, max_pages=3, task_timeout=0.0
    )
    cfg = prepare_config(args, loader=_loader)
    assert cfg is not None
    assert (cfg.page_size, cfg.max_pages, cfg.task_timeout) == (25, 3, None)


def test_prepare_config_keeps_defaults_without_overrides() -> None:
    cfg = prepare_config(argparse.Namespace(cmd="detail", config=None), loader=_loader)
    assert cfg is not None
    assert (cfg.page_size, cfg.max_pages) == (100, 20)


@pytest.mark.parametrize("field", ["page_size", "max_pages"])
def test_prepare_config_rejects_non_positive(field: str) -> None:
    args = argparse.Namespace(cmd="bugs", config=None, **{field: 0})
    with pytest.raises(ConfigError):
        prepare_config(args, loader=_loader)


def test_prepare_config_requires_config_attribute() -> None:
    with pytest.raises(AttributeError):
        prepare_config(argparse.Namespace(cmd="bugs"), loader=_loader)


def test_execute_command_logs_performance() -> None:
    stream = io.StringIO()
    configure_logging(json_logging=True, stream=stream)
    assert execute_command(lambda: 0, argparse.Namespace(), "next") == 0
    entry = json.loads(stream.getvalue().splitlines()[-1])
    assert entry["operation"] == "command_next"
    assert entry["exit_code"] == 0


def test_execute_command_reraises() -> None:
    stream = io.StringIO()
    configure_logging(json_logging=True, stream=stream)

    def boom() -> int:
        raise RuntimeError("kaput")

    with pytest.raises(RuntimeError):
        execute_command(boom, argparse.Namespace(), "stats")
    assert "command stats failed" in stream.getvalue()
