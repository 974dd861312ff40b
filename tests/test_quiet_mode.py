from __future__ import annotations

import pytest
from fakes import ME, FakeZenTao, bug_row

from zentaobugs import cli
from zentaobugs.core import ZenTaoBugs


@pytest.fixture(autouse=True)
def _service(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ZENTAO_BASE_URL", "http://zt.local")
    monkeypatch.setenv("ZENTAO_ACCOUNT", ME)
    monkeypatch.setenv("ZENTAO_PASSWORD", "pw")
    backend = FakeZenTao({"/products/1/bugs": [bug_row(1)]})
    monkeypatch.setattr(cli, "build_service", lambda cfg: ZenTaoBugs(cfg, backend=backend))


def test_operation_logs_by_default(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["next", "--product-id", "1"]) == 0
    assert "Operation: get_next_bug" in capsys.readouterr().err


def test_quiet_flag_suppresses_info_logs(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["--quiet", "next", "--product-id", "1"]) == 0
    captured = capsys.readouterr()
    assert "Operation:" not in captured.err
    assert '"id": 1' in captured.out


def test_quiet_env_var(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setenv("ZENTAOBUGS_QUIET", "1")
    assert cli.main(["next", "--product-id", "1"]) == 0
    assert "Operation:" not in capsys.readouterr().err
