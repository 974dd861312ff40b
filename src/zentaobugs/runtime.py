"""Runtime helpers for zentaobugs CLI orchestration."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any, Protocol

from .config import ZenTaoConfig, load_config
from .errors import ConfigError
from .logging import get_logger


class _HandlerCallable(Protocol):
    def __call__(self) -> Any: ...


def prepare_config(
    args: Any, *, loader: Callable[[str | None], ZenTaoConfig] = load_config
) -> ZenTaoConfig | None:
    """Load ZenTaoConfig and apply command-line overrides."""
    if getattr(args, "cmd", None) == "check-env":
        return None
    if not hasattr(args, "config"):
        raise AttributeError("Command namespace is missing 'config' attribute")
    cfg = loader(args.config)
    page_size = getattr(args, "page_size", None)
    if page_size is not None:
        if page_size < 1:
            raise ConfigError(f"--page-size must be >= 1, got {page_size}")
        cfg.page_size = page_size
    max_pages = getattr(args, "max_pages", None)
    if max_pages is not None:
        if max_pages < 1:
            raise ConfigError(f"--max-pages must be >= 1, got {max_pages}")
        cfg.max_pages = max_pages
    task_timeout = getattr(args, "task_timeout", None)
    if task_timeout is not None:
        cfg.task_timeout = task_timeout if task_timeout > 0 else None
    return cfg


def execute_command(handler: _HandlerCallable, args: Any, command: str) -> int:
    """Execute a command handler, logging its duration and exit code."""
    logger = get_logger()
    start = time.monotonic()
    try:
        result = handler()
        exit_code = int(result) if result is not None else 0
    except Exception as exc:
        duration = max(0.0, time.monotonic() - start)
        logger.log_error(f"command {command} failed", error=str(exc), command=command)
        logger.log_performance(f"command_{command}", duration * 1000, exit_code=1)
        raise
    duration = max(0.0, time.monotonic() - start)
    logger.log_performance(f"command_{command}", duration * 1000, exit_code=exit_code)
    return exit_code


__all__ = ["prepare_config", "execute_command"]
