"""Centralized retry / backoff helpers.

``run_with_retries`` wraps a blocking call with exponential backoff plus
jitter. Only transient :class:`~zentaobugs.errors.TransportFailure` errors
(HTTP 429/502/503/504 and connection failures) are retried; everything else
propagates immediately.

Environment overrides:
  ZENTAO_RETRY_ATTEMPTS (default 3)
  ZENTAO_RETRY_BASE (seconds base, default 0.5)
  ZENTAO_RETRY_MAX_SLEEP (cap on any single sleep)
"""

from __future__ import annotations

import os
import random
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from .errors import TransportFailure
from .logging import get_logger

T = TypeVar("T")

_RE_RETRY_AFTER = re.compile(r"retry[-\s]after:?\s*(\d+)", re.IGNORECASE)
_JITTER = random.SystemRandom()


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        return default


def _extract_explicit_backoff(exc: TransportFailure) -> float | None:
    """Explicit backoff (seconds) from the error, if the server sent one.

    Uses the parsed ``Retry-After`` header when present, else looks for a
    ``retry after N`` hint in the response body. Returns None when absent.
    """
    if exc.retry_after is not None and exc.retry_after > 0:
        return exc.retry_after
    m = _RE_RETRY_AFTER.search(exc.response_text or "")
    if m:
        val = float(m.group(1))
        return val if val > 0 else None
    return None


@dataclass
class RetryConfig:
    attempts: int = field(default_factory=lambda: _env_int("ZENTAO_RETRY_ATTEMPTS", 3))
    base_sleep: float = field(default_factory=lambda: _env_float("ZENTAO_RETRY_BASE", 0.5))


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, TransportFailure) and exc.transient


def _compute_sleep(attempt: int, cfg: RetryConfig, exc: TransportFailure) -> float:
    explicit = _extract_explicit_backoff(exc)
    backoff = cfg.base_sleep * (2 ** (attempt - 1)) + _JITTER.uniform(0, 0.25)
    sleep_for: float = explicit if explicit is not None else backoff
    max_cap_env = os.environ.get("ZENTAO_RETRY_MAX_SLEEP")
    if max_cap_env:
        try:
            cap = float(max_cap_env)
        except ValueError:
            return sleep_for
        if cap >= 0:
            sleep_for = min(sleep_for, cap)
    return sleep_for


def run_with_retries(fn: Callable[[], T], *, cfg: RetryConfig | None = None) -> T:
    cfg = cfg or RetryConfig()
    attempts = max(1, cfg.attempts)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except TransportFailure as exc:
            if attempt >= attempts or not exc.transient:
                raise
            sleep_for = _compute_sleep(attempt, cfg, exc)
            get_logger().warning(
                f"[retry] transient error, attempt {attempt}/{attempts}, sleeping {sleep_for:.2f}s",
                error=str(exc),
            )
            time.sleep(sleep_for)
    raise RuntimeError("retry logic exited unexpectedly")  # pragma: no cover


__all__ = ["RetryConfig", "run_with_retries", "is_transient"]
