"""Error taxonomy & redaction helpers.

Every failure a caller can observe is one of the classes below. A walk that
finds nothing is *not* an error: search helpers return ``None`` or an empty
list for that case, so callers can tell "no match" from "something broke".

Public API:
- ZenTaoError and its subclasses
- classify_error(exc) -> ErrorInfo
- redact(text) -> str
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"(?i)(\"?token\"?\s*[:=]\s*\"?)([A-Za-z0-9._\-]{8,})"),
    re.compile(r"(?i)(\"?password\"?\s*[:=]\s*\"?)([^\s\",}]+)"),
]

_REDACTION_PLACEHOLDER = "<redacted>"

HTTP_UNAUTHORIZED = 401
HTTP_NOT_FOUND = 404
HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500
TRANSIENT_STATUSES = frozenset({429, 502, 503, 504})


class ZenTaoError(RuntimeError):
    """Base class for every error raised by zentaobugs."""


class TransportFailure(ZenTaoError):
    """Raised when the ZenTao API cannot be reached or answers with an error."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        response_text: str | None = None,
        transient: bool | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.response_text = response_text
        if transient is None:
            transient = status in TRANSIENT_STATUSES
        self.transient = transient
        self.retry_after = retry_after


class AuthenticationError(TransportFailure):
    """Login was rejected or the session token is no longer accepted."""


class InvalidInput(ZenTaoError):
    """Malformed identifiers or options, rejected before any network call."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.details = details or {}


class TaskTimeout(ZenTaoError):
    """A queued task ran longer than the configured per-task timeout."""


class ConfigError(ZenTaoError):
    pass


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "category": self.category}
        if self.details:
            payload["details"] = self.details
        return payload


def redact(text: str) -> str:
    """Mask token and password values in arbitrary text."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        redacted = pat.sub(lambda m: m.group(1) + _REDACTION_PLACEHOLDER, redacted)
    return redacted


def _classify_transport(exc: TransportFailure) -> str:
    if isinstance(exc, AuthenticationError) or exc.status == HTTP_UNAUTHORIZED:
        return "zentao.auth"
    if exc.status == HTTP_NOT_FOUND:
        return "zentao.not_found"
    if exc.status == HTTP_TOO_MANY_REQUESTS:
        return "zentao.rate_limit"
    if exc.status is not None and exc.status >= HTTP_SERVER_ERROR:
        return "zentao.server"
    if exc.status is None and exc.transient:
        return "network"
    return "zentao.request"


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception.

    Typed errors map directly to a category; anything else falls back to
    keyword sniffing on the message (network / parse / generic).
    """
    msg = str(exc) if exc else ""
    name = exc.__class__.__name__

    if isinstance(exc, InvalidInput):
        return ErrorInfo("invalid_input", redact(msg), name, details=exc.details or None)
    if isinstance(exc, TaskTimeout):
        return ErrorInfo("timeout", redact(msg), name, transient=True)
    if isinstance(exc, ConfigError):
        return ErrorInfo("config", redact(msg), name)
    if isinstance(exc, TransportFailure):
        details = {"status": exc.status} if exc.status is not None else None
        return ErrorInfo(
            _classify_transport(exc), redact(msg), name, transient=exc.transient, details=details
        )

    low = msg.lower()
    if any(k in low for k in ("timeout", "timed out", "connection reset", "temporarily unavailable")):
        return ErrorInfo("network", redact(msg), name, transient=True)
    if any(k in low for k in ("json", "decode", "yaml")):
        return ErrorInfo("parse", redact(msg), name)
    return ErrorInfo("generic", redact(msg), name)


__all__ = [
    "ZenTaoError",
    "TransportFailure",
    "AuthenticationError",
    "InvalidInput",
    "TaskTimeout",
    "ConfigError",
    "ErrorInfo",
    "classify_error",
    "redact",
]
