from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

ACTIVE_STATUS_CODES = frozenset({"active", "激活"})


@dataclass(frozen=True)
class StatusCode:
    """Normalized record status.

    ZenTao reports status either as a plain code (``"active"``) or as an
    object (``{"code": "active", "name": "激活"}``). Everything that compares
    statuses goes through :func:`normalize_status` so both shapes behave the
    same.
    """

    code: str
    name: str | None = None

    @property
    def is_active(self) -> bool:
        return self.code in ACTIVE_STATUS_CODES

    @property
    def label(self) -> str:
        return self.name or self.code


def normalize_status(value: Any) -> StatusCode | None:
    if isinstance(value, StatusCode):
        return value
    if isinstance(value, str):
        code = value.strip().lower()
        return StatusCode(code) if code else None
    if isinstance(value, Mapping):
        raw_code = value.get("code")
        raw_name = value.get("name")
        name = str(raw_name).strip() if raw_name not in (None, "") else None
        if raw_code not in (None, ""):
            return StatusCode(str(raw_code).strip().lower(), name)
        if name:
            return StatusCode(name.lower(), name)
    return None


def normalize_account(value: Any) -> str | None:
    """Extract the account name from an assignee (string or user object)."""
    if isinstance(value, str):
        account = value.strip()
        return account or None
    if isinstance(value, Mapping):
        account = value.get("account")
        if isinstance(account, str) and account.strip():
            return account.strip()
    return None


def display_user(value: Any) -> str | None:
    if isinstance(value, Mapping):
        realname = value.get("realname")
        if isinstance(realname, str) and realname.strip():
            return realname.strip()
    return normalize_account(value)


def _coerce_id(value: Any) -> int | str:
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return value
    text = str(value).strip()
    return int(text) if text.isdigit() else text


@dataclass(frozen=True)
class Record:
    """An item read from a paginated ZenTao collection."""

    id: int | str
    title: str
    status: StatusCode | None = None
    assigned_to: str | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def status_code(self) -> str | None:
        return self.status.code if self.status else None


@dataclass(frozen=True)
class Bug(Record):
    severity: Any = None

    @classmethod
    def from_api(cls, raw: Mapping[str, Any]) -> Bug:
        return cls(
            id=_coerce_id(raw.get("id")),
            title=str(raw.get("title") or ""),
            status=normalize_status(raw.get("status")),
            assigned_to=normalize_account(raw.get("assignedTo")),
            raw=raw,
            severity=raw.get("severity"),
        )


@dataclass(frozen=True)
class Product(Record):
    @classmethod
    def from_api(cls, raw: Mapping[str, Any]) -> Product:
        return cls(
            id=_coerce_id(raw.get("id")),
            title=str(raw.get("name") or ""),
            status=normalize_status(raw.get("status")),
            assigned_to=None,
            raw=raw,
        )

    @property
    def name(self) -> str:
        return self.title


@dataclass(frozen=True)
class Page:
    records: tuple[Record, ...]
    requested_page: int
    page_size: int
    served_page: int | None = None
    reported_total: int | None = None

    @property
    def page_mismatch(self) -> bool:
        return self.served_page is not None and self.served_page != self.requested_page

    @property
    def is_short(self) -> bool:
        return len(self.records) < self.page_size


@dataclass(frozen=True)
class SearchOptions:
    """Per-operation filter settings; built once and never mutated."""

    keyword: str = ""
    all_statuses: bool = False
    assigned_to: str | None = None
    limit: int = 10

    @property
    def is_unfiltered(self) -> bool:
        return self.all_statuses and not (self.keyword or "").strip() and not self.assigned_to


@dataclass(frozen=True)
class CollectionRef:
    """Which ZenTao collection to page through and how to read its payload."""

    path: str
    result_key: str
    factory: Callable[[Mapping[str, Any]], Record]
    query: tuple[tuple[str, str], ...] = ()

    def params(self) -> dict[str, str]:
        return dict(self.query)


def products() -> CollectionRef:
    return CollectionRef(path="/products", result_key="products", factory=Product.from_api)


def product_bugs(product_id: int, *, active_hint: bool = False) -> CollectionRef:
    # the status query is only a hint; client-side filtering still applies
    query = (("status", "active"),) if active_hint else ()
    return CollectionRef(
        path=f"/products/{product_id}/bugs",
        result_key="bugs",
        factory=Bug.from_api,
        query=query,
    )


__all__ = [
    "ACTIVE_STATUS_CODES",
    "StatusCode",
    "normalize_status",
    "normalize_account",
    "display_user",
    "Record",
    "Bug",
    "Product",
    "Page",
    "SearchOptions",
    "CollectionRef",
    "products",
    "product_bugs",
]
