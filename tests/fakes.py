"""In-memory stand-in for the ZenTao API used across the test suite."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from typing import Any

from zentaobugs.errors import TransportFailure
from zentaobugs.models import CollectionRef, Page

ME = "me"


def bug_row(
    bug_id: int,
    title: str = "bug",
    *,
    status: Any = "active",
    assigned: Any = ME,
    severity: int = 3,
) -> dict[str, Any]:
    return {
        "id": bug_id,
        "title": title,
        "status": status,
        "assignedTo": assigned,
        "severity": severity,
    }


def product_row(product_id: int, name: str) -> dict[str, Any]:
    return {"id": product_id, "name": name, "status": "normal"}


class FakeZenTao:
    """Serves pages out of plain lists, clamping out-of-range pages to page 1."""

    def __init__(
        self,
        collections: dict[str, list[dict[str, Any]]] | None = None,
        *,
        details: dict[int, dict[str, Any]] | None = None,
        fail_pages: Iterable[int] = (),
        report_total: bool = True,
        echo_page: bool = True,
        latency: float = 0.0,
    ) -> None:
        self.collections = collections or {}
        self.details = details or {}
        self.fail_pages = set(fail_pages)
        self.report_total = report_total
        self.echo_page = echo_page
        self.latency = latency
        self.calls: list[tuple[Any, ...]] = []
        self.resolved: list[tuple[int, str]] = []
        self.token = ""

    @property
    def page_fetches(self) -> int:
        return sum(1 for call in self.calls if call[0] == "page")

    def requested_pages(self, path: str | None = None) -> list[int]:
        return [c[2] for c in self.calls if c[0] == "page" and (path is None or c[1] == path)]

    async def login(self) -> str:
        self.calls.append(("login",))
        self.token = "tkn"
        return self.token

    async def fetch_page(self, ref: CollectionRef, page: int, page_size: int) -> Page:
        self.calls.append(("page", ref.path, page, dict(ref.query)))
        if self.latency:
            await asyncio.sleep(self.latency)
        if page in self.fail_pages:
            raise TransportFailure(f"page {page} unavailable", status=500)
        rows = self.collections.get(ref.path, [])
        chunks = [rows[i : i + page_size] for i in range(0, len(rows), page_size)]
        served = page
        if page > len(chunks):
            served = 1
            chunk = chunks[0] if chunks else []
        else:
            chunk = chunks[page - 1]
        return Page(
            records=tuple(ref.factory(row) for row in chunk),
            requested_page=page,
            page_size=page_size,
            served_page=served if self.echo_page else None,
            reported_total=len(rows) if self.report_total else None,
        )

    async def fetch_detail(self, path: str, item_id: int | str) -> dict[str, Any]:
        self.calls.append(("detail", path, item_id))
        if self.latency:
            await asyncio.sleep(self.latency)
        detail = self.details.get(int(item_id))
        if detail is None:
            raise TransportFailure(f"GET {path}/{item_id} failed with 404", status=404)
        return detail

    async def resolve_bug(self, bug_id: int, comment: str = "") -> dict[str, Any]:
        self.calls.append(("resolve", bug_id, comment))
        self.resolved.append((bug_id, comment))
        return {"id": bug_id, "status": "resolved", "resolution": "fixed"}
