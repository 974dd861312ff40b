"""Lazy page walking over ZenTao collections.

A walk requests page 1, 2, ... in order and yields each page's records
before asking for the next one, so a consumer that stops early never causes
another fetch. A walk ends when any of these is observed:

- the page is empty
- the page holds fewer records than were requested
- the server echoes a different page number than the one requested (ZenTao
  clamps out-of-range pages instead of returning nothing)
- ``max_pages`` pages have been fetched

A fetch failure on page 1 propagates. A failure on any later page ends the
walk at the last good page (``StopReason.TRUNCATED``).
"""

from __future__ import annotations

import enum
from collections.abc import AsyncIterator
from typing import Protocol

from .errors import InvalidInput, TransportFailure
from .logging import get_logger
from .models import CollectionRef, Page, Record

DEFAULT_PAGE_SIZE = 100
DEFAULT_MAX_PAGES = 20


class CollectionSource(Protocol):
    async def fetch_page(self, ref: CollectionRef, page: int, page_size: int) -> Page: ...


class StopReason(str, enum.Enum):
    EMPTY = "empty"
    SHORT_PAGE = "short_page"
    PAGE_MISMATCH = "page_mismatch"
    MAX_PAGES = "max_pages"
    TRUNCATED = "truncated"


class PageWalker:
    """One traversal of one collection.

    The walker owns its cursor; create a new one per walk. After iteration
    ``pages_fetched``, ``stop_reason`` and ``reported_total`` describe what
    happened.
    """

    def __init__(
        self,
        source: CollectionSource,
        ref: CollectionRef,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
    ) -> None:
        if page_size < 1:
            raise InvalidInput(f"page_size must be >= 1, got {page_size}")
        if max_pages < 1:
            raise InvalidInput(f"max_pages must be >= 1, got {max_pages}")
        self.source = source
        self.ref = ref
        self.page_size = page_size
        self.max_pages = max_pages
        self.pages_fetched = 0
        self.stop_reason: StopReason | None = None
        self.reported_total: int | None = None
        self._started = False
        self._logger = get_logger()

    async def pages(self) -> AsyncIterator[Page]:
        if self._started:
            raise RuntimeError("PageWalker instances walk once; create a new walker")
        self._started = True
        page_number = 1
        while True:
            try:
                page = await self.source.fetch_page(self.ref, page_number, self.page_size)
            except TransportFailure as exc:
                if page_number == 1:
                    raise
                self._logger.warning(
                    "walk truncated after fetch failure",
                    path=self.ref.path,
                    page=page_number,
                    error=str(exc),
                )
                self.stop_reason = StopReason.TRUNCATED
                return
            self.pages_fetched += 1
            if page_number == 1:
                self.reported_total = page.reported_total
            self._logger.log_page_fetch(self.ref.path, page_number, len(page.records))

            if page.page_mismatch:
                # clamped request: the records belong to a page already walked
                self._logger.debug(
                    "served page differs from requested page; treating as end",
                    path=self.ref.path,
                    requested=page_number,
                    served=page.served_page,
                )
                self.stop_reason = StopReason.PAGE_MISMATCH
                return
            if not page.records:
                self.stop_reason = StopReason.EMPTY
                return

            yield page

            if page.is_short:
                self.stop_reason = StopReason.SHORT_PAGE
                return
            if page_number >= self.max_pages:
                self._logger.debug(
                    "max_pages reached before collection end",
                    path=self.ref.path,
                    max_pages=self.max_pages,
                )
                self.stop_reason = StopReason.MAX_PAGES
                return
            page_number += 1

    async def records(self) -> AsyncIterator[Record]:
        async for page in self.pages():
            for record in page.records:
                yield record


def walk(
    source: CollectionSource,
    ref: CollectionRef,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_pages: int = DEFAULT_MAX_PAGES,
) -> AsyncIterator[Record]:
    return PageWalker(source, ref, page_size=page_size, max_pages=max_pages).records()


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "DEFAULT_MAX_PAGES",
    "CollectionSource",
    "StopReason",
    "PageWalker",
    "walk",
]
