"""Filtered search over paginated collections.

``SearchEngine`` composes a :class:`~zentaobugs.pagination.PageWalker` with
the filter pipeline. Three consumers share the same lazy stream:

- ``first_match`` stops at the first hit (at most the pages up to that hit
  are fetched)
- ``take`` collects up to ``limit`` hits and stops as soon as it has them
- ``count_all`` drains the stream to produce an exact filtered total

``count_all`` is the only one that walks the whole collection. The remote
total is only trusted when no filter narrows the set; see
:meth:`SearchEngine.count_all`.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing

from .errors import InvalidInput
from .filters import matches
from .logging import get_logger
from .models import CollectionRef, Record, SearchOptions
from .pagination import DEFAULT_MAX_PAGES, DEFAULT_PAGE_SIZE, CollectionSource, PageWalker


class SearchEngine:
    def __init__(
        self,
        source: CollectionSource,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
    ) -> None:
        self.source = source
        self.page_size = page_size
        self.max_pages = max_pages
        self.last_walker: PageWalker | None = None
        self._logger = get_logger()

    def walker(self, ref: CollectionRef) -> PageWalker:
        walker = PageWalker(
            self.source, ref, page_size=self.page_size, max_pages=self.max_pages
        )
        self.last_walker = walker
        return walker

    async def matching(self, ref: CollectionRef, options: SearchOptions) -> AsyncIterator[Record]:
        """Yield records of ``ref`` accepted by ``options``, fetching pages on demand."""
        async with aclosing(self.walker(ref).records()) as records:
            async for record in records:
                if matches(record, options):
                    yield record

    async def first_match(self, ref: CollectionRef, options: SearchOptions) -> Record | None:
        async with aclosing(self.matching(ref, options)) as stream:
            async for record in stream:
                return record
        return None

    async def take(
        self, ref: CollectionRef, options: SearchOptions, limit: int | None = None
    ) -> list[Record]:
        limit = options.limit if limit is None else limit
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
            raise InvalidInput(f"limit must be a non-negative integer, got {limit!r}")
        found: list[Record] = []
        if limit == 0:
            return found
        async with aclosing(self.matching(ref, options)) as stream:
            async for record in stream:
                found.append(record)
                if len(found) >= limit:
                    break
        return found

    async def count_all(self, ref: CollectionRef, options: SearchOptions) -> int:
        """Exact number of records in ``ref`` accepted by ``options``.

        Walks to the end of the collection (bounded by ``max_pages``; a
        collection longer than that is under-counted). When the options do
        not filter anything and page 1 carried a total, that total is
        returned after a single fetch.
        """
        walker = self.walker(ref)
        count = 0
        async with aclosing(walker.records()) as records:
            async for record in records:
                if options.is_unfiltered and walker.reported_total is not None:
                    self._logger.debug(
                        "unfiltered count uses reported total",
                        path=ref.path,
                        total=walker.reported_total,
                    )
                    return walker.reported_total
                if matches(record, options):
                    count += 1
        self._logger.debug(
            "filtered count complete",
            path=ref.path,
            total=count,
            pages=walker.pages_fetched,
            stop_reason=walker.stop_reason.value if walker.stop_reason else None,
        )
        return count


__all__ = ["SearchEngine"]
