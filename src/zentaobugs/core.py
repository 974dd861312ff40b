from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from types import TracebackType
from typing import Any, Protocol, TypeVar

from .concurrency import AsyncZenTaoClient, SingleFlightQueue
from .config import ZenTaoConfig, load_config
from .errors import InvalidInput
from .logging import configure_logging, get_logger
from .mapping_utils import summarize_bug, summarize_detail, summarize_product
from .models import CollectionRef, Record, SearchOptions, product_bugs, products
from .search import SearchEngine
from .zentao_rest import ZenTaoRestClient

T = TypeVar("T")

BUGS_PATH = "/bugs"
NO_BUG_MESSAGE = "No active bug assigned to you in this product"


class ZenTaoBackend(Protocol):
    async def login(self) -> str: ...

    async def fetch_page(self, ref: CollectionRef, page: int, page_size: int) -> Any: ...

    async def fetch_detail(self, path: str, item_id: int | str) -> dict[str, Any]: ...

    async def resolve_bug(self, bug_id: int, comment: str = "") -> dict[str, Any]: ...


def _require_id(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise InvalidInput(f"{name} must be a positive integer, got {value!r}")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
    else:
        raise InvalidInput(f"{name} must be a positive integer, got {value!r}")
    if number < 1:
        raise InvalidInput(f"{name} must be a positive integer, got {value!r}")
    return number


def _require_limit(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidInput(f"limit must be a non-negative integer, got {value!r}")
    return value


class ZenTaoBugs:
    """Application context for one authenticated ZenTao session.

    Owns the REST backend, the :class:`SingleFlightQueue` and the
    :class:`SearchEngine`. Every public coroutine runs as one queued task, so
    no two operations ever touch the shared token at the same time and
    results come back in submission order.

    Usage::

        async with ZenTaoBugs.from_config_path("zentao.yaml") as bugs:
            await bugs.connect()
            print(await bugs.get_next_bug(42))
    """

    def __init__(
        self,
        cfg: ZenTaoConfig,
        *,
        backend: ZenTaoBackend | None = None,
        queue: SingleFlightQueue | None = None,
    ) -> None:
        self.cfg = cfg
        self.logger = get_logger()
        if backend is None:
            client = ZenTaoRestClient(
                base_url=cfg.base_url,
                account=cfg.account,
                password=cfg.password,
                timeout=cfg.request_timeout,
            )
            backend = AsyncZenTaoClient(client)
        self.backend = backend
        self.queue = queue or SingleFlightQueue(task_timeout=cfg.task_timeout)
        self.engine = SearchEngine(backend, page_size=cfg.page_size, max_pages=cfg.max_pages)
        self.connected = False

    @classmethod
    def from_config_path(cls, path: str | Path | None = None) -> ZenTaoBugs:
        cfg = load_config(path)
        configure_logging(json_logging=cfg.logging_json_enabled, level=cfg.logging_level)
        return cls(cfg)

    async def __aenter__(self) -> ZenTaoBugs:
        enter = getattr(self.backend, "__aenter__", None)
        if enter is not None:
            await enter()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.queue.join()
        exit_ = getattr(self.backend, "__aexit__", None)
        if exit_ is not None:
            await exit_(exc_type, exc_val, exc_tb)

    @property
    def account(self) -> str:
        return self.cfg.account

    # ---- queue entry points -------------------------------------------
    def enqueue(self, factory: Callable[[], Awaitable[T]], *, name: str | None = None) -> asyncio.Future[T]:
        return self.queue.enqueue(factory, name=name)

    async def _submit(self, operation: str, factory: Callable[[], Awaitable[T]], **kw: Any) -> T:
        self.logger.log_operation(operation, **kw)
        return await self.queue.submit(factory, name=operation)

    async def first_match(self, ref: CollectionRef, options: SearchOptions) -> Record | None:
        return await self._submit(
            "first_match", lambda: self.engine.first_match(ref, options), path=ref.path
        )

    async def take(
        self, ref: CollectionRef, options: SearchOptions, limit: int | None = None
    ) -> list[Record]:
        return await self._submit(
            "take", lambda: self.engine.take(ref, options, limit), path=ref.path
        )

    async def count_all(self, ref: CollectionRef, options: SearchOptions) -> int:
        return await self._submit(
            "count_all", lambda: self.engine.count_all(ref, options), path=ref.path
        )

    # ---- session ------------------------------------------------------
    async def connect(self) -> str:
        async def _login() -> str:
            await self.backend.login()
            self.connected = True
            return self.account

        return await self._submit("login", _login, account=self.account)

    # ---- products -----------------------------------------------------
    async def search_products(self, keyword: str = "", limit: int | None = None) -> dict[str, Any]:
        async def _run() -> dict[str, Any]:
            size = _require_limit(self.cfg.product_search_limit if limit is None else limit)
            options = SearchOptions(keyword=keyword or "", all_statuses=True, limit=size)
            found = await self.engine.take(products(), options)
            items = [summarize_product(p) for p in found]
            return {"products": items, "count": len(items), "keyword": keyword or ""}

        return await self._submit("search_products", _run, keyword=keyword or "")

    async def _resolve_product(self, name: str) -> Record:
        candidates = await self.engine.take(
            products(),
            SearchOptions(keyword=name, all_statuses=True),
            self.cfg.product_search_limit,
        )
        exact = [p for p in candidates if p.title.strip().lower() == name.lower()]
        if len(exact) == 1:
            return exact[0]
        if len(candidates) == 1:
            return candidates[0]
        if not candidates:
            raise InvalidInput(f"No product matches {name!r}")
        raise InvalidInput(
            f"Product name {name!r} is ambiguous; pick one of the candidates",
            details={"candidates": [summarize_product(p) for p in candidates]},
        )

    # ---- bugs ---------------------------------------------------------
    def _mine(self, keyword: str | None, *, all_statuses: bool = False, limit: int = 10) -> SearchOptions:
        return SearchOptions(
            keyword=keyword or "", all_statuses=all_statuses, assigned_to=self.account, limit=limit
        )

    async def get_my_bugs(
        self,
        product_id: int,
        keyword: str | None = None,
        all_statuses: bool = False,
        limit: int | None = None,
    ) -> dict[str, Any]:
        async def _run() -> dict[str, Any]:
            pid = _require_id(product_id, "product_id")
            size = _require_limit(self.cfg.bug_list_limit if limit is None else limit)
            options = self._mine(keyword, all_statuses=all_statuses, limit=size)
            found = await self.engine.take(product_bugs(pid, active_hint=not all_statuses), options)
            bugs = [summarize_bug(b) for b in found]
            return {
                "bugs": bugs,
                "count": len(bugs),
                "assigned_to_me": True,
                "active_only": not all_statuses,
            }

        return await self._submit("get_my_bugs", _run, product_id=product_id)

    async def get_next_bug(self, product_id: int, keyword: str | None = None) -> dict[str, Any]:
        async def _run() -> dict[str, Any]:
            pid = _require_id(product_id, "product_id")
            bug = await self.engine.first_match(
                product_bugs(pid, active_hint=True), self._mine(keyword)
            )
            if bug is None:
                return {"bug": None, "message": NO_BUG_MESSAGE}
            return {"bug": summarize_bug(bug)}

        return await self._submit("get_next_bug", _run, product_id=product_id)

    async def get_my_bug(self, product_name: str, keyword: str | None = None) -> dict[str, Any]:
        async def _run() -> dict[str, Any]:
            name = (product_name or "").strip()
            if not name:
                raise InvalidInput("product_name is required")
            product = await self._resolve_product(name)
            pid = _require_id(product.id, "product_id")
            bug = await self.engine.first_match(
                product_bugs(pid, active_hint=True), self._mine(keyword)
            )
            summary = summarize_product(product)
            if bug is None:
                return {"product": summary, "bug": None, "message": NO_BUG_MESSAGE}
            detail = await self.backend.fetch_detail(BUGS_PATH, bug.id)
            return {"product": summary, "bug": summarize_detail(detail)}

        return await self._submit("get_my_bug", _run, product_name=product_name)

    async def get_bug_detail(self, bug_id: int) -> dict[str, Any]:
        async def _run() -> dict[str, Any]:
            bid = _require_id(bug_id, "bug_id")
            detail = await self.backend.fetch_detail(BUGS_PATH, bid)
            return {"bug": summarize_detail(detail)}

        return await self._submit("get_bug_detail", _run, bug_id=bug_id)

    async def mark_bug_resolved(self, bug_id: int, comment: str = "") -> dict[str, Any]:
        async def _run() -> dict[str, Any]:
            bid = _require_id(bug_id, "bug_id")
            result: Mapping[str, Any] = await self.backend.resolve_bug(bid, comment or "")
            self.logger.log_bug_action("resolve", bid, resolution="fixed")
            return {"bug": dict(result or {})}

        return await self._submit("mark_bug_resolved", _run, bug_id=bug_id)

    async def get_bug_stats(self, product_id: int, active_only: bool = True) -> dict[str, Any]:
        """Filtered total plus a short preview.

        Preview and total come from two separate walks; if the collection
        changes in between they may disagree.
        """

        async def _run() -> dict[str, Any]:
            pid = _require_id(product_id, "product_id")
            options = self._mine(None, all_statuses=not active_only)
            preview = await self.engine.take(
                product_bugs(pid, active_hint=active_only), options, self.cfg.stats_preview_size
            )
            total = await self.engine.count_all(
                product_bugs(pid, active_hint=active_only), options
            )
            return {
                "total": total,
                "has_more": total > len(preview),
                "preview": [summarize_bug(b) for b in preview],
                "assigned_to_me": True,
                "active_only": active_only,
                "product_id": pid,
            }

        return await self._submit("get_bug_stats", _run, product_id=product_id)

    async def search_product_bugs(
        self,
        keyword: str = "",
        bug_keyword: str = "",
        product_id: int | None = None,
        all_statuses: bool = False,
        limit: int | None = None,
    ) -> dict[str, Any]:
        """Product-then-bug search.

        With ``product_id`` the bugs of that product are listed directly.
        Otherwise products matching ``keyword`` are searched; a single hit
        lists its bugs, anything else returns the product list to choose from.
        """

        async def _bugs(pid: int, size: int) -> list[dict[str, Any]]:
            options = SearchOptions(keyword=bug_keyword or "", all_statuses=all_statuses, limit=size)
            found = await self.engine.take(product_bugs(pid, active_hint=not all_statuses), options)
            return [summarize_bug(b) for b in found]

        async def _run() -> dict[str, Any]:
            size = _require_limit(self.cfg.bug_list_limit if limit is None else limit)
            if product_id is not None:
                pid = _require_id(product_id, "product_id")
                return {"bugs": await _bugs(pid, size)}
            found = await self.engine.take(
                products(),
                SearchOptions(keyword=keyword or "", all_statuses=True),
                self.cfg.product_search_limit,
            )
            if len(found) == 1:
                product = found[0]
                pid = _require_id(product.id, "product_id")
                return {"product": summarize_product(product), "bugs": await _bugs(pid, size)}
            return {"products": [summarize_product(p) for p in found]}

        return await self._submit("search_product_bugs", _run, keyword=keyword or "")


__all__ = ["ZenTaoBackend", "ZenTaoBugs"]
