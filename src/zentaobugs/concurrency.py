"""Serialized execution against the shared ZenTao session.

Every ZenTao call made on behalf of a caller shares one token and one logical
session, and the server does not tolerate concurrent mutations under one
session. ``SingleFlightQueue`` therefore runs submitted tasks strictly one at
a time, in submission order. While a task awaits the network the event loop
stays free for other work; it just never starts a second task.

``AsyncZenTaoClient`` adapts the blocking :class:`ZenTaoRestClient` to the
async ``CollectionSource`` protocol by running each call in a worker thread.
"""

from __future__ import annotations

import asyncio
import functools
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Generic, TypeVar

from .errors import TaskTimeout
from .logging import get_logger
from .models import CollectionRef, Page
from .zentao_rest import ZenTaoRestClient

T = TypeVar("T")

DEFAULT_TASK_TIMEOUT = 120.0


@dataclass
class _QueuedTask(Generic[T]):
    factory: Callable[[], Awaitable[T]]
    future: asyncio.Future[T]
    name: str
    sequence: int


class SingleFlightQueue:
    """FIFO scheduler running at most one task at a time.

    States: idle (nothing running) and running (exactly one task in flight).
    ``enqueue`` appends to the backlog and starts the drain loop when idle;
    the loop delivers each task's outcome to its future before starting the
    next task. A failing task never cancels or skips the ones behind it.

    ``task_timeout`` bounds each task; on expiry the task's caller receives
    :class:`TaskTimeout` and the queue moves on. A blocking call already
    handed to a worker thread keeps running in that thread until it returns;
    with the single-worker executor of :class:`AsyncZenTaoClient` the next
    task's calls wait behind it.
    """

    def __init__(self, *, task_timeout: float | None = DEFAULT_TASK_TIMEOUT) -> None:
        self.task_timeout = task_timeout
        self._backlog: deque[_QueuedTask[Any]] = deque()
        self._running = False
        self._drainer: asyncio.Task[None] | None = None
        self._sequence = 0
        self.completed = 0
        self._logger = get_logger()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        return len(self._backlog)

    def enqueue(
        self, factory: Callable[[], Awaitable[T]], *, name: str | None = None
    ) -> asyncio.Future[T]:
        """Schedule ``factory()`` and return a future for its outcome.

        ``factory`` is only called when the task reaches the head of the
        queue, so no work (and no network traffic) starts early.
        """
        loop = asyncio.get_running_loop()
        self._sequence += 1
        future: asyncio.Future[T] = loop.create_future()
        task_name = name or getattr(factory, "__name__", "task")
        self._backlog.append(_QueuedTask(factory, future, task_name, self._sequence))
        if not self._running:
            self._running = True
            self._drainer = loop.create_task(self._drain())
        return future

    async def submit(self, factory: Callable[[], Awaitable[T]], *, name: str | None = None) -> T:
        return await self.enqueue(factory, name=name)

    async def join(self) -> None:
        """Wait until the backlog is empty and no task is running."""
        while self._drainer is not None and not self._drainer.done():
            await asyncio.shield(self._drainer)

    async def _drain(self) -> None:
        try:
            while self._backlog:
                item = self._backlog.popleft()
                if item.future.cancelled():
                    continue
                await self._run(item)
        except asyncio.CancelledError:
            while self._backlog:
                self._backlog.popleft().future.cancel()
            raise
        finally:
            self._running = False

    async def _run(self, item: _QueuedTask[Any]) -> None:
        self._logger.debug("task start", task=item.name, sequence=item.sequence)
        deadline: asyncio.Timeout | None = None
        try:
            if self.task_timeout is None:
                result = await item.factory()
            else:
                async with asyncio.timeout(self.task_timeout) as deadline:
                    result = await item.factory()
        except TimeoutError as exc:
            if deadline is None or not deadline.expired():
                # raised by the task itself, not by the queue deadline
                self._settle(item, exc=exc)
            else:
                self._logger.log_error(
                    "task timed out", task=item.name, timeout=self.task_timeout
                )
                self._settle(
                    item,
                    exc=TaskTimeout(f"task {item.name!r} exceeded {self.task_timeout}s"),
                )
        except asyncio.CancelledError:
            item.future.cancel()
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
        except Exception as exc:
            self._settle(item, exc=exc)
        else:
            self._settle(item, result=result)
        self.completed += 1

    @staticmethod
    def _settle(item: _QueuedTask[Any], *, result: Any = None, exc: BaseException | None = None) -> None:
        if item.future.done():
            return
        if exc is not None:
            item.future.set_exception(exc)
        else:
            item.future.set_result(result)


class AsyncZenTaoClient:
    """Async wrapper running the blocking REST client on one worker thread.

    The executor is created on first use when none is passed in, so calls
    stay on a single thread with or without the context manager.
    """

    def __init__(self, client: ZenTaoRestClient, executor: ThreadPoolExecutor | None = None):
        self.client = client
        self._executor = executor
        self._owns_executor = False

    def _ensure_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            # one worker: a call left running by a timed-out task holds back the next one
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="zentao")
            self._owns_executor = True
        return self._executor

    def __enter__(self) -> AsyncZenTaoClient:
        self._ensure_executor()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._owns_executor and self._executor:
            self._executor.shutdown(wait=False)
            self._executor = None
            self._owns_executor = False

    async def __aenter__(self) -> AsyncZenTaoClient:
        return self.__enter__()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)

    async def _call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._ensure_executor(), functools.partial(fn, *args, **kwargs)
        )

    async def login(self) -> str:
        return await self._call(self.client.login)

    async def fetch_page(self, ref: CollectionRef, page: int, page_size: int) -> Page:
        return await self._call(self.client.fetch_page, ref, page, page_size)

    async def fetch_detail(self, path: str, item_id: int | str) -> dict[str, Any]:
        return await self._call(self.client.fetch_detail, path, item_id)

    async def mutate(
        self, path: str, item_id: int | str, payload: Mapping[str, Any], *, action: str = ""
    ) -> dict[str, Any]:
        return await self._call(self.client.mutate, path, item_id, payload, action=action)

    async def resolve_bug(self, bug_id: int, comment: str = "") -> dict[str, Any]:
        return await self._call(self.client.resolve_bug, bug_id, comment)


__all__ = ["DEFAULT_TASK_TIMEOUT", "SingleFlightQueue", "AsyncZenTaoClient"]
