"""SingleFlightQueue and AsyncZenTaoClient tests (synchronous wrappers).

Driven through ``asyncio.run`` so the suite does not depend on an asyncio
pytest plugin being loaded.
"""

# ruff: noqa

from __future__ import annotations

import asyncio
import threading
import time
from typing import Any

import pytest

from zentaobugs.concurrency import AsyncZenTaoClient, SingleFlightQueue
from zentaobugs.errors import TaskTimeout, TransportFailure
from zentaobugs.models import Page, product_bugs


def test_tasks_run_in_submission_order() -> None:
    async def _run() -> None:
        queue = SingleFlightQueue()
        order: list[int] = []

        def make(i: int, delay: float):
            async def task() -> int:
                await asyncio.sleep(delay)
                order.append(i)
                return i

            return task

        futures = [queue.enqueue(make(i, 0.02 if i == 0 else 0.0)) for i in range(5)]
        results = await asyncio.gather(*futures)
        assert results == [0, 1, 2, 3, 4]
        assert order == [0, 1, 2, 3, 4]
        assert queue.completed == 5

    asyncio.run(_run())


def test_tasks_never_overlap() -> None:
    async def _run() -> None:
        queue = SingleFlightQueue()
        active = 0
        peak = 0

        async def task() -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        await asyncio.gather(*(queue.submit(task) for _ in range(6)))
        assert peak == 1

    asyncio.run(_run())


def test_failure_does_not_affect_neighbours() -> None:
    async def _run() -> None:
        queue = SingleFlightQueue()

        async def ok(value: str) -> str:
            return value

        async def boom() -> str:
            raise TransportFailure("server said no", status=500)

        a = queue.enqueue(lambda: ok("a"))
        b = queue.enqueue(boom)
        c = queue.enqueue(lambda: ok("c"))
        results = await asyncio.gather(a, b, c, return_exceptions=True)
        assert results[0] == "a"
        assert isinstance(results[1], TransportFailure)
        assert results[2] == "c"

    asyncio.run(_run())


def test_factory_not_called_until_its_turn() -> None:
    async def _run() -> None:
        queue = SingleFlightQueue()
        started: list[str] = []
        release = asyncio.Event()

        async def first() -> None:
            started.append("first")
            await release.wait()

        async def second() -> None:
            started.append("second")

        f1 = queue.enqueue(first)
        f2 = queue.enqueue(second)
        await asyncio.sleep(0.01)
        assert started == ["first"]
        assert queue.running
        assert queue.pending == 1
        release.set()
        await asyncio.gather(f1, f2)
        assert started == ["first", "second"]

    asyncio.run(_run())


def test_timeout_fails_task_and_queue_moves_on() -> None:
    async def _run() -> None:
        queue = SingleFlightQueue(task_timeout=0.05)

        async def stuck() -> None:
            await asyncio.sleep(5)

        async def quick() -> str:
            return "done"

        f1 = queue.enqueue(stuck, name="stuck")
        f2 = queue.enqueue(quick)
        with pytest.raises(TaskTimeout):
            await f1
        assert await f2 == "done"

    asyncio.run(_run())


def test_queue_returns_to_idle_and_restarts() -> None:
    async def _run() -> None:
        queue = SingleFlightQueue()

        async def value(v: int) -> int:
            return v

        assert await queue.submit(lambda: value(1)) == 1
        await queue.join()
        assert not queue.running
        assert queue.pending == 0
        assert await queue.submit(lambda: value(2)) == 2

    asyncio.run(_run())


def test_cancelled_caller_is_skipped() -> None:
    async def _run() -> None:
        queue = SingleFlightQueue()
        calls: list[str] = []
        release = asyncio.Event()

        async def head() -> None:
            await release.wait()

        async def skipped() -> None:
            calls.append("skipped")

        async def tail() -> str:
            calls.append("tail")
            return "tail"

        f1 = queue.enqueue(head)
        f2 = queue.enqueue(skipped)
        f3 = queue.enqueue(tail)
        f2.cancel()
        release.set()
        await f1
        assert await f3 == "tail"
        assert calls == ["tail"]

    asyncio.run(_run())


class _BlockingClient:
    def __init__(self) -> None:
        self.threads: list[str] = []

    def _note(self) -> None:
        self.threads.append(threading.current_thread().name)

    def login(self) -> str:
        self._note()
        return "tkn"

    def fetch_page(self, ref: Any, page: int, page_size: int) -> Page:
        self._note()
        time.sleep(0.01)
        return Page(records=(), requested_page=page, page_size=page_size, served_page=page)

    def fetch_detail(self, path: str, item_id: Any) -> dict[str, Any]:
        self._note()
        return {"id": item_id, "path": path}

    def mutate(self, path: str, item_id: Any, payload: Any, *, action: str = "") -> dict[str, Any]:
        self._note()
        return {"path": path, "id": item_id, "action": action, **payload}

    def resolve_bug(self, bug_id: int, comment: str = "") -> dict[str, Any]:
        self._note()
        return {"id": bug_id, "comment": comment}


def test_async_client_runs_calls_in_worker_thread() -> None:
    async def _run() -> None:
        blocking = _BlockingClient()
        async with AsyncZenTaoClient(blocking) as client:  # type: ignore[arg-type]
            assert await client.login() == "tkn"
            page = await client.fetch_page(product_bugs(1), 2, 10)
            assert page.requested_page == 2
            assert (await client.fetch_detail("/bugs", 5))["id"] == 5
            moved = await client.mutate("/bugs", 5, {"x": 1}, action="resolve")
            assert moved["action"] == "resolve"
            assert (await client.resolve_bug(5, "ok"))["comment"] == "ok"
        assert blocking.threads
        assert all(name.startswith("zentao") for name in blocking.threads)

    asyncio.run(_run())


def test_async_client_with_queue_serializes_blocking_calls() -> None:
    async def _run() -> None:
        blocking = _BlockingClient()
        queue = SingleFlightQueue()
        async with AsyncZenTaoClient(blocking) as client:  # type: ignore[arg-type]
            pages = await asyncio.gather(
                *(queue.submit(lambda n=n: client.fetch_page(product_bugs(1), n, 5)) for n in range(1, 4))
            )
        assert [p.requested_page for p in pages] == [1, 2, 3]

    asyncio.run(_run())


@pytest.mark.asyncio
async def test_submit_inside_running_loop() -> None:
    queue = SingleFlightQueue(task_timeout=None)

    async def answer() -> int:
        return 42

    assert await queue.submit(answer, name="answer") == 42
    await queue.join()
    assert queue.completed == 1
    assert not queue.running


def test_task_raising_timeout_error_is_not_a_queue_timeout() -> None:
    async def _run() -> None:
        queue = SingleFlightQueue(task_timeout=5)

        async def upstream_timeout() -> None:
            raise TimeoutError("read timed out")

        with pytest.raises(TimeoutError) as info:
            await queue.submit(upstream_timeout)
        assert not isinstance(info.value, TaskTimeout)
        assert str(info.value) == "read timed out"

    asyncio.run(_run())


class _SlowClient(_BlockingClient):
    def __init__(self) -> None:
        super().__init__()
        self._lock = threading.Lock()
        self.in_flight = 0
        self.peak = 0

    def fetch_page(self, ref: Any, page: int, page_size: int) -> Page:
        self._note()
        with self._lock:
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
        time.sleep(0.2)
        with self._lock:
            self.in_flight -= 1
        return Page(records=(), requested_page=page, page_size=page_size, served_page=page)


def test_timed_out_calls_never_overlap_without_context_manager() -> None:
    slow = _SlowClient()
    client = AsyncZenTaoClient(slow)  # type: ignore[arg-type]

    async def _run() -> None:
        queue = SingleFlightQueue(task_timeout=0.05)
        first = queue.enqueue(lambda: client.fetch_page(product_bugs(1), 1, 5))
        second = queue.enqueue(lambda: client.fetch_page(product_bugs(1), 2, 5))
        results = await asyncio.gather(first, second, return_exceptions=True)
        assert all(isinstance(r, TaskTimeout) for r in results)

    try:
        asyncio.run(_run())
        # a timed-out call keeps its worker until it returns
        time.sleep(0.4)
    finally:
        client.__exit__(None, None, None)
    assert slow.peak == 1
    assert all(name.startswith("zentao") for name in slow.threads)
