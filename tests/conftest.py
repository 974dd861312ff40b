"""Pytest configuration for zentaobugs tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install (`pip install -e .`), and isolates
every test from real ZenTao credentials in the developer's environment.
"""

from __future__ import annotations

import sys
import time
from pathlib import Path

import pytest

_TEST_START_TIMES: dict[str, float] = {}
_TEST_DURATIONS: list[tuple[str, float]] = []

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

_ISOLATED_VARS = (
    "ZENTAO_BASE_URL",
    "ZENTAO_ACCOUNT",
    "ZENTAO_PASSWORD",
    "ZENTAO_CONFIG",
    "ZENTAO_RETRY_ATTEMPTS",
    "ZENTAO_RETRY_BASE",
    "ZENTAO_RETRY_MAX_SLEEP",
    "ZENTAOBUGS_QUIET",
)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in _ISOLATED_VARS:
        monkeypatch.delenv(name, raising=False)
    # keep a developer's .env out of config loading
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("zentaobugs.logging._GLOBAL", None)


# --- Timing utilities to help identify slow/stalling tests ---


def pytest_runtest_setup(item):  # type: ignore
    _TEST_START_TIMES[item.nodeid] = time.perf_counter()


def pytest_runtest_teardown(item):  # type: ignore
    start = _TEST_START_TIMES.pop(item.nodeid, None)
    if start is not None:
        duration = time.perf_counter() - start
        _TEST_DURATIONS.append((item.nodeid, duration))


def pytest_sessionfinish(session, exitstatus):  # type: ignore
    if not _TEST_DURATIONS:
        return
    slow = sorted(_TEST_DURATIONS, key=lambda x: x[1], reverse=True)[:10]
    print("\n=== Slowest Tests (top 10) ===")
    for nodeid, secs in slow:
        print(f"{secs:0.3f}s  {nodeid}")
    total_time = sum(d for _, d in _TEST_DURATIONS)
    print(
        f"Total recorded test time: {total_time:0.3f}s over {len(_TEST_DURATIONS)} tests"
    )
