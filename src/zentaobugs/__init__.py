"""zentaobugs - client-side search & aggregation over the ZenTao bug tracker API.

The ZenTao REST API pages its collections but cannot search titles, filter by
assignee or report filtered totals. This library walks those pages lazily,
filters on the client, stops as soon as an answer is known, and funnels every
call through one single-flight queue because all calls share one session
token.

High-level public API:

import asyncio
from zentaobugs import ZenTaoBugs

async def main():
    async with ZenTaoBugs.from_config_path("zentao.yaml") as bugs:
        await bugs.connect()
        print(await bugs.get_next_bug(42))

asyncio.run(main())

Lower-level building blocks (``PageWalker``, ``SearchEngine``,
``SingleFlightQueue``) are exported for callers bringing their own source.
"""

from __future__ import annotations

# Version constant (sync manually with pyproject)
__version__ = "0.2.0"

from .concurrency import AsyncZenTaoClient, SingleFlightQueue  # noqa: E402
from .config import ZenTaoConfig, load_config  # noqa: E402
from .core import ZenTaoBugs  # noqa: E402
from .errors import (  # noqa: E402
    AuthenticationError,
    InvalidInput,
    TaskTimeout,
    TransportFailure,
    ZenTaoError,
)
from .models import Bug, CollectionRef, Product, SearchOptions, product_bugs, products  # noqa: E402
from .pagination import PageWalker, StopReason, walk  # noqa: E402
from .search import SearchEngine  # noqa: E402

__all__ = [
    "ZenTaoBugs",
    "ZenTaoConfig",
    "load_config",
    "SingleFlightQueue",
    "AsyncZenTaoClient",
    "SearchEngine",
    "PageWalker",
    "StopReason",
    "walk",
    "Bug",
    "Product",
    "CollectionRef",
    "SearchOptions",
    "products",
    "product_bugs",
    "ZenTaoError",
    "TransportFailure",
    "AuthenticationError",
    "InvalidInput",
    "TaskTimeout",
    "__version__",
]
