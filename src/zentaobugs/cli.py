"""zentaobugs CLI.

Subcommands:
  products   -> search products by name keyword
  bugs       -> bugs assigned to me in a product (active only by default)
  next       -> the first active bug assigned to me (stops at the first hit)
  mine       -> full detail of my next bug, product given by name
  detail     -> full detail of one bug
  resolve    -> mark a bug resolved (resolution=fixed)
  stats      -> exact filtered total plus a short preview
  search     -> product search, then bugs of a single matching product
  check-env  -> report missing ZenTao environment variables (no network)

Every command prints one JSON document on stdout. Failures print
``{"error": ..., "category": ...}`` and exit with status 1.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from collections.abc import Awaitable, Sequence
from typing import Any

from . import __version__
from .config import ZenTaoConfig
from .core import ZenTaoBugs
from .env_auth import EnvAuthConfig, create_env_auth_manager
from .errors import classify_error
from .logging import configure_logging
from .runtime import execute_command, prepare_config

_MAX_HELP_WIDTH = 100


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _add_paging_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--page-size", type=int, help="Records requested per page")
    parser.add_argument("--max-pages", type=int, help="Upper bound on pages visited per walk")
    parser.add_argument(
        "--task-timeout", type=float, help="Seconds before a queued task fails (0 disables)"
    )


def _build_parser() -> argparse.ArgumentParser:
    """Construct top-level CLI parser with subcommands."""
    p = _FormatterArgumentParser(prog="zentaobugs", description="ZenTao bug search & triage")
    p.add_argument("--version", action="version", version=f"zentaobugs {__version__}")
    p.add_argument("--config", default=None, help="YAML config file (env: ZENTAO_CONFIG)")
    p.add_argument("--json-logs", action="store_true", help="Emit JSON log lines on stderr")
    p.add_argument("--log-level", default=None, help="Logging level (default from config)")
    p.add_argument(
        "--quiet",
        action="store_true",
        help="Only log warnings and errors (env: ZENTAOBUGS_QUIET=1)",
    )
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    pp = sub.add_parser("products", help="Search products by name keyword")
    pp.add_argument("--keyword", default="")
    pp.add_argument("--limit", type=int)
    _add_paging_options(pp)

    pb = sub.add_parser("bugs", help="List bugs assigned to me")
    pb.add_argument("--product-id", required=True)
    pb.add_argument("--keyword")
    pb.add_argument("--all-statuses", action="store_true")
    pb.add_argument("--limit", type=int)
    _add_paging_options(pb)

    pn = sub.add_parser("next", help="Next active bug assigned to me")
    pn.add_argument("--product-id", required=True)
    pn.add_argument("--keyword")
    _add_paging_options(pn)

    pm = sub.add_parser("mine", help="Detail of my next bug in a product given by name")
    pm.add_argument("--product", required=True, dest="product_name")
    pm.add_argument("--keyword")
    _add_paging_options(pm)

    pd = sub.add_parser("detail", help="Full detail of one bug")
    pd.add_argument("--bug-id", required=True)

    pr = sub.add_parser("resolve", help="Mark a bug resolved")
    pr.add_argument("--bug-id", required=True)
    pr.add_argument("--comment", default="")

    ps = sub.add_parser("stats", help="Filtered bug total and preview")
    ps.add_argument("--product-id", required=True)
    ps.add_argument(
        "--include-inactive",
        action="store_true",
        help="Count bugs in every status, not only active ones",
    )
    _add_paging_options(ps)

    pq = sub.add_parser("search", help="Search products then their bugs")
    pq.add_argument("--keyword", default="")
    pq.add_argument("--bug-keyword", default="")
    pq.add_argument("--product-id")
    pq.add_argument("--all-statuses", action="store_true")
    pq.add_argument("--limit", type=int)
    _add_paging_options(pq)

    pc = sub.add_parser("check-env", help="Report missing ZenTao environment variables")
    pc.add_argument("--dotenv", default=None, help="Explicit .env file to load")
    return p


def build_service(cfg: ZenTaoConfig) -> ZenTaoBugs:
    return ZenTaoBugs(cfg)


def _operation(service: ZenTaoBugs, args: argparse.Namespace) -> Awaitable[dict[str, Any]]:
    cmd = args.cmd
    if cmd == "products":
        return service.search_products(args.keyword, args.limit)
    if cmd == "bugs":
        return service.get_my_bugs(args.product_id, args.keyword, args.all_statuses, args.limit)
    if cmd == "next":
        return service.get_next_bug(args.product_id, args.keyword)
    if cmd == "mine":
        return service.get_my_bug(args.product_name, args.keyword)
    if cmd == "detail":
        return service.get_bug_detail(args.bug_id)
    if cmd == "resolve":
        return service.mark_bug_resolved(args.bug_id, args.comment)
    if cmd == "stats":
        return service.get_bug_stats(args.product_id, active_only=not args.include_inactive)
    if cmd == "search":
        return service.search_product_bugs(
            args.keyword, args.bug_keyword, args.product_id, args.all_statuses, args.limit
        )
    raise ValueError(f"unknown command {cmd!r}")  # pragma: no cover - argparse guards this


async def _run_service(cfg: ZenTaoConfig, args: argparse.Namespace) -> dict[str, Any]:
    async with build_service(cfg) as service:
        await service.connect()
        return await _operation(service, args)


def _emit(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, ensure_ascii=False, default=str))


def _check_env(args: argparse.Namespace) -> int:
    manager = create_env_auth_manager(
        EnvAuthConfig(load_dotenv=True, dotenv_path=getattr(args, "dotenv", None))
    )
    status = manager.get_auth_status()
    _emit(status)
    return 0 if status["configured"] else 1


def _configure_logging(args: argparse.Namespace, cfg: ZenTaoConfig | None) -> None:
    quiet = args.quiet or os.environ.get("ZENTAOBUGS_QUIET") == "1"
    level = args.log_level or (cfg.logging_level if cfg else "INFO")
    if quiet:
        level = "WARNING"
    json_logs = args.json_logs or bool(cfg and cfg.logging_json_enabled)
    configure_logging(json_logging=json_logs, level=level)


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "check-env":
        _configure_logging(args, None)
        return _check_env(args)

    try:
        cfg = prepare_config(args)
    except Exception as exc:
        _emit(classify_error(exc).to_dict())
        return 1
    if cfg is None:
        _emit({"error": f"command {args.cmd!r} needs a configuration", "category": "config"})
        return 1
    _configure_logging(args, cfg)

    result: dict[str, Any] = {}

    def _handle() -> int:
        result.update(asyncio.run(_run_service(cfg, args)))
        return 0

    try:
        execute_command(_handle, args, args.cmd)
    except Exception as exc:
        _emit(classify_error(exc).to_dict())
        return 1
    _emit(result)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
