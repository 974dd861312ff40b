from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

import yaml

from .concurrency import DEFAULT_TASK_TIMEOUT
from .env_auth import EnvAuthConfig, create_env_auth_manager
from .errors import ConfigError
from .pagination import DEFAULT_MAX_PAGES, DEFAULT_PAGE_SIZE

CONFIG_ENV_VAR = "ZENTAO_CONFIG"


@dataclass
class ZenTaoConfig:
    base_url: str
    account: str
    password: str = field(repr=False)
    page_size: int = DEFAULT_PAGE_SIZE
    max_pages: int = DEFAULT_MAX_PAGES
    request_timeout: float = 30.0
    # None disables the per-task timeout
    task_timeout: float | None = DEFAULT_TASK_TIMEOUT
    product_search_limit: int = 20
    bug_list_limit: int = 10
    stats_preview_size: int = 5
    # Logging configuration
    logging_json_enabled: bool = False
    logging_level: str = "INFO"
    # Environment authentication configuration
    env_auth_load_dotenv: bool = True
    env_auth_dotenv_path: str | None = None
    source_file: Path | None = None


def _resolve_env_var(value: Any) -> Any:
    """Resolve environment variable if value starts with $."""
    if isinstance(value, str) and value.startswith("$"):
        return os.getenv(value[1:], value)  # keep the literal when unset
    return value


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name, {}) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return cast(dict[str, Any], value)


def _positive_int(value: Any, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc
    if number < 1:
        raise ConfigError(f"{name} must be >= 1, got {number}")
    return number


def _optional_timeout(value: Any) -> float | None:
    if value is None or value is False or (isinstance(value, str) and not value.strip()):
        return None
    try:
        timeout = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"queue.task_timeout must be a number, got {value!r}") from exc
    return timeout if timeout > 0 else None


def _read_yaml(p: Path) -> dict[str, Any]:
    if not p.exists():
        raise ConfigError(f"Configuration file not found: {p}")
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {p}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration root in {p} must be a mapping")
    return cast(dict[str, Any], raw)


def load_config(path: str | Path | None = None) -> ZenTaoConfig:
    """Build the runtime configuration.

    Values come from the optional YAML file (``path`` or ``$ZENTAO_CONFIG``);
    ZenTao credentials missing there are taken from the environment, after an
    optional ``.env`` load.
    """
    if path is None and os.environ.get(CONFIG_ENV_VAR):
        path = os.environ[CONFIG_ENV_VAR]
    p = Path(path) if path is not None else None
    raw = _read_yaml(p) if p is not None else {}

    zentao = _section(raw, "zentao")
    paging = _section(raw, "paging")
    queue = _section(raw, "queue")
    limits = _section(raw, "limits")
    logging_config = _section(raw, "logging")
    env_auth = _section(raw, "environment")

    auth_cfg = EnvAuthConfig(
        load_dotenv=bool(env_auth.get("load_dotenv", True)),
        dotenv_path=env_auth.get("dotenv_path"),
    )
    manager = create_env_auth_manager(auth_cfg)

    values = {
        "base_url": _resolve_env_var(zentao.get("base_url")),
        "account": _resolve_env_var(zentao.get("account")),
        "password": _resolve_env_var(zentao.get("password")),
    }
    env_names = dict(zip(values, auth_cfg.required_vars))
    missing: list[str] = []
    for key, env_name in env_names.items():
        value = values[key]
        if not isinstance(value, str) or not value.strip() or value.startswith("$"):
            value = manager.read(env_name)
        if not value:
            missing.append(env_name)
        values[key] = value
    if missing:
        raise ConfigError(f"Missing required ZenTao settings: {', '.join(missing)}")

    return ZenTaoConfig(
        base_url=str(values["base_url"]).rstrip("/"),
        account=str(values["account"]),
        password=str(values["password"]),
        page_size=_positive_int(paging.get("page_size", DEFAULT_PAGE_SIZE), "paging.page_size"),
        max_pages=_positive_int(paging.get("max_pages", DEFAULT_MAX_PAGES), "paging.max_pages"),
        request_timeout=float(paging.get("request_timeout", 30.0)),
        task_timeout=_optional_timeout(queue.get("task_timeout", DEFAULT_TASK_TIMEOUT)),
        product_search_limit=_positive_int(
            limits.get("product_search", 20), "limits.product_search"
        ),
        bug_list_limit=_positive_int(limits.get("bug_list", 10), "limits.bug_list"),
        stats_preview_size=_positive_int(limits.get("stats_preview", 5), "limits.stats_preview"),
        logging_json_enabled=bool(logging_config.get("json_enabled", False)),
        logging_level=str(logging_config.get("level", "INFO")),
        env_auth_load_dotenv=auth_cfg.load_dotenv,
        env_auth_dotenv_path=auth_cfg.dotenv_path,
        source_file=p,
    )


__all__ = ["CONFIG_ENV_VAR", "ZenTaoConfig", "load_config"]
