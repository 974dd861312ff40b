"""Environment-based credentials for zentaobugs.

Credentials come from ``ZENTAO_BASE_URL``, ``ZENTAO_ACCOUNT`` and
``ZENTAO_PASSWORD``, optionally loaded from a ``.env`` file first.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .logging import get_logger

DOTENV_CANDIDATES = (".env", ".env.local")


@dataclass
class EnvAuthConfig:
    """Configuration for environment-based authentication."""

    load_dotenv: bool = True
    dotenv_path: str | None = None
    base_url_var: str = "ZENTAO_BASE_URL"
    account_var: str = "ZENTAO_ACCOUNT"
    password_var: str = "ZENTAO_PASSWORD"

    @property
    def required_vars(self) -> tuple[str, str, str]:
        return (self.base_url_var, self.account_var, self.password_var)


@dataclass(frozen=True)
class ZenTaoCredentials:
    base_url: str
    account: str
    password: str

    def __repr__(self) -> str:
        return f"ZenTaoCredentials(base_url={self.base_url!r}, account={self.account!r})"


class EnvironmentAuthManager:
    """Finds ZenTao credentials in the process environment and ``.env`` files."""

    def __init__(self, config: EnvAuthConfig):
        self.config = config
        self.logger = get_logger()
        self.dotenv_loaded: Path | None = None
        if config.load_dotenv:
            self._load_dotenv()

    def _load_dotenv(self) -> None:
        candidates = (
            [self.config.dotenv_path] if self.config.dotenv_path else list(DOTENV_CANDIDATES)
        )
        for location in candidates:
            env_path = Path(location)
            if env_path.exists():
                # existing process variables win over the file
                load_dotenv(str(env_path), override=False)
                self.dotenv_loaded = env_path
                self.logger.debug(f"Loaded environment variables from {env_path}")
                return
        if self.config.dotenv_path:
            self.logger.warning("dotenv file not found", path=self.config.dotenv_path)

    @staticmethod
    def read(name: str) -> str | None:
        raw = os.environ.get(name)
        if raw is None:
            return None
        value = raw.strip()
        return value or None

    def missing_variables(self) -> list[str]:
        return [name for name in self.config.required_vars if self.read(name) is None]

    def get_credentials(self) -> ZenTaoCredentials | None:
        base_url = self.read(self.config.base_url_var)
        account = self.read(self.config.account_var)
        password = self.read(self.config.password_var)
        if not (base_url and account and password):
            return None
        return ZenTaoCredentials(base_url=base_url, account=account, password=password)

    def get_auth_status(self) -> dict[str, object]:
        missing = self.missing_variables()
        return {
            "configured": not missing,
            "missing": missing,
            "dotenv_loaded": str(self.dotenv_loaded) if self.dotenv_loaded else None,
        }


def create_env_auth_manager(config: EnvAuthConfig | None = None) -> EnvironmentAuthManager:
    return EnvironmentAuthManager(config or EnvAuthConfig())


__all__ = [
    "EnvAuthConfig",
    "ZenTaoCredentials",
    "EnvironmentAuthManager",
    "create_env_auth_manager",
]
