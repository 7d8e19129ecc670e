"""
Configuration and logging setup.

Settings come from the process environment; a ``.env`` file in the working
directory is loaded first (python-dotenv) without overriding real variables.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from datetime import timedelta

from dotenv import load_dotenv
from pydantic import BaseModel, Field

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


# ═══════════════════════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════════════════════


class Settings(BaseModel):
    """Every option the storefront recognizes."""

    database_url: str = "sqlite+aiosqlite:///./atelier.db"

    # user sessions
    jwt_secret: str = Field(default="dev-access-secret", min_length=1)
    jwt_refresh_secret: str = Field(default="dev-refresh-secret", min_length=1)
    access_token_ttl: timedelta = timedelta(days=1)
    refresh_token_ttl: timedelta = timedelta(days=7)

    # back-office
    admin_username: str = ""
    admin_password: str = ""
    admin_jwt_secret: str = Field(default="dev-admin-secret", min_length=1)
    admin_token_ttl: timedelta = timedelta(days=7)

    # test-only login backdoor; unset disables it
    mock_user_secret: str | None = None

    environment: str = "development"
    log_level: str = "INFO"

    # external collaborators
    firebase_admin_project_id: str | None = None
    firebase_admin_client_email: str | None = None
    firebase_admin_private_key: str | None = None
    blob_read_write_token: str | None = None

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def mock_login_enabled(self) -> bool:
        return bool(self.mock_user_secret) and not self.is_production

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        dotenv: bool = True,
    ) -> Settings:
        if dotenv:
            load_dotenv()
        env = os.environ if environ is None else environ

        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = env.get(name.upper())
            if raw is None or raw == "":
                continue
            if name.endswith("_ttl") and raw.isdigit():
                values[name] = int(raw)  # seconds
                continue
            if name == "firebase_admin_private_key":
                raw = raw.replace("\\n", "\n")
            values[name] = raw
        return cls.model_validate(values)


# ═══════════════════════════════════════════════════════════════════════════════
# Logging
# ═══════════════════════════════════════════════════════════════════════════════


def configure_logging(level: str | int = "INFO") -> None:
    """Install one stream handler on the root logger (idempotent)."""
    root = logging.getLogger()
    root.setLevel(level if isinstance(level, int) else level.upper())
    if not any(getattr(h, "_atelier", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._atelier = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    # SQL echo is opt-in through the engine, not the log level.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


__all__ = ("Settings", "configure_logging", "LOG_FORMAT")
