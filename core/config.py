from __future__ import annotations

import os
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_HOST = ":8080"
DEFAULT_DB_DSN = "sqlite:///./data/g2books.db"
DEFAULT_MIGRATE_PATH = "alembic"
DEFAULT_AUTH_ADDR = "localhost:8081"
MEMORY_DSN = "memory://"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    server_host: str = Field(
        default=DEFAULT_HOST, validation_alias=AliasChoices("SERVER_HOST", "SERVER_HOS")
    )
    database_url: str = Field(
        default=DEFAULT_DB_DSN, validation_alias=AliasChoices("DB_DSN", "DATABASE_URL")
    )
    migrate_path: str = Field(default=DEFAULT_MIGRATE_PATH, validation_alias="MIGRATE_PATH")
    auth_addr: str = Field(default=DEFAULT_AUTH_ADDR, validation_alias="AUTH_ADDR")
    debug: bool = Field(default=False, validation_alias="DEBUG")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    jwt_secret: str = Field(default="change-me", validation_alias="JWT_SECRET")
    jwt_expiration_seconds: int = Field(default=3 * 60 * 60, validation_alias="JWT_EXPIRATION_SECONDS")

    storage_timeout_seconds: float = Field(default=2.0, validation_alias="STORAGE_TIMEOUT_SECONDS")

    delete_batch_size: int = Field(default=5, ge=1, validation_alias="DELETE_BATCH_SIZE")
    # Unset keeps the threshold-only behaviour: fewer than ``delete_batch_size``
    # deletes are never purged.
    delete_flush_interval_seconds: float | None = Field(
        default=None, gt=0, validation_alias="DELETE_FLUSH_INTERVAL_SECONDS"
    )
    repeat_delete: Literal["not_found", "already_deleted"] = Field(
        default="not_found", validation_alias="REPEAT_DELETE"
    )

    @property
    def uses_memory_store(self) -> bool:
        return self.database_url.strip().lower() == MEMORY_DSN

    def bind_address(self) -> tuple[str, int]:
        """Split ``server_host`` (``host:port`` or ``:port``) for uvicorn."""

        host, _, port = self.server_host.rpartition(":")
        if not port.isdigit():
            raise ValueError(f"Invalid server host {self.server_host!r}; expected host:port")
        return host or "0.0.0.0", int(port)


_ENV_KEYS = (
    "SERVER_HOST",
    "SERVER_HOS",
    "DB_DSN",
    "DATABASE_URL",
    "MIGRATE_PATH",
    "AUTH_ADDR",
    "DEBUG",
    "LOG_LEVEL",
    "JWT_SECRET",
    "JWT_EXPIRATION_SECONDS",
    "STORAGE_TIMEOUT_SECONDS",
    "DELETE_BATCH_SIZE",
    "DELETE_FLUSH_INTERVAL_SECONDS",
    "REPEAT_DELETE",
)
_cached_settings: Settings | None = None
_cached_signature: tuple[tuple[str, str | None], ...] | None = None


def _build_signature() -> tuple[tuple[str, str | None], ...]:
    return tuple((key, os.getenv(key)) for key in _ENV_KEYS)


def _load_settings(force: bool = False) -> Settings:
    global _cached_settings, _cached_signature
    signature = _build_signature()
    if force or _cached_settings is None or signature != _cached_signature:
        _cached_settings = Settings()
        _cached_signature = signature
    return _cached_settings


def get_settings(*, reload: bool = False) -> Settings:
    """Return current settings, reloading when environment changes."""

    return _load_settings(force=reload)


def reload_settings() -> Settings:
    """Force settings reload from environment."""

    return _load_settings(force=True)


def read_config(
    *,
    host: str = DEFAULT_HOST,
    db_dsn: str = DEFAULT_DB_DSN,
    migrate_path: str = DEFAULT_MIGRATE_PATH,
    debug: bool = False,
) -> Settings:
    """Merge command line flags with environment settings.

    A flag set to anything other than its default wins. A flag left at its
    default yields to the matching environment variable, if any.
    """

    base = reload_settings()
    overrides: dict[str, object] = {}
    if host != DEFAULT_HOST:
        overrides["server_host"] = host
    if db_dsn != DEFAULT_DB_DSN:
        overrides["database_url"] = db_dsn
    if migrate_path != DEFAULT_MIGRATE_PATH:
        overrides["migrate_path"] = migrate_path
    if debug:
        overrides["debug"] = True
    return base.model_copy(update=overrides)


__all__ = [
    "DEFAULT_AUTH_ADDR",
    "DEFAULT_DB_DSN",
    "DEFAULT_HOST",
    "DEFAULT_MIGRATE_PATH",
    "MEMORY_DSN",
    "Settings",
    "get_settings",
    "read_config",
    "reload_settings",
]
