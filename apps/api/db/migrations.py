"""Schema management: alembic migrations at boot and metadata bootstrap for tests."""

from __future__ import annotations

from pathlib import Path

import structlog
from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from sqlalchemy.engine import Engine

from . import models  # noqa: F401 - ensure models are imported for metadata
from .base import Base

log = structlog.get_logger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parents[3]


class MigrationError(RuntimeError):
    """Raised when the schema cannot be brought up to date."""


def resolve_migrate_path(migrate_path: str) -> Path:
    candidate = Path(migrate_path).expanduser()
    if candidate.is_dir():
        return candidate.resolve()
    fallback = _PROJECT_ROOT / migrate_path
    if fallback.is_dir():
        return fallback
    raise MigrationError(f"Migrations directory not found: {migrate_path}")


def _alembic_config(script_location: Path, engine: Engine) -> Config:
    config = Config()
    config.set_main_option("script_location", str(script_location))
    url = engine.url.render_as_string(hide_password=False)
    config.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    return config


def current_revision(engine: Engine) -> str | None:
    with engine.connect() as connection:
        return MigrationContext.configure(connection).get_current_revision()


def run_migrations(engine: Engine, migrate_path: str) -> None:
    """Upgrade the database behind ``engine`` to the latest revision."""

    script_location = resolve_migrate_path(migrate_path)
    config = _alembic_config(script_location, engine)
    before = current_revision(engine)
    try:
        with engine.begin() as connection:
            config.attributes["connection"] = connection
            command.upgrade(config, "head")
    except Exception as exc:
        raise MigrationError(f"Applying migrations failed: {exc}") from exc
    after = current_revision(engine)
    if before == after:
        log.info("migrations.no_change", revision=after)
    else:
        log.info("migrations.complete", previous=before, revision=after)


def create_schema(engine: Engine) -> None:
    """Create tables straight from the ORM metadata, bypassing alembic."""

    Base.metadata.create_all(bind=engine)


__all__ = [
    "MigrationError",
    "create_schema",
    "current_revision",
    "resolve_migrate_path",
    "run_migrations",
]
