from __future__ import annotations

import click
import structlog
import uvicorn

from apps.api.db.migrations import run_migrations
from apps.api.db.session import build_engine
from apps.api.main import create_app, open_storage
from core.config import (
    DEFAULT_DB_DSN,
    DEFAULT_HOST,
    DEFAULT_MIGRATE_PATH,
    Settings,
    read_config,
)
from utils.logging import configure_logging

log = structlog.get_logger(__name__)


def _db_options(func):
    func = click.option(
        "-m",
        "--migrations",
        "migrate_path",
        default=DEFAULT_MIGRATE_PATH,
        show_default=True,
        help="Path to the alembic migrations directory (env MIGRATE_PATH).",
    )(func)
    func = click.option(
        "--db",
        "db_dsn",
        default=DEFAULT_DB_DSN,
        show_default=True,
        help="Database URL, or memory:// for the in-process store (env DB_DSN).",
    )(func)
    return func


def _load(host: str, db_dsn: str, migrate_path: str, debug: bool) -> Settings:
    settings = read_config(host=host, db_dsn=db_dsn, migrate_path=migrate_path, debug=debug)
    configure_logging(settings.debug)
    log.debug("config.loaded", config=settings.model_dump(exclude={"jwt_secret"}))
    return settings


@click.group(help="g2-books catalog service.")
def cli() -> None:
    pass


@cli.command(help="Apply migrations and serve the HTTP API.")
@click.option(
    "--host",
    default=DEFAULT_HOST,
    show_default=True,
    help="Bind address as host:port or :port (env SERVER_HOST).",
)
@_db_options
@click.option("--debug", is_flag=True, default=False, help="Enable debug logging level.")
def serve(host: str, db_dsn: str, migrate_path: str, debug: bool) -> None:
    settings = _load(host, db_dsn, migrate_path, debug)
    try:
        bind_host, port = settings.bind_address()
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--host") from exc

    try:
        storage = open_storage(settings)
    except Exception as exc:
        log.critical("storage.init_failed", error=str(exc))
        raise SystemExit(1) from exc

    server: uvicorn.Server | None = None

    def _shutdown(_exc: BaseException) -> None:
        if server is not None:
            server.should_exit = True

    app = create_app(settings, storage=storage, on_fatal=_shutdown)
    server = uvicorn.Server(
        uvicorn.Config(app, host=bind_host, port=port, log_config=None, lifespan="on")
    )
    log.info("server.starting", host=bind_host, port=port)
    try:
        server.run()
    finally:
        storage.close()
        log.debug("server.stopped")

    if app.state.fatal_error is not None:
        log.critical("server.fatal_stop", error=str(app.state.fatal_error))
        raise SystemExit(1)
    log.info("server.stopped_cleanly")


@cli.command(help="Apply pending migrations and exit.")
@_db_options
@click.option("--debug", is_flag=True, default=False, help="Enable debug logging level.")
def migrate(db_dsn: str, migrate_path: str, debug: bool) -> None:
    settings = _load(DEFAULT_HOST, db_dsn, migrate_path, debug)
    if settings.uses_memory_store:
        click.echo("memory store has no schema to migrate")
        return
    engine = build_engine(settings.database_url, timeout=settings.storage_timeout_seconds)
    try:
        run_migrations(engine, settings.migrate_path)
    except Exception as exc:
        log.critical("migrations.failed", error=str(exc))
        raise SystemExit(1) from exc
    finally:
        engine.dispose()
    click.echo("migrations applied")


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    cli()
