from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from apps.api.auth import TokenService
from apps.api.db.migrations import run_migrations
from apps.api.db.session import build_engine
from apps.api.middleware import RequestIDMiddleware
from apps.api.routes import books_router, users_router
from apps.api.storage import DatabaseStorage, MemoryStorage, Storage
from core.batcher import DeleteBatcher
from core.config import Settings, get_settings

log = structlog.get_logger(__name__)

FatalHandler = Callable[[BaseException], object]


def open_storage(settings: Settings, *, migrate: bool = True) -> Storage:
    """Build the configured store. Migration failures propagate to the caller."""

    if settings.uses_memory_store:
        log.info("storage.memory")
        return MemoryStorage(repeat_delete=settings.repeat_delete)
    engine = build_engine(settings.database_url, timeout=settings.storage_timeout_seconds)
    if migrate:
        try:
            run_migrations(engine, settings.migrate_path)
        except Exception:
            engine.dispose()
            raise
    return DatabaseStorage(engine, repeat_delete=settings.repeat_delete)


def create_app(
    settings: Settings | None = None,
    *,
    storage: Storage | None = None,
    tokens: TokenService | None = None,
    on_fatal: FatalHandler | None = None,
) -> FastAPI:
    """Assemble the API.

    ``storage`` and ``tokens`` default to instances built from ``settings``.
    ``on_fatal`` receives the error when the delete batcher dies; the server
    runner uses it to shut the whole process down.
    """

    settings = settings or get_settings()
    owns_storage = storage is None

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.storage is None:
            app.state.storage = open_storage(settings)
        batcher = DeleteBatcher(
            app.state.storage.purge_deleted,
            capacity=settings.delete_batch_size,
            flush_interval=settings.delete_flush_interval_seconds,
            on_error=_fatal_handler(app),
        )
        app.state.batcher = batcher
        batcher.start()
        log.info(
            "app.started",
            store=type(app.state.storage).__name__,
            batch_size=settings.delete_batch_size,
            auth_addr=settings.auth_addr,
        )
        try:
            yield
        finally:
            await batcher.stop()
            if owns_storage:
                app.state.storage.close()
                app.state.storage = None
            log.info("app.stopped", purges=batcher.purges)

    def _fatal_handler(app: FastAPI) -> FatalHandler:
        def handle(exc: BaseException) -> None:
            app.state.fatal_error = exc
            log.critical("app.fatal", error=str(exc), component="delete_batcher")
            if on_fatal is not None:
                on_fatal(exc)

        return handle

    app = FastAPI(title="g2-books", debug=settings.debug, lifespan=lifespan)
    app.state.settings = settings
    app.state.storage = storage
    app.state.tokens = tokens or TokenService.from_settings(settings)
    app.state.batcher = None
    app.state.fatal_error = None

    app.add_middleware(RequestIDMiddleware)

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            {"error": "invalid request body", "detail": jsonable_encoder(exc.errors())},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(users_router)
    app.include_router(books_router)
    return app


__all__ = ["create_app", "open_storage"]
