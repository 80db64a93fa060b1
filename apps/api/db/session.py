"""Database engine and session management."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


def _connect_args(backend: str, timeout: float) -> dict[str, Any]:
    if backend == "sqlite":
        # Busy timeout: a locked database fails instead of hanging.
        return {"timeout": timeout, "check_same_thread": False}
    if backend == "postgresql":
        millis = max(1, int(timeout * 1000))
        return {
            "connect_timeout": max(1, int(round(timeout))),
            "options": f"-c statement_timeout={millis}",
        }
    return {}


def _ensure_sqlite_directory(database: str | None) -> None:
    if not database or database == ":memory:":
        return
    path = Path(database)
    if not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)


def build_engine(database_url: str, *, timeout: float = 2.0) -> Engine:
    """Create an engine whose every operation is bounded by ``timeout`` seconds."""

    if database_url.startswith("postgres://"):
        database_url = "postgresql://" + database_url[len("postgres://") :]
    url = make_url(database_url)
    backend = url.get_backend_name()
    kwargs: dict[str, Any] = {
        "future": True,
        "connect_args": _connect_args(backend, timeout),
    }
    if backend == "sqlite":
        _ensure_sqlite_directory(url.database)
        if url.database in (None, "", ":memory:"):
            # One shared connection, otherwise each checkout sees an empty database.
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_timeout"] = timeout
        kwargs["pool_pre_ping"] = True
    return create_engine(url, **kwargs)


def build_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = ["build_engine", "build_sessionmaker", "session_scope"]
