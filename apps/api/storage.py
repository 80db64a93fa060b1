"""Storage seam shared by the request handlers and the delete batcher.

``Storage`` is the capability interface the HTTP layer depends on. Two
implementations ship with the service:

* :class:`DatabaseStorage` talks to a SQL database through SQLAlchemy and the
  repositories in :mod:`apps.api.db.repositories`. Each call opens its own
  session from the shared connection pool, so the object is safe to use from
  any number of threads.
* :class:`MemoryStorage` keeps everything in process memory behind a lock. It
  backs ``memory://`` deployments and handler tests.

Both raise the errors defined in :mod:`core.errors`; no SQLAlchemy exception
escapes this module.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Literal, Protocol, runtime_checkable

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from apps.api.db import models, repositories
from apps.api.db.session import build_sessionmaker, session_scope
from core.errors import (
    BOOK_NOT_FOUND,
    BOOK_WAS_DELETED,
    BOOKS_LIST_EMPTY,
    EMAIL_TAKEN,
    USER_NOT_FOUND,
    ConflictError,
    DeletedError,
    EmptyError,
    NotFoundError,
    StoreError,
    StoreTimeoutError,
)

log = structlog.get_logger(__name__)

RepeatDelete = Literal["not_found", "already_deleted"]

_TIMEOUT_MARKERS = (
    "timeout",
    "timed out",
    "canceling statement",
    "database is locked",
)


@dataclass(frozen=True)
class User:
    name: str
    email: str
    password_hash: str
    uid: str = ""


@dataclass(frozen=True)
class Book:
    title: str
    author: str
    owner_id: str = ""
    bid: str = ""
    deleted: bool = False


@runtime_checkable
class Storage(Protocol):
    """Credential store and book store operations."""

    def save_user(self, user: User) -> str: ...

    def validate_user(self, email: str) -> tuple[str, str]: ...

    def get_books(self) -> list[Book]: ...

    def get_books_by_owner(self, owner_id: str) -> list[Book]: ...

    def get_book_by_id(self, book_id: str) -> Book: ...

    def save_book(self, book: Book) -> str: ...

    def delete_book(self, book_id: str) -> None: ...

    def purge_deleted(self) -> None: ...

    def close(self) -> None: ...


def _book_from_row(row: models.Book) -> Book:
    return Book(
        bid=row.bid,
        title=row.title,
        author=row.author,
        owner_id=row.owner_id,
        deleted=row.deleted,
    )


def _is_timeout(exc: OperationalError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return any(marker in message for marker in _TIMEOUT_MARKERS)


class DatabaseStorage:
    """SQLAlchemy-backed :class:`Storage`."""

    def __init__(
        self,
        engine: Engine,
        *,
        session_factory: sessionmaker[Session] | None = None,
        repeat_delete: RepeatDelete = "not_found",
    ) -> None:
        self.engine = engine
        self._factory = session_factory or build_sessionmaker(engine)
        self.repeat_delete = repeat_delete

    @contextmanager
    def _scope(self, operation: str) -> Iterator[Session]:
        try:
            with session_scope(self._factory) as session:
                yield session
        except StoreError:
            raise
        except IntegrityError as exc:
            log.debug("storage.integrity_error", operation=operation, error=str(exc.orig))
            raise ConflictError(f"{operation}: constraint violated") from exc
        except PoolTimeoutError as exc:
            raise StoreTimeoutError(f"{operation}: connection pool timed out") from exc
        except OperationalError as exc:
            if _is_timeout(exc):
                raise StoreTimeoutError(f"{operation}: {exc.orig}") from exc
            raise StoreError(f"{operation}: {exc.orig}") from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"{operation}: {exc}") from exc

    def save_user(self, user: User) -> str:
        try:
            with self._scope("save_user") as session:
                record = repositories.UserRepository(session).create(
                    name=user.name, email=user.email, password_hash=user.password_hash
                )
                return record.uid
        except ConflictError as exc:
            raise ConflictError(EMAIL_TAKEN) from exc

    def validate_user(self, email: str) -> tuple[str, str]:
        with self._scope("validate_user") as session:
            record = repositories.UserRepository(session).get_by_email(email)
            if record is None:
                raise NotFoundError(USER_NOT_FOUND)
            return record.uid, record.password_hash

    def get_books(self) -> list[Book]:
        with self._scope("get_books") as session:
            rows = repositories.BookRepository(session).list()
            books = [_book_from_row(row) for row in rows]
        if not books:
            raise EmptyError(BOOKS_LIST_EMPTY)
        return books

    def get_books_by_owner(self, owner_id: str) -> list[Book]:
        with self._scope("get_books_by_owner") as session:
            rows = repositories.BookRepository(session).list(owner_id=owner_id)
            books = [_book_from_row(row) for row in rows]
        if not books:
            raise EmptyError(BOOKS_LIST_EMPTY)
        return books

    def get_book_by_id(self, book_id: str) -> Book:
        with self._scope("get_book_by_id") as session:
            row = repositories.BookRepository(session).get(book_id, include_deleted=True)
            book = _book_from_row(row) if row is not None else None
        if book is None:
            raise NotFoundError(BOOK_NOT_FOUND)
        if book.deleted:
            raise DeletedError(BOOK_WAS_DELETED)
        return book

    def save_book(self, book: Book) -> str:
        if not book.owner_id:
            raise ValueError("book owner must be set before saving")
        with self._scope("save_book") as session:
            record = repositories.BookRepository(session).create(
                title=book.title, author=book.author, owner_id=book.owner_id
            )
            return record.bid

    def delete_book(self, book_id: str) -> None:
        with self._scope("delete_book") as session:
            repo = repositories.BookRepository(session)
            if repo.soft_delete(book_id):
                return
            already_deleted = repo.get(book_id, include_deleted=True) is not None
        if already_deleted and self.repeat_delete == "already_deleted":
            raise DeletedError(BOOK_WAS_DELETED)
        raise NotFoundError(BOOK_NOT_FOUND)

    def purge_deleted(self) -> None:
        with self._scope("purge_deleted") as session:
            removed = repositories.BookRepository(session).purge_deleted()
        log.info("storage.purged", removed=removed)

    def close(self) -> None:
        self.engine.dispose()


class MemoryStorage:
    """In-process :class:`Storage`; thread-safe, not persistent."""

    def __init__(self, *, repeat_delete: RepeatDelete = "not_found") -> None:
        self.repeat_delete = repeat_delete
        self._lock = threading.Lock()
        self._users: dict[str, User] = {}
        self._books: dict[str, Book] = {}

    def save_user(self, user: User) -> str:
        with self._lock:
            if any(existing.email == user.email for existing in self._users.values()):
                raise ConflictError(EMAIL_TAKEN)
            uid = repositories.new_identifier()
            self._users[uid] = replace(user, uid=uid)
            return uid

    def validate_user(self, email: str) -> tuple[str, str]:
        with self._lock:
            for uid, user in self._users.items():
                if user.email == email:
                    return uid, user.password_hash
        raise NotFoundError(USER_NOT_FOUND)

    def _visible(self, owner_id: str | None = None) -> list[Book]:
        with self._lock:
            books = [
                book
                for book in self._books.values()
                if not book.deleted and (owner_id is None or book.owner_id == owner_id)
            ]
        if not books:
            raise EmptyError(BOOKS_LIST_EMPTY)
        return books

    def get_books(self) -> list[Book]:
        return self._visible()

    def get_books_by_owner(self, owner_id: str) -> list[Book]:
        return self._visible(owner_id)

    def get_book_by_id(self, book_id: str) -> Book:
        with self._lock:
            book = self._books.get(book_id)
        if book is None:
            raise NotFoundError(BOOK_NOT_FOUND)
        if book.deleted:
            raise DeletedError(BOOK_WAS_DELETED)
        return book

    def save_book(self, book: Book) -> str:
        if not book.owner_id:
            raise ValueError("book owner must be set before saving")
        with self._lock:
            bid = repositories.new_identifier()
            self._books[bid] = replace(book, bid=bid, deleted=False)
            return bid

    def delete_book(self, book_id: str) -> None:
        with self._lock:
            book = self._books.get(book_id)
            if book is not None and not book.deleted:
                self._books[book_id] = replace(book, deleted=True)
                return
        if book is not None and self.repeat_delete == "already_deleted":
            raise DeletedError(BOOK_WAS_DELETED)
        raise NotFoundError(BOOK_NOT_FOUND)

    def purge_deleted(self) -> None:
        with self._lock:
            doomed = [bid for bid, book in self._books.items() if book.deleted]
            for bid in doomed:
                del self._books[bid]
        log.info("storage.purged", removed=len(doomed))

    def stored_book_ids(self) -> set[str]:
        """Every row still held, logically deleted ones included."""

        with self._lock:
            return set(self._books)

    def close(self) -> None:
        return None


__all__ = [
    "Book",
    "DatabaseStorage",
    "MemoryStorage",
    "RepeatDelete",
    "Storage",
    "User",
]
