"""Session-bound repositories for users and books."""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from . import models


def new_identifier() -> str:
    return str(uuid.uuid4())


class _BaseRepository:
    """Base repository holding the active session."""

    model: type[Any]

    def __init__(self, session: Session) -> None:
        self.session = session

    def _all(self, stmt) -> list[Any]:
        return list(self.session.scalars(stmt))

    def _one(self, stmt) -> Any | None:
        return self.session.scalar(stmt)


class UserRepository(_BaseRepository):
    model = models.User

    def get_by_email(self, email: str) -> models.User | None:
        stmt = select(models.User).where(models.User.email == email)
        return self._one(stmt)

    def create(self, *, name: str, email: str, password_hash: str) -> models.User:
        user = models.User(
            uid=new_identifier(), name=name, email=email, password_hash=password_hash
        )
        self.session.add(user)
        self.session.flush()
        return user


class BookRepository(_BaseRepository):
    model = models.Book

    def list(self, *, owner_id: str | None = None) -> list[models.Book]:
        # No ORDER BY: callers must not rely on row order.
        stmt = select(models.Book).where(models.Book.deleted.is_(False))
        if owner_id is not None:
            stmt = stmt.where(models.Book.owner_id == owner_id)
        return self._all(stmt)

    def get(self, book_id: str, *, include_deleted: bool = False) -> models.Book | None:
        stmt = select(models.Book).where(models.Book.bid == book_id)
        if not include_deleted:
            stmt = stmt.where(models.Book.deleted.is_(False))
        return self._one(stmt)

    def create(self, *, title: str, author: str, owner_id: str) -> models.Book:
        book = models.Book(
            bid=new_identifier(), title=title, author=author, owner_id=owner_id, deleted=False
        )
        self.session.add(book)
        self.session.flush()
        return book

    def soft_delete(self, book_id: str) -> bool:
        """Flag a visible book as deleted. Returns ``False`` when nothing matched."""

        stmt = (
            update(models.Book)
            .where(models.Book.bid == book_id, models.Book.deleted.is_(False))
            .values(deleted=True)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return bool(result.rowcount)

    def purge_deleted(self) -> int:
        stmt = (
            delete(models.Book)
            .where(models.Book.deleted.is_(True))
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return int(result.rowcount or 0)


__all__ = ["BookRepository", "UserRepository", "new_identifier"]
