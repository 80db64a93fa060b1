"""SQLAlchemy ORM models used by the API."""

from __future__ import annotations

from sqlalchemy import Boolean, ForeignKey, String, false
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class User(Base):
    """Registered account. Immutable after creation."""

    __tablename__ = "users"

    uid: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column("pass", String(255), nullable=False)


class Book(Base):
    """Catalog entry. ``deleted`` marks a row awaiting purge."""

    __tablename__ = "books"

    bid: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column("lable", String(255), nullable=False)
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    deleted: Mapped[bool] = mapped_column(
        "delete", Boolean, nullable=False, default=False, server_default=false(), index=True
    )
    owner_id: Mapped[str] = mapped_column(
        "uid", ForeignKey("users.uid", ondelete="CASCADE"), nullable=False, index=True
    )


__all__ = ["Book", "User"]
