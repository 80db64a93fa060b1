"""Domain and storage error taxonomy."""

from __future__ import annotations


class StoreError(RuntimeError):
    """Base exception for storage failures."""


class StoreTimeoutError(StoreError, TimeoutError):
    """Raised when a storage operation exceeds its deadline."""


class NotFoundError(StoreError):
    """Raised when the requested entity does not exist."""


class EmptyError(StoreError):
    """Raised when a listing has no visible rows."""


class DeletedError(StoreError):
    """Raised when the entity exists but has been logically deleted."""


class ConflictError(StoreError):
    """Raised when a unique constraint rejects a write."""


class InvalidAuthDataError(RuntimeError):
    """Raised when credentials do not match."""


class InvalidTokenError(RuntimeError):
    """Raised when an identity token is malformed, forged or expired."""


USER_NOT_FOUND = "user not found"
BOOK_NOT_FOUND = "book not found"
BOOKS_LIST_EMPTY = "book database is empty"
BOOK_WAS_DELETED = "the book has been deleted"
INVALID_AUTH_DATA = "invalid password"
EMAIL_TAKEN = "email already registered"


__all__ = [
    "BOOK_NOT_FOUND",
    "BOOK_WAS_DELETED",
    "BOOKS_LIST_EMPTY",
    "ConflictError",
    "DeletedError",
    "EMAIL_TAKEN",
    "EmptyError",
    "INVALID_AUTH_DATA",
    "InvalidAuthDataError",
    "InvalidTokenError",
    "NotFoundError",
    "StoreError",
    "StoreTimeoutError",
    "USER_NOT_FOUND",
]
