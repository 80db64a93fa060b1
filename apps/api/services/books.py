"""Book operations that span the store and the delete batcher."""

from __future__ import annotations

import structlog

from apps.api.storage import Book, Storage
from core.batcher import DeleteBatcher

log = structlog.get_logger(__name__)


def add_book(storage: Storage, *, owner_id: str, title: str, author: str) -> str:
    bid = storage.save_book(Book(title=title, author=author, owner_id=owner_id))
    log.info("books.saved", bid=bid, owner_id=owner_id)
    return bid


def delete_book(storage: Storage, batcher: DeleteBatcher, book_id: str) -> None:
    """Logically delete a book, then count it toward the next purge."""

    storage.delete_book(book_id)
    if not batcher.signal():
        log.warning("books.delete_not_batched", bid=book_id)
    log.info("books.deleted", bid=book_id)


__all__ = ["add_book", "delete_book"]
