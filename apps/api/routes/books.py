"""Router exposing book catalog endpoints."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Response, status

from apps.api import services
from apps.api.dependencies import BatcherDep, CurrentUid, StorageDep
from apps.api.schemas import BookCreate, BookOut
from core.errors import DeletedError, EmptyError, NotFoundError, StoreError

router = APIRouter(prefix="/books", tags=["books"])

log = structlog.get_logger(__name__)


def _no_content() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _internal_error(event: str, exc: StoreError) -> HTTPException:
    log.error(event, error=str(exc), error_type=type(exc).__name__)
    return HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get("/all-books", response_model=None)
def all_books(storage: StorageDep) -> Any:
    try:
        books = storage.get_books()
    except EmptyError:
        return _no_content()
    except StoreError as exc:
        raise _internal_error("books.list_failed", exc) from exc
    return [BookOut.from_book(book) for book in books]


@router.get("/my-books", response_model=None)
def my_books(storage: StorageDep, uid: CurrentUid) -> Any:
    try:
        books = storage.get_books_by_owner(uid)
    except EmptyError:
        return _no_content()
    except StoreError as exc:
        raise _internal_error("books.list_owner_failed", exc) from exc
    return [BookOut.from_book(book) for book in books]


@router.post("/add-book", status_code=status.HTTP_201_CREATED)
def add_book(payload: BookCreate, storage: StorageDep, uid: CurrentUid) -> dict[str, str]:
    try:
        bid = services.add_book(storage, owner_id=uid, title=payload.title, author=payload.author)
    except StoreError as exc:
        raise _internal_error("books.save_failed", exc) from exc
    return {"bid": bid, "message": "book was saved"}


@router.delete("/delete/{book_id}", response_model=None)
def delete_book(book_id: str, storage: StorageDep, batcher: BatcherDep) -> Any:
    try:
        services.delete_book(storage, batcher, book_id)
    except NotFoundError:
        return _no_content()
    except DeletedError as exc:
        raise HTTPException(status.HTTP_410_GONE, detail=str(exc)) from exc
    except StoreError as exc:
        raise _internal_error("books.delete_failed", exc) from exc
    return {"bid": book_id, "message": "book was deleted"}


@router.get("/{book_id}", response_model=None)
def get_book(book_id: str, storage: StorageDep) -> Any:
    try:
        book = storage.get_book_by_id(book_id)
    except (NotFoundError, DeletedError):
        return _no_content()
    except StoreError as exc:
        raise _internal_error("books.get_failed", exc) from exc
    return BookOut.from_book(book)


__all__ = ["router"]
