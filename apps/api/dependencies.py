"""FastAPI dependencies resolving per-app collaborators from ``app.state``."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import Depends, HTTPException, Request, status

from apps.api.auth import TokenService, token_from_header
from apps.api.storage import Storage
from core.batcher import DeleteBatcher
from core.errors import InvalidTokenError

log = structlog.get_logger(__name__)


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_tokens(request: Request) -> TokenService:
    return request.app.state.tokens


def get_batcher(request: Request) -> DeleteBatcher:
    return request.app.state.batcher


def get_current_uid(
    request: Request, tokens: Annotated[TokenService, Depends(get_tokens)]
) -> str:
    """Resolve the caller's user id from the ``Authorization`` header."""

    try:
        token = token_from_header(request.headers.get("authorization"))
        return tokens.validate(token)
    except InvalidTokenError as exc:
        log.info("auth.token_rejected", reason=str(exc))
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc


StorageDep = Annotated[Storage, Depends(get_storage)]
TokensDep = Annotated[TokenService, Depends(get_tokens)]
BatcherDep = Annotated[DeleteBatcher, Depends(get_batcher)]
CurrentUid = Annotated[str, Depends(get_current_uid)]

__all__ = [
    "BatcherDep",
    "CurrentUid",
    "StorageDep",
    "TokensDep",
    "get_batcher",
    "get_current_uid",
    "get_storage",
    "get_tokens",
]
