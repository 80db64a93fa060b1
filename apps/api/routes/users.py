"""Router exposing registration and login."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse

from apps.api import services
from apps.api.dependencies import StorageDep, TokensDep
from apps.api.schemas import AuthRequest, RegisterRequest
from core.errors import ConflictError, InvalidAuthDataError, StoreError

router = APIRouter(prefix="/user", tags=["users"])

log = structlog.get_logger(__name__)


def _token_response(message: str, uid: str, token: str) -> JSONResponse:
    return JSONResponse({"uid": uid, "message": message}, headers={"Authorization": token})


@router.post("/register")
def register(payload: RegisterRequest, storage: StorageDep, tokens: TokensDep) -> JSONResponse:
    try:
        uid, token = services.register_user(
            storage,
            tokens,
            name=payload.name,
            email=payload.normalized_email(),
            password=payload.password,
        )
    except ConflictError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except StoreError as exc:
        log.error("users.register_failed", error=str(exc))
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return _token_response("user was saved", uid, token)


@router.post("/auth")
def auth(payload: AuthRequest, storage: StorageDep, tokens: TokensDep) -> JSONResponse:
    try:
        uid, token = services.authenticate_user(
            storage, tokens, email=payload.normalized_email(), password=payload.password
        )
    except InvalidAuthDataError as exc:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    except StoreError as exc:
        log.error("users.auth_failed", error=str(exc))
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return _token_response("auth completed", uid, token)


__all__ = ["router"]
