"""Registration and login flows."""

from __future__ import annotations

import structlog

from apps.api.auth import TokenService, hash_password, verify_password
from apps.api.storage import Storage, User
from core.errors import INVALID_AUTH_DATA, InvalidAuthDataError, NotFoundError

log = structlog.get_logger(__name__)


def register_user(
    storage: Storage, tokens: TokenService, *, name: str, email: str, password: str
) -> tuple[str, str]:
    """Persist a new user and return ``(uid, token)``."""

    uid = storage.save_user(User(name=name, email=email, password_hash=hash_password(password)))
    log.info("users.registered", uid=uid)
    return uid, tokens.issue(uid)


def authenticate_user(
    storage: Storage, tokens: TokenService, *, email: str, password: str
) -> tuple[str, str]:
    """Check credentials and return ``(uid, token)``.

    Unknown email and wrong password both raise :class:`InvalidAuthDataError`.
    """

    try:
        uid, password_hash = storage.validate_user(email)
    except NotFoundError as exc:
        raise InvalidAuthDataError(str(exc)) from exc
    if not verify_password(password, password_hash):
        log.info("users.auth_rejected", uid=uid)
        raise InvalidAuthDataError(INVALID_AUTH_DATA)
    return uid, tokens.issue(uid)


__all__ = ["authenticate_user", "register_user"]
