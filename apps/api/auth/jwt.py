"""Identity tokens (HS256 JWT) and password hashing."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from collections.abc import Callable, Mapping
from typing import Any

import bcrypt

from core.config import Settings
from core.errors import InvalidTokenError

_HEADER = {"alg": "HS256", "typ": "JWT"}


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(raw: str) -> bytes:
    padding = "=" * (-len(raw) % 4)
    return base64.urlsafe_b64decode(raw + padding)


def _json_dumps(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"), sort_keys=True)


def _json_loads(data: str) -> Mapping[str, Any]:
    loaded = json.loads(data)
    if not isinstance(loaded, Mapping):
        raise ValueError("JWT segment must be a mapping")
    return loaded


class TokenService:
    """Mint and verify stateless identity tokens.

    A token is valid iff its signature verifies against ``secret`` and the
    current time is before its ``exp`` claim. There is no refresh: an
    expired token means logging in again.
    """

    def __init__(
        self,
        secret: str,
        *,
        ttl_seconds: int = 3 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("JWT secret must not be empty")
        if ttl_seconds <= 0:
            raise ValueError("token lifetime must be positive")
        self._secret = secret.encode("utf-8")
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenService:
        return cls(settings.jwt_secret, ttl_seconds=settings.jwt_expiration_seconds)

    def _sign(self, message: str) -> str:
        digest = hmac.new(self._secret, message.encode("utf-8"), hashlib.sha256).digest()
        return _b64encode(digest)

    def issue(self, subject: str) -> str:
        now = int(self._clock())
        payload = {"sub": subject, "iat": now, "exp": now + self.ttl_seconds}
        header_segment = _b64encode(_json_dumps(_HEADER).encode("utf-8"))
        payload_segment = _b64encode(_json_dumps(payload).encode("utf-8"))
        signature_segment = self._sign(f"{header_segment}.{payload_segment}")
        return f"{header_segment}.{payload_segment}.{signature_segment}"

    def validate(self, token: str) -> str:
        """Return the token's subject or raise :class:`InvalidTokenError`."""

        try:
            header_segment, payload_segment, signature_segment = token.split(".")
        except ValueError as exc:
            raise InvalidTokenError("malformed token") from exc
        expected_signature = self._sign(f"{header_segment}.{payload_segment}")
        if not hmac.compare_digest(signature_segment, expected_signature):
            raise InvalidTokenError("invalid token signature")
        try:
            header = _json_loads(_b64decode(header_segment).decode("utf-8"))
            payload = _json_loads(_b64decode(payload_segment).decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as exc:
            raise InvalidTokenError("invalid token payload") from exc
        if header.get("alg") != _HEADER["alg"]:
            raise InvalidTokenError("unexpected token algorithm")
        exp = payload.get("exp")
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            raise InvalidTokenError("token has no expiry")
        if self._clock() >= exp:
            raise InvalidTokenError("token expired")
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise InvalidTokenError("invalid token subject")
        return subject


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False


def token_from_header(value: str | None) -> str:
    """Accept both a bare token and ``Bearer <token>``."""

    if not value:
        raise InvalidTokenError("missing token")
    scheme, _, credentials = value.strip().partition(" ")
    if credentials and scheme.lower() == "bearer":
        return credentials.strip()
    return value.strip()


__all__ = [
    "TokenService",
    "hash_password",
    "token_from_header",
    "verify_password",
]
