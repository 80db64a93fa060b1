from __future__ import annotations

import pytest

from apps.api.auth import TokenService, hash_password, token_from_header, verify_password
from core.config import Settings
from core.errors import InvalidTokenError


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_issue_and_validate_roundtrip() -> None:
    tokens = TokenService("secret")
    token = tokens.issue("user-1")

    assert token.count(".") == 2
    assert tokens.validate(token) == "user-1"


def test_token_expires_after_three_hours() -> None:
    clock = FakeClock()
    tokens = TokenService("secret", clock=clock)
    token = tokens.issue("user-1")

    clock.now += 3 * 60 * 60 - 1
    assert tokens.validate(token) == "user-1"

    clock.now += 1
    with pytest.raises(InvalidTokenError, match="expired"):
        tokens.validate(token)


def test_rejects_foreign_and_tampered_tokens() -> None:
    tokens = TokenService("secret")
    other = TokenService("other-secret")
    token = tokens.issue("user-1")

    with pytest.raises(InvalidTokenError):
        other.validate(token)

    header, payload, signature = token.split(".")
    with pytest.raises(InvalidTokenError):
        tokens.validate(f"{header}.{payload}x.{signature}")
    with pytest.raises(InvalidTokenError, match="malformed"):
        tokens.validate("not-a-token")
    with pytest.raises(InvalidTokenError):
        tokens.validate("")


def test_from_settings_uses_configured_lifetime() -> None:
    settings = Settings(jwt_secret="configured", jwt_expiration_seconds=60)
    tokens = TokenService.from_settings(settings)

    assert tokens.ttl_seconds == 60
    assert tokens.validate(tokens.issue("abc")) == "abc"


def test_rejects_empty_secret() -> None:
    with pytest.raises(ValueError):
        TokenService("")
    with pytest.raises(ValueError):
        TokenService("secret", ttl_seconds=0)


def test_token_from_header_accepts_bearer_and_raw() -> None:
    assert token_from_header("Bearer abc.def.ghi") == "abc.def.ghi"
    assert token_from_header("abc.def.ghi") == "abc.def.ghi"
    with pytest.raises(InvalidTokenError):
        token_from_header(None)
    with pytest.raises(InvalidTokenError):
        token_from_header("")


def test_password_hashing() -> None:
    hashed = hash_password("hunter2")

    assert hashed != "hunter2"
    assert verify_password("hunter2", hashed) is True
    assert verify_password("wrong", hashed) is False
    assert verify_password("hunter2", "not-a-bcrypt-hash") is False
