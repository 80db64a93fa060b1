"""Authentication helpers for the API layer."""

from .jwt import TokenService, hash_password, token_from_header, verify_password

__all__ = [
    "TokenService",
    "hash_password",
    "token_from_header",
    "verify_password",
]
