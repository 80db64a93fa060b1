"""Service helpers package for API business logic."""

from .books import add_book, delete_book
from .users import authenticate_user, register_user

__all__ = ["add_book", "authenticate_user", "delete_book", "register_user"]
