from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from apps.api.storage import Book

# bcrypt rejects secrets longer than 72 bytes, not characters.
MAX_PASSWORD_BYTES = 72


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes in UTF-8")
    return value


class RegisterRequest(BaseModel):
    name: str = Field(default="", max_length=255)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(
        min_length=1, max_length=72, validation_alias=AliasChoices("password", "pass")
    )

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)

    def normalized_email(self) -> str:
        return self.email.strip().lower()


class AuthRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(
        min_length=1, max_length=72, validation_alias=AliasChoices("password", "pass")
    )

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        return _check_password_bytes(value)

    def normalized_email(self) -> str:
        return self.email.strip().lower()


class BookCreate(BaseModel):
    """Client payload for a new book. Ownership always comes from the token."""

    model_config = ConfigDict(extra="ignore")

    title: str = Field(
        min_length=1, max_length=255, validation_alias=AliasChoices("title", "lable")
    )
    author: str = Field(min_length=1, max_length=255)


class BookOut(BaseModel):
    bid: str
    title: str
    author: str
    uid: str

    @classmethod
    def from_book(cls, book: Book) -> BookOut:
        return cls(bid=book.bid, title=book.title, author=book.author, uid=book.owner_id)
