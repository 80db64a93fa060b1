from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from apps.api.db import models
from apps.api.main import create_app
from apps.api.storage import MemoryStorage
from core.batcher import BatcherState
from core.config import Settings


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    return create_app(settings)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as client:
        yield client


def _register(client: TestClient, email: str = "alice@example.com", password: str = "pw") -> str:
    response = client.post(
        "/user/register", json={"name": "Alice", "email": email, "pass": password}
    )
    assert response.status_code == 200, response.text
    return response.headers["Authorization"]


def _add_book(client: TestClient, token: str, title: str, author: str = "Anon") -> str:
    response = client.post(
        "/books/add-book",
        json={"lable": title, "author": author},
        headers={"Authorization": token},
    )
    assert response.status_code == 201, response.text
    return response.json()["bid"]


def _drain(client: TestClient, app: FastAPI) -> None:
    client.portal.call(app.state.batcher.join)


def test_health_and_request_id(client: TestClient) -> None:
    response = client.get("/health", headers={"X-Request-ID": "abc-123"})

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"] == "abc-123"
    assert client.get("/health").headers["X-Request-ID"]


def test_register_then_auth_issues_tokens(client: TestClient, app: FastAPI) -> None:
    register = client.post(
        "/user/register",
        json={"name": "Alice", "email": "Alice@Example.com", "pass": "pw"},
    )
    assert register.status_code == 200
    uid = register.json()["uid"]
    token = register.headers["Authorization"]
    assert app.state.tokens.validate(token) == uid

    login = client.post("/user/auth", json={"email": "alice@example.com", "pass": "pw"})
    assert login.status_code == 200
    assert login.json()["uid"] == uid
    assert app.state.tokens.validate(login.headers["Authorization"]) == uid


def test_auth_rejects_bad_credentials(client: TestClient) -> None:
    _register(client)

    wrong = client.post("/user/auth", json={"email": "alice@example.com", "pass": "nope"})
    unknown = client.post("/user/auth", json={"email": "bob@example.com", "pass": "pw"})

    assert wrong.status_code == 401
    assert unknown.status_code == 401
    assert "Authorization" not in wrong.headers


def test_duplicate_registration_conflicts(client: TestClient) -> None:
    _register(client)

    response = client.post(
        "/user/register", json={"name": "Again", "email": "alice@example.com", "pass": "x"}
    )
    assert response.status_code == 409


def test_password_limit_counts_utf8_bytes(client: TestClient) -> None:
    fits = "é" * 36
    response = client.post(
        "/user/register", json={"name": "Zoé", "email": "zoe@example.com", "pass": fits}
    )
    assert response.status_code == 200
    login = client.post("/user/auth", json={"email": "zoe@example.com", "pass": fits})
    assert login.status_code == 200

    too_long = "é" * 40
    rejected = client.post(
        "/user/register", json={"name": "Zoé", "email": "zoe2@example.com", "pass": too_long}
    )
    assert rejected.status_code == 400
    assert rejected.json()["error"] == "invalid request body"
    assert client.post(
        "/user/auth", json={"email": "zoe@example.com", "pass": too_long}
    ).status_code == 400


def test_malformed_bodies_are_bad_requests(client: TestClient) -> None:
    token = _register(client)

    assert client.post("/user/register", json={"name": "NoEmail"}).status_code == 400
    malformed = client.post(
        "/user/auth", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert malformed.status_code == 400
    response = client.post(
        "/books/add-book", json={"author": "Missing title"}, headers={"Authorization": token}
    )
    assert response.status_code == 400
    assert response.json()["error"] == "invalid request body"


def test_protected_routes_require_valid_token(client: TestClient) -> None:
    assert client.get("/books/my-books").status_code == 401
    assert (
        client.get("/books/my-books", headers={"Authorization": "garbage"}).status_code == 401
    )
    response = client.post(
        "/books/add-book",
        json={"lable": "Dune", "author": "Herbert"},
        headers={"Authorization": "Bearer a.b.c"},
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid token"


def test_empty_catalog_returns_no_content(client: TestClient) -> None:
    token = _register(client)

    assert client.get("/books/all-books").status_code == 204
    assert client.get("/books/my-books", headers={"Authorization": token}).status_code == 204


def test_books_are_scoped_to_their_owner(client: TestClient) -> None:
    alice = _register(client, "alice@example.com")
    bob = _register(client, "bob@example.com")
    dune = _add_book(client, alice, "Dune", "Herbert")
    _add_book(client, alice, "Emma", "Austen")
    _add_book(client, bob, "Ulysses", "Joyce")

    mine = client.get("/books/my-books", headers={"Authorization": alice})
    assert mine.status_code == 200
    assert {book["title"] for book in mine.json()} == {"Dune", "Emma"}

    everyone = client.get("/books/all-books")
    assert everyone.status_code == 200
    assert len(everyone.json()) == 3

    single = client.get(f"/books/{dune}")
    assert single.status_code == 200
    assert single.json()["author"] == "Herbert"
    assert client.get("/books/unknown-id").status_code == 204


def test_owner_always_comes_from_token(client: TestClient, app: FastAPI) -> None:
    alice = _register(client, "alice@example.com")
    uid = app.state.tokens.validate(alice)

    bid = _add_book(client, alice, "Dune")
    book = client.get(f"/books/{bid}").json()

    assert book["uid"] == uid


def test_deleted_book_disappears_from_reads(client: TestClient) -> None:
    token = _register(client)
    bid = _add_book(client, token, "Dune")

    response = client.delete(f"/books/delete/{bid}")
    assert response.status_code == 200

    assert client.get(f"/books/{bid}").status_code == 204
    assert client.get("/books/all-books").status_code == 204
    assert client.delete(f"/books/delete/{bid}").status_code == 204
    assert client.delete("/books/delete/never-existed").status_code == 204


def test_five_deletes_trigger_one_purge(client: TestClient, app: FastAPI) -> None:
    storage: MemoryStorage = app.state.storage
    token = _register(client)
    bids = [_add_book(client, token, f"Book {i}") for i in range(6)]

    for bid in bids[:4]:
        assert client.delete(f"/books/delete/{bid}").status_code == 200
    _drain(client, app)
    assert app.state.batcher.purges == 0
    assert storage.stored_book_ids() == set(bids)

    assert client.delete(f"/books/delete/{bids[4]}").status_code == 200
    _drain(client, app)
    assert app.state.batcher.purges == 1
    assert storage.stored_book_ids() == {bids[5]}


def test_repeat_delete_policy_reports_gone() -> None:
    settings = Settings(
        database_url="memory://", jwt_secret="test-secret", repeat_delete="already_deleted"
    )
    with TestClient(create_app(settings)) as client:
        token = _register(client)
        bid = _add_book(client, token, "Dune")

        assert client.delete(f"/books/delete/{bid}").status_code == 200
        assert client.delete(f"/books/delete/{bid}").status_code == 410


def test_failed_purge_marks_app_fatal(settings: Settings) -> None:
    class BrokenPurgeStorage(MemoryStorage):
        def purge_deleted(self) -> None:
            raise RuntimeError("purge exploded")

    fatal: list[BaseException] = []
    settings = settings.model_copy(update={"delete_batch_size": 1})
    app = create_app(settings, storage=BrokenPurgeStorage(), on_fatal=fatal.append)

    with TestClient(app) as client:
        token = _register(client)
        first = _add_book(client, token, "One")
        second = _add_book(client, token, "Two")

        assert client.delete(f"/books/delete/{first}").status_code == 200
        _drain(client, app)

        assert app.state.batcher.state is BatcherState.FAILED
        assert [str(exc) for exc in fatal] == ["purge exploded"]
        assert app.state.fatal_error is fatal[0]
        # The logical delete still succeeds; it is just no longer batched.
        assert client.delete(f"/books/delete/{second}").status_code == 200


def test_database_backed_app_runs_migrations_and_purges(tmp_path: Path) -> None:
    settings = Settings(
        database_url=f"sqlite:///{tmp_path / 'api.db'}",
        jwt_secret="test-secret",
        delete_batch_size=2,
    )
    app = create_app(settings)

    with TestClient(app) as client:
        token = _register(client)
        bids = [_add_book(client, token, f"Book {i}") for i in range(3)]
        engine = app.state.storage.engine

        def count_rows() -> int:
            with engine.connect() as connection:
                return connection.scalar(select(func.count()).select_from(models.Book.__table__))

        assert client.delete(f"/books/delete/{bids[0]}").status_code == 200
        _drain(client, app)
        assert count_rows() == 3

        assert client.delete(f"/books/delete/{bids[1]}").status_code == 200
        _drain(client, app)
        assert count_rows() == 1

        mine = client.get("/books/my-books", headers={"Authorization": token})
        assert [book["bid"] for book in mine.json()] == [bids[2]]

    assert app.state.storage is None
