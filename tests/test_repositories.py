from __future__ import annotations

from collections.abc import Iterator

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker

from apps.api.db import models, repositories
from apps.api.db.base import Base


@pytest.fixture(scope="module")
def engine() -> Iterator:
    engine = create_engine("sqlite:///:memory:", future=True)
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)


@pytest.fixture
def db_session(engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(bind=connection, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture
def owner(db_session: Session) -> models.User:
    user_repo = repositories.UserRepository(db_session)
    owner = user_repo.create(name="Owner", email="owner@example.com", password_hash="x")
    db_session.flush()
    return owner


def test_book_soft_delete_and_purge(db_session: Session, owner: models.User) -> None:
    repo = repositories.BookRepository(db_session)

    alpha = repo.create(title="Alpha", author="A", owner_id=owner.uid)
    beta = repo.create(title="Beta", author="B", owner_id=owner.uid)
    gamma = repo.create(title="Gamma", author="C", owner_id=owner.uid)

    assert repo.soft_delete(beta.bid) is True
    assert repo.soft_delete(beta.bid) is False
    assert repo.soft_delete("missing") is False

    visible = {book.title for book in repo.list()}
    assert visible == {"Alpha", "Gamma"}
    assert {book.bid for book in repo.list(owner_id=owner.uid)} == {alpha.bid, gamma.bid}
    assert repo.list(owner_id="someone-else") == []

    assert repo.get(beta.bid) is None
    hidden = repo.get(beta.bid, include_deleted=True)
    assert hidden is not None
    db_session.refresh(hidden)
    assert hidden.deleted is True

    total_rows = db_session.scalar(select(func.count()).select_from(models.Book))
    assert total_rows == 3

    assert repo.purge_deleted() == 1
    assert repo.purge_deleted() == 0

    remaining_total = db_session.scalar(select(func.count()).select_from(models.Book))
    assert remaining_total == 2
    assert repo.get(alpha.bid) is not None
    assert repo.get(gamma.bid) is not None


def test_user_lookup_by_email(db_session: Session, owner: models.User) -> None:
    repo = repositories.UserRepository(db_session)

    found = repo.get_by_email("owner@example.com")
    assert found is not None
    assert found.uid == owner.uid
    assert found.password_hash == "x"
    assert repo.get_by_email("nobody@example.com") is None
