import sys
from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlalchemy.engine import Engine

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from apps.api.db.migrations import create_schema  # noqa: E402
from apps.api.db.session import build_engine  # noqa: E402
from apps.api.storage import DatabaseStorage, MemoryStorage  # noqa: E402
from core import config  # noqa: E402
from core.config import Settings  # noqa: E402

PROJECT_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in config._ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(PROJECT_ROOT)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="memory://",
        jwt_secret="test-secret",
        delete_batch_size=5,
    )


@pytest.fixture
def sqlite_engine(tmp_path: Path) -> Iterator[Engine]:
    engine = build_engine(f"sqlite:///{tmp_path / 'store.db'}", timeout=2.0)
    create_schema(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def database_storage(sqlite_engine: Engine) -> DatabaseStorage:
    return DatabaseStorage(sqlite_engine)


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()
