"""Test configuration and fixtures for the Library Lending core.

1. Isolated databases - each test gets its own SQLite file under tmp_path
2. Configuration isolation - the cached config and LIBRARY_LENDING_* env vars
   are reset around every test
3. Migrated stores - most tests start from a fully migrated schema
"""

import os
from collections.abc import Generator
from itertools import count
from pathlib import Path

import pytest
from sqlalchemy.orm import Session

from library_lending.config import LendingConfig, reset_config
from library_lending.database import (
    BookRepository,
    CirculationRepository,
    DatabaseManager,
    HistoryRepository,
    apply_migrations,
)

# === Database Fixtures ===


@pytest.fixture
def test_db_path(tmp_path: Path) -> Generator[Path, None, None]:
    """Provide a temporary database path for each test."""
    db_path = tmp_path / "test_books.db"
    yield db_path


@pytest.fixture
def test_config(test_db_path: Path) -> Generator[LendingConfig, None, None]:
    """Provide a test-specific configuration pointing at the temporary database."""
    reset_config()

    config = LendingConfig(
        database_path=test_db_path,
        busy_timeout=5.0,
        log_level="DEBUG",
    )

    yield config

    reset_config()


@pytest.fixture
def bare_db_manager(test_config: LendingConfig) -> Generator[DatabaseManager, None, None]:
    """A database manager over an empty (unmigrated) file database."""
    manager = DatabaseManager(config=test_config)
    yield manager
    manager.close()


@pytest.fixture
def db_manager(bare_db_manager: DatabaseManager) -> DatabaseManager:
    """A database manager whose store has every migration applied."""
    with bare_db_manager.session_scope() as session:
        apply_migrations(session)
    return bare_db_manager


@pytest.fixture
def session(db_manager: DatabaseManager) -> Generator[Session, None, None]:
    """Provide a session on the migrated store."""
    session = db_manager.create_session()
    yield session
    session.close()


@pytest.fixture
def memory_manager() -> Generator[DatabaseManager, None, None]:
    """A migrated in-memory store on a single shared connection."""
    manager = DatabaseManager("sqlite:///:memory:", config=LendingConfig(database_path=":memory:"))
    with manager.session_scope() as session:
        apply_migrations(session)
    yield manager
    manager.close()


# === Repository Fixtures ===


@pytest.fixture
def books(session: Session) -> BookRepository:
    return BookRepository(session)


@pytest.fixture
def history(session: Session) -> HistoryRepository:
    return HistoryRepository(session)


@pytest.fixture
def circulation(session: Session) -> CirculationRepository:
    return CirculationRepository(session)


# === Test Data Fixtures ===


@pytest.fixture
def dune_fields() -> dict:
    """The book used throughout the lending scenarios."""
    return {
        "title": "Dune",
        "author": "Herbert",
        "isbn": "978-0-441-01359-3",
        "published_year": 1965,
    }


@pytest.fixture
def make_book(books: BookRepository):
    """Factory creating books with unique ISBNs."""
    sequence = count(1)

    def _make_book(**overrides):
        n = next(sequence)
        fields = {
            "title": f"Book {n}",
            "author": f"Author {n}",
            "isbn": f"978-0-000-{n:05d}-0",
            "published_year": 2000 + n,
        }
        fields.update(overrides)
        return books.create(fields)

    return _make_book


@pytest.fixture
def sample_book(make_book):
    """One available book."""
    return make_book()


# === Environment Fixtures ===


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Provide an environment without LIBRARY_LENDING_* variables."""
    original_env = os.environ.copy()

    for key in list(os.environ.keys()):
        if key.startswith("LIBRARY_LENDING_"):
            del os.environ[key]

    yield

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture(autouse=True)
def cleanup_after_test():
    """Reset the cached configuration after each test."""
    yield
    reset_config()
