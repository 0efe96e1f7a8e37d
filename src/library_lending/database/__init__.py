"""
Database package for the Library Lending core.

This package provides:
- SQLAlchemy mappings for the tables created by the migrations (schema.py)
- The connection provider and write-transaction bracket (session.py)
- The SQL migration runner and its scripts (migrate.py, migrations/)
- Repositories for books, checkout history and circulation
- The tagged domain errors every repository raises (repository.py)
"""

from .book_repository import BookRepository
from .circulation_repository import CirculationRepository
from .history_repository import HistoryRepository
from .migrate import MigrationRunner, apply_migrations
from .repository import (
    ERROR_STATUS_CODES,
    BookNotFoundError,
    DuplicateIsbnError,
    ErrorKind,
    InvalidTransitionError,
    LendingError,
    MigrationError,
    MissingFieldError,
    PaginationParams,
)
from .schema import Base, Book, BookStatusEnum, HistoryActionEnum, HistoryEntry, MigrationRecord
from .session import DatabaseManager, write_transaction

__all__ = [
    "ERROR_STATUS_CODES",
    "Base",
    "Book",
    "BookNotFoundError",
    "BookRepository",
    "BookStatusEnum",
    "CirculationRepository",
    "DatabaseManager",
    "DuplicateIsbnError",
    "ErrorKind",
    "HistoryActionEnum",
    "HistoryEntry",
    "HistoryRepository",
    "InvalidTransitionError",
    "LendingError",
    "MigrationError",
    "MigrationRecord",
    "MigrationRunner",
    "MissingFieldError",
    "PaginationParams",
    "apply_migrations",
    "write_transaction",
]
