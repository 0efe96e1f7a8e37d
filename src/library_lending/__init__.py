"""
Library Lending core.

Persistence and lifecycle engine for a small library-lending backend:
books are created and listed, checked out and returned, and every
checkout/return is recorded in an append-only history.

Key Components:
- config: Settings loaded from LIBRARY_LENDING_* environment variables
- models: Pydantic models returned by every operation
- database: Connection provider, migrations, repositories and domain errors

Typical host wiring:

    manager = DatabaseManager()
    with manager.session_scope() as session:
        apply_migrations(session)

    with manager.session_scope() as session:
        book = BookRepository(session).create({...})
        CirculationRepository(session).checkout(book.id)
"""

__version__ = "0.1.0"

from .config import LendingConfig, configure_logging, get_config, reset_config
from .database import (
    ERROR_STATUS_CODES,
    BookNotFoundError,
    BookRepository,
    CirculationRepository,
    DatabaseManager,
    DuplicateIsbnError,
    ErrorKind,
    HistoryRepository,
    InvalidTransitionError,
    LendingError,
    MigrationError,
    MigrationRunner,
    MissingFieldError,
    PaginationParams,
    apply_migrations,
)
from .models import Book, BookCreate, BookPage, BookStatus, HistoryAction, HistoryEntry, HistoryPage

__all__ = [
    "ERROR_STATUS_CODES",
    "Book",
    "BookCreate",
    "BookNotFoundError",
    "BookPage",
    "BookRepository",
    "BookStatus",
    "CirculationRepository",
    "DatabaseManager",
    "DuplicateIsbnError",
    "ErrorKind",
    "HistoryAction",
    "HistoryEntry",
    "HistoryPage",
    "HistoryRepository",
    "InvalidTransitionError",
    "LendingConfig",
    "LendingError",
    "MigrationError",
    "MigrationRunner",
    "MissingFieldError",
    "PaginationParams",
    "__version__",
    "apply_migrations",
    "configure_logging",
    "get_config",
    "reset_config",
]
