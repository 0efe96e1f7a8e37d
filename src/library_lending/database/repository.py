"""
Shared repository primitives for the Library Lending core.

This module holds what every repository needs:

1. **Errors**: a closed set of domain errors, each tagged with an
   ``ErrorKind``. The boundary layer switches on ``error.kind`` (or looks it
   up in ``ERROR_STATUS_CODES``) instead of matching messages or classes.
2. **Pagination**: limit/offset parameters and the conversion from the
   page-numbered queries HTTP callers send.

Errors raised by SQLAlchemy or the driver that the core does not recognise
are not wrapped; they propagate as they are.
"""

import enum

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..config import LendingConfig, get_config

# Session.info key under which DatabaseManager publishes its LendingConfig
CONFIG_INFO_KEY = "library_lending.config"


class ErrorKind(str, enum.Enum):
    """Tag carried by every domain error."""

    MISSING_FIELD = "missing_field"
    DUPLICATE_ISBN = "duplicate_isbn"
    BOOK_NOT_FOUND = "book_not_found"
    INVALID_TRANSITION = "invalid_transition"
    MIGRATION_FAILED = "migration_failed"


ERROR_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.MISSING_FIELD: 400,
    ErrorKind.DUPLICATE_ISBN: 409,
    ErrorKind.BOOK_NOT_FOUND: 404,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.MIGRATION_FAILED: 500,
}


class LendingError(Exception):
    """Base class for domain errors raised by the core."""

    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> int:
        """HTTP status a boundary layer should answer with."""
        return ERROR_STATUS_CODES[self.kind]

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}


class MissingFieldError(LendingError):
    """A required field was absent when creating a book."""

    kind = ErrorKind.MISSING_FIELD

    def __init__(self, field: str):
        super().__init__(f"Missing required field: {field}")
        self.field = field


class DuplicateIsbnError(LendingError):
    """Another book already uses the ISBN."""

    kind = ErrorKind.DUPLICATE_ISBN

    def __init__(self, isbn: str | None = None):
        super().__init__("A book with this ISBN already exists")
        self.isbn = isbn


class BookNotFoundError(LendingError):
    """The referenced book does not exist."""

    kind = ErrorKind.BOOK_NOT_FOUND

    def __init__(self, book_id: str):
        super().__init__("Book not found")
        self.book_id = book_id


class InvalidTransitionError(LendingError):
    """The requested transition is not allowed from the book's current status."""

    kind = ErrorKind.INVALID_TRANSITION

    ALREADY_CHECKED_OUT = "already checked out"
    NOT_CHECKED_OUT = "not currently checked out"

    def __init__(self, reason: str, book_id: str | None = None):
        super().__init__(f"Book is {reason}")
        self.reason = reason
        self.book_id = book_id


class MigrationError(LendingError):
    """A migration script failed; the schema is incomplete."""

    kind = ErrorKind.MIGRATION_FAILED

    def __init__(self, name: str, cause: Exception):
        super().__init__(f"Migration {name} failed: {cause}")
        self.name = name


class PaginationParams(BaseModel):
    """Limit/offset window for list operations."""

    limit: int = Field(default=20, ge=1)
    offset: int = Field(default=0, ge=0)

    @classmethod
    def for_session(
        cls, session: Session, limit: int | None = None, offset: int = 0
    ) -> "PaginationParams":
        """
        Build a window using the page sizes configured for the session's store.

        A missing ``limit`` becomes the configured default and a larger one is
        cut down to the configured maximum. A ``limit`` below 1 or a negative
        ``offset`` still fails validation.
        """
        config = session.info.get(CONFIG_INFO_KEY) or get_config()
        if limit is None:
            limit = config.default_page_size
        return cls(limit=min(limit, config.max_page_size), offset=offset)

    @classmethod
    def from_page(
        cls, page: int | None, limit: int | None, config: LendingConfig | None = None
    ) -> "PaginationParams":
        """
        Build a window from a 1-based page number and page size.

        Values outside ``page >= 1`` and ``1 <= limit <= max_page_size`` fall
        back to the first page and the configured default size rather than
        failing.
        """
        config = config or get_config()
        if page is None or page < 1:
            page = 1
        if limit is None or limit < 1 or limit > config.max_page_size:
            limit = config.default_page_size
        return cls(limit=limit, offset=(page - 1) * limit)
