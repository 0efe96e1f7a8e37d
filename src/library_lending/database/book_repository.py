"""
Book repository implementation for the Library Lending core.

This is the entity store for the ``books`` table:

1. **Create**: validates the required fields, assigns the id and timestamps
2. **Read**: lookup by id and a paginated catalog listing
3. **Update**: partial updates that always refresh ``updated_at``

ISBN collisions reported by the store's UNIQUE constraint come back as
``DuplicateIsbnError``; any other database error propagates unchanged.
"""

import logging
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel
from sqlalchemy import desc, func, literal_column, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..database.schema import Book as BookDB
from ..database.schema import BookStatusEnum, utc_now
from ..models.book import Book, BookCreate, BookPage
from .repository import DuplicateIsbnError, MissingFieldError, PaginationParams
from .session import write_transaction

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "author", "isbn", "published_year")

UPDATABLE_FIELDS = ("title", "author", "isbn", "published_year", "status", "checked_out_at")

ISBN_CONSTRAINT = "UNIQUE constraint failed: books.isbn"


def is_isbn_conflict(error: IntegrityError) -> bool:
    """Whether an IntegrityError came from the books.isbn UNIQUE constraint."""
    return ISBN_CONSTRAINT in str(error.orig)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _to_column_value(value: Any) -> Any:
    """Convert model-level values to what the columns store."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC).isoformat(timespec="microseconds")
    return value


class BookRepository:
    """
    Repository for the book catalog.

    Holds the session it was built with; every method runs against that
    session, and write methods commit their own transaction.
    """

    def __init__(self, session: Session):
        self.session = session

    def create(self, fields: Mapping[str, Any] | BookCreate) -> Book:
        """
        Create a book.

        Args:
            fields: ``title``, ``author``, ``isbn`` and ``published_year``

        Returns:
            The book as stored, with ``status`` available and no checkout time

        Raises:
            MissingFieldError: A required field is absent, None or blank
            DuplicateIsbnError: Another book already has this ISBN
        """
        if isinstance(fields, BaseModel):
            fields = fields.model_dump()

        for field in REQUIRED_FIELDS:
            if _is_blank(fields.get(field)):
                raise MissingFieldError(field)

        data = BookCreate.model_validate({field: fields[field] for field in REQUIRED_FIELDS})

        now = utc_now()
        book = BookDB(
            id=str(uuid.uuid4()),
            title=data.title,
            author=data.author,
            isbn=data.isbn,
            published_year=data.published_year,
            status=BookStatusEnum.AVAILABLE.value,
            checked_out_at=None,
            created_at=now,
            updated_at=now,
        )

        with write_transaction(self.session):
            self.session.add(book)
            try:
                self.session.flush()
            except IntegrityError as e:
                if is_isbn_conflict(e):
                    raise DuplicateIsbnError(data.isbn) from e
                raise
            # Pick up anything the store filled in
            self.session.refresh(book)
            created = Book.model_validate(book)

        logger.debug("Created book %s (isbn %s)", created.id, created.isbn)
        return created

    def find_by_id(self, book_id: str) -> Book | None:
        """
        Get a book by id.

        Returns:
            The book, or None when no book has this id
        """
        book = self._select(book_id)
        if book is None:
            return None
        return Book.model_validate(book)

    def find_all(self, limit: int | None = None, offset: int = 0) -> BookPage:
        """
        Get a window of the catalog, most recently created first.

        ``total`` is counted separately over the whole table, so it is the
        same for every window. ``limit`` defaults to the configured page size
        and is capped at the configured maximum.
        """
        window = PaginationParams.for_session(self.session, limit, offset)

        query = (
            select(BookDB)
            .order_by(desc(BookDB.created_at), desc(literal_column("books.rowid")))
            .limit(window.limit)
            .offset(window.offset)
            .execution_options(populate_existing=True)
        )
        rows = self.session.scalars(query).all()

        total = self.session.scalar(select(func.count()).select_from(BookDB)) or 0

        return BookPage(books=[Book.model_validate(row) for row in rows], total=total)

    def update(self, book_id: str, fields: Mapping[str, Any] | BaseModel) -> Book | None:
        """
        Change some fields of a book.

        Only keys present in ``fields`` are written (unknown keys are
        ignored); ``updated_at`` is refreshed on every call. The result is
        checked before commit, so an update that would leave ``status`` and
        ``checked_out_at`` out of step is rolled back.

        Returns:
            The updated book, or None when no book has this id

        Raises:
            MissingFieldError: A required field is given as None or blank
            DuplicateIsbnError: The new ISBN belongs to another book
        """
        if isinstance(fields, BaseModel):
            fields = fields.model_dump(exclude_unset=True)

        for field in REQUIRED_FIELDS:
            if field in fields and _is_blank(fields[field]):
                raise MissingFieldError(field)

        changes = {
            field: _to_column_value(value)
            for field, value in fields.items()
            if field in UPDATABLE_FIELDS
        }
        changes["updated_at"] = utc_now()

        statement = (
            update(BookDB)
            .where(BookDB.id == book_id)
            .values(**changes)
            .execution_options(synchronize_session=False)
        )

        with write_transaction(self.session):
            try:
                result = self.session.execute(statement)
            except IntegrityError as e:
                if is_isbn_conflict(e):
                    raise DuplicateIsbnError(changes.get("isbn")) from e
                raise

            if result.rowcount == 0:
                return None

            updated = Book.model_validate(self._select(book_id))

        logger.debug("Updated book %s: %s", book_id, sorted(changes))
        return updated

    def _select(self, book_id: str) -> BookDB | None:
        query = (
            select(BookDB)
            .where(BookDB.id == str(book_id))
            .execution_options(populate_existing=True)
        )
        return self.session.execute(query).scalar_one_or_none()
