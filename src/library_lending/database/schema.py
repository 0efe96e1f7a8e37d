"""
SQLAlchemy mappings for the Library Lending store.

The tables themselves are created by the SQL scripts in ``migrations/`` and
tracked by the migration runner; the classes here only map those tables so the
repositories can query them. Column names and nullability must stay in step
with the scripts.

Timestamps are stored as ISO-8601 UTC text with microsecond precision, written
by ``utc_now``, so that ordering by the text column is chronological.
"""

import enum
from datetime import UTC, datetime

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utc_now() -> str:
    """Current time in the storage format used for every timestamp column."""
    return datetime.now(UTC).isoformat(timespec="microseconds")


class BookStatusEnum(str, enum.Enum):
    """Database values for books.status."""

    AVAILABLE = "available"
    CHECKED_OUT = "checked_out"


class HistoryActionEnum(str, enum.Enum):
    """Database values for checkout_history.action."""

    CHECKED_OUT = "checked_out"
    RETURNED = "returned"


class Book(Base):
    """
    Books table - the library catalog.

    ``status`` and ``checked_out_at`` are only changed together, by the
    circulation repository.
    """

    __tablename__ = "books"

    id = Column(String(36), primary_key=True)
    title = Column(Text, nullable=False)
    author = Column(Text, nullable=False)
    isbn = Column(Text, nullable=False, unique=True)
    published_year = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=BookStatusEnum.AVAILABLE.value)
    checked_out_at = Column(Text, nullable=True)

    created_at = Column(Text, nullable=False, default=utc_now)
    updated_at = Column(Text, nullable=False, default=utc_now)


class HistoryEntry(Base):
    """
    Checkout history table - append-only audit trail of transitions.

    Rows have no updated_at; they are never modified once written.
    """

    __tablename__ = "checkout_history"

    id = Column(String(36), primary_key=True)
    book_id = Column(String(36), ForeignKey("books.id"), nullable=False)
    action = Column(String(20), nullable=False)
    timestamp = Column(Text, nullable=False)

    __table_args__ = (Index("idx_checkout_history_book_id", "book_id"),)


class MigrationRecord(Base):
    """Ledger of applied migration scripts, one row per script name."""

    __tablename__ = "_migrations"

    name = Column(Text, primary_key=True)
    applied_at = Column(Text, nullable=False)
