"""
Checkout history repository for the Library Lending core.

The history table is an append-only audit ledger: one row per checkout or
return. ``append`` deliberately works inside whatever transaction the caller
has open and never commits, which is how the circulation repository writes a
status change and its history row atomically.
"""

import uuid

from sqlalchemy import desc, func, literal_column, select
from sqlalchemy.orm import Session

from ..database.schema import HistoryActionEnum, utc_now
from ..database.schema import HistoryEntry as HistoryEntryDB
from ..models.circulation import HistoryAction, HistoryEntry, HistoryPage
from .repository import PaginationParams


class HistoryRepository:
    """Append and read audit entries for books."""

    def __init__(self, session: Session):
        self.session = session

    def append(
        self, book_id: str, action: HistoryAction | str, timestamp: str | None = None
    ) -> HistoryEntry:
        """
        Record a transition for a book.

        Must be called inside an open transaction; the row is flushed so
        constraint violations surface here, but committing is left to the
        caller.

        Args:
            book_id: Book the transition applied to
            action: ``checked_out`` or ``returned``
            timestamp: Storage-format time of the transition; defaults to now

        Returns:
            The new history entry
        """
        entry = HistoryEntryDB(
            id=str(uuid.uuid4()),
            book_id=book_id,
            action=HistoryActionEnum(action).value,
            timestamp=timestamp or utc_now(),
        )
        self.session.add(entry)
        self.session.flush()
        return HistoryEntry.model_validate(entry)

    def find_by_book(
        self, book_id: str, limit: int | None = None, offset: int = 0
    ) -> HistoryPage:
        """
        Get a window of a book's history, newest first.

        ``total`` counts every entry for the book regardless of the window. A
        book without history (or an unknown id) yields an empty page.
        """
        window = PaginationParams.for_session(self.session, limit, offset)

        query = (
            select(HistoryEntryDB)
            .where(HistoryEntryDB.book_id == book_id)
            # rowid keeps insertion order among identical timestamps
            .order_by(
                desc(HistoryEntryDB.timestamp),
                desc(literal_column("checkout_history.rowid")),
            )
            .limit(window.limit)
            .offset(window.offset)
        )
        rows = self.session.scalars(query).all()

        count_query = (
            select(func.count())
            .select_from(HistoryEntryDB)
            .where(HistoryEntryDB.book_id == book_id)
        )
        total = self.session.scalar(count_query) or 0

        return HistoryPage(
            entries=[HistoryEntry.model_validate(row) for row in rows],
            total=total,
        )
