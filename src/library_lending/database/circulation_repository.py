"""
Circulation repository implementation for the Library Lending core.

A book moves between two states:

    available --checkout--> checked_out --return--> available

Each transition is one write transaction that reads the book, checks the
current status, writes the new status and appends the matching history entry.
Either all of that is committed or none of it is.

The transaction starts with ``BEGIN IMMEDIATE`` (see ``write_transaction``),
so two callers transitioning the same book serialize on the store's write
lock: the second one reads the first one's committed result and is rejected.
The status update is additionally guarded by the expected source status, so a
transition whose precondition no longer holds changes nothing. Rejected
callers are not retried here.
"""

import logging
from typing import NamedTuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..database.schema import Book as BookDB
from ..database.schema import BookStatusEnum, HistoryActionEnum, utc_now
from ..models.book import Book
from ..models.circulation import HistoryPage
from .history_repository import HistoryRepository
from .repository import BookNotFoundError, InvalidTransitionError
from .session import write_transaction

logger = logging.getLogger(__name__)


class Transition(NamedTuple):
    """One edge of the lending state machine."""

    name: str
    source: BookStatusEnum
    target: BookStatusEnum
    action: HistoryActionEnum
    rejection: str


CHECKOUT = Transition(
    name="checkout",
    source=BookStatusEnum.AVAILABLE,
    target=BookStatusEnum.CHECKED_OUT,
    action=HistoryActionEnum.CHECKED_OUT,
    rejection=InvalidTransitionError.ALREADY_CHECKED_OUT,
)

RETURN = Transition(
    name="return",
    source=BookStatusEnum.CHECKED_OUT,
    target=BookStatusEnum.AVAILABLE,
    action=HistoryActionEnum.RETURNED,
    rejection=InvalidTransitionError.NOT_CHECKED_OUT,
)


class CirculationRepository:
    """
    Repository for checkout and return.

    Uses the history repository on the same session, so the audit entry is
    part of the transition's transaction.
    """

    def __init__(self, session: Session):
        """Initialize with database session and the history sub-repository."""
        self.session = session
        self.history_repo = HistoryRepository(session)

    def checkout(self, book_id: str) -> Book:
        """
        Check a book out.

        Returns:
            The book with status ``checked_out`` and ``checked_out_at`` set

        Raises:
            BookNotFoundError: No book has this id
            InvalidTransitionError: The book is already checked out
        """
        return self._transition(book_id, CHECKOUT)

    def return_book(self, book_id: str) -> Book:
        """
        Return a checked-out book.

        Returns:
            The book with status ``available`` and no ``checked_out_at``

        Raises:
            BookNotFoundError: No book has this id
            InvalidTransitionError: The book is not currently checked out
        """
        return self._transition(book_id, RETURN)

    def history(self, book_id: str, limit: int | None = None, offset: int = 0) -> HistoryPage:
        """
        Get a book's transition history, newest first.

        Raises:
            BookNotFoundError: No book has this id
        """
        if self._select(book_id) is None:
            raise BookNotFoundError(book_id)
        return self.history_repo.find_by_book(book_id, limit=limit, offset=offset)

    def _transition(self, book_id: str, transition: Transition) -> Book:
        with write_transaction(self.session):
            book = self._select(book_id, for_update=True)

            if book is None:
                raise BookNotFoundError(book_id)

            if book.status != transition.source.value:
                raise InvalidTransitionError(transition.rejection, book_id)

            now = utc_now()
            checked_out_at = now if transition.target is BookStatusEnum.CHECKED_OUT else None

            result = self.session.execute(
                update(BookDB)
                .where(BookDB.id == book_id, BookDB.status == transition.source.value)
                .values(
                    status=transition.target.value,
                    checked_out_at=checked_out_at,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidTransitionError(transition.rejection, book_id)

            self.history_repo.append(book_id, transition.action, timestamp=now)

            updated = Book.model_validate(self._select(book_id))

        logger.debug("Book %s: %s -> %s", book_id, transition.source.value, transition.target.value)
        return updated

    def _select(self, book_id: str, for_update: bool = False) -> BookDB | None:
        query = (
            select(BookDB)
            .where(BookDB.id == str(book_id))
            .execution_options(populate_existing=True)
        )
        if for_update:
            # No-op on SQLite, where BEGIN IMMEDIATE already holds the write lock
            query = query.with_for_update()
        return self.session.execute(query).scalar_one_or_none()
