"""
Circulation models for the Library Lending core.

Every checkout and return leaves a ``HistoryEntry`` behind. Entries are
written in the same transaction as the status change they describe and are
never edited afterwards, so a book's history is an exact account of its
lending lifecycle.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class HistoryAction(str, Enum):
    """Transition recorded by a history entry."""

    CHECKED_OUT = "checked_out"
    RETURNED = "returned"


class HistoryEntry(BaseModel):
    """An immutable audit record of one lifecycle transition."""

    id: str = Field(..., description="UUID of the entry")

    book_id: str = Field(..., description="Book the transition applied to")

    action: HistoryAction = Field(..., description="Which transition happened")

    timestamp: datetime = Field(..., description="When the transition was recorded")

    model_config = ConfigDict(from_attributes=True, frozen=True)


class HistoryPage(BaseModel):
    """One window of a book's history, newest first, plus the full entry count."""

    entries: list[HistoryEntry]
    total: int = Field(..., ge=0)
