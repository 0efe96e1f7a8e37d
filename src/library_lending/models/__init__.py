"""
Library Lending models.

Pydantic models returned by the core's operations:
- Book: the lending unit and its status
- HistoryEntry: audit record of a checkout or return
- BookPage / HistoryPage: paginated results with an independent total
"""

from .book import Book, BookCreate, BookPage, BookStatus
from .circulation import HistoryAction, HistoryEntry, HistoryPage

__all__ = [
    "Book",
    "BookCreate",
    "BookPage",
    "BookStatus",
    "HistoryAction",
    "HistoryEntry",
    "HistoryPage",
]
