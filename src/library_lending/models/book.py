"""
Book model for the Library Lending core.

A book is the lending unit. It is created by the entity store, edited by the
entity store and moved between ``available`` and ``checked_out`` by the
circulation repository. The model mirrors one row of the ``books`` table and
is what every book operation returns.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BookStatus(str, Enum):
    """Lending state of a book."""

    AVAILABLE = "available"
    CHECKED_OUT = "checked_out"


class Book(BaseModel):
    """
    A book record as persisted.

    ``checked_out_at`` is set exactly when the book is checked out; a row that
    breaks that correlation is rejected rather than handed to callers.
    """

    id: str = Field(
        ...,
        description="UUID generated when the book was created",
        examples=["7d3c1e8a-2f7b-4b0c-9c55-0f6a1e0b9a11"],
    )

    title: str = Field(..., description="The title of the book", min_length=1)

    author: str = Field(..., description="The author of the book", min_length=1)

    isbn: str = Field(
        ...,
        description="ISBN, unique across all books",
        examples=["978-0-441-01359-3"],
    )

    published_year: int = Field(..., description="Year the book was published", examples=[1965])

    status: BookStatus = Field(
        default=BookStatus.AVAILABLE,
        description="Whether the book can currently be checked out",
    )

    checked_out_at: datetime | None = Field(
        None,
        description="When the current checkout started; None while available",
    )

    created_at: datetime = Field(..., description="When the book was added")

    updated_at: datetime = Field(..., description="When the book record last changed")

    @model_validator(mode="after")
    def validate_checkout_timestamp(self) -> "Book":
        """Ensure checked_out_at is present if and only if the book is checked out."""
        if (self.status == BookStatus.CHECKED_OUT) != (self.checked_out_at is not None):
            raise ValueError("checked_out_at must be set exactly when status is checked_out")
        return self

    @property
    def is_available(self) -> bool:
        return self.status == BookStatus.AVAILABLE

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": "7d3c1e8a-2f7b-4b0c-9c55-0f6a1e0b9a11",
                "title": "Dune",
                "author": "Herbert",
                "isbn": "978-0-441-01359-3",
                "published_year": 1965,
                "status": "available",
                "checked_out_at": None,
                "created_at": "2024-03-01T10:15:00.000000+00:00",
                "updated_at": "2024-03-01T10:15:00.000000+00:00",
            }
        },
    )


class BookCreate(BaseModel):
    """Fields a caller supplies to create a book."""

    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    isbn: str = Field(..., min_length=1)
    published_year: int


class BookPage(BaseModel):
    """One window of the catalog plus the size of the whole catalog."""

    books: list[Book]
    total: int = Field(..., ge=0)
