"""
Book models for the Lending Library.

A book row doubles as the inventory counter for its copies:
``available_copies`` is decremented when a loan is validated and incremented
when the copy comes back. The models here are the read side; all writes to
the counter go through ``BookRepository``.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class BookStatus(str, Enum):
    """Catalog status of a book."""

    AVAILABLE = "available"
    BORROWED = "borrowed"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"
    LOST = "lost"
    DELETED = "deleted"


# Statuses the inventory counter may overwrite when copies move
CIRCULATING_STATUSES = (BookStatus.AVAILABLE, BookStatus.BORROWED)


class Book(BaseModel):
    """A book in the catalog."""

    id: int
    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=200)
    isbn: str | None = Field(None, description="ISBN-10 or ISBN-13 without hyphens")
    category: str | None = None
    description: str | None = Field(None, max_length=2000)
    total_copies: int = Field(..., ge=0)
    available_copies: int = Field(..., ge=0)
    status: BookStatus = BookStatus.AVAILABLE
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="after")
    def validate_copies(self) -> "Book":
        """Ensure available copies doesn't exceed total copies."""
        if self.available_copies > self.total_copies:
            raise ValueError("Available copies cannot exceed total copies")
        return self

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0 and self.status in CIRCULATING_STATUSES


class BookCreate(BaseModel):
    """Input for adding a book to the catalog."""

    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=200)
    isbn: str | None = None
    category: str | None = None
    description: str | None = Field(None, max_length=2000)
    total_copies: int = Field(default=1, ge=0, le=1000)

    @field_validator("isbn")
    @classmethod
    def normalize_isbn(cls, v: str | None) -> str | None:
        """Normalize ISBN by removing hyphens and spaces."""
        if v is None:
            return v
        normalized = v.replace("-", "").replace(" ", "")
        if len(normalized) not in (10, 13):
            raise ValueError("ISBN must be 10 or 13 characters")
        return normalized

    @field_validator("category")
    @classmethod
    def normalize_category(cls, v: str | None) -> str | None:
        return v.strip().title() if v else v


class BookAvailability(BaseModel):
    """Read-only snapshot of a book's copy counts."""

    book_id: int
    title: str
    status: BookStatus
    total_copies: int
    available_copies: int
    lent_copies: int

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0 and self.status in CIRCULATING_STATUSES
