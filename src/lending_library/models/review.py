"""Review models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Review(BaseModel):
    id: int
    user_id: int
    book_id: int
    rating: int = Field(..., ge=1, le=5)
    comment: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    # Display fields
    user_name: str | None = None
    book_title: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ReviewCreate(BaseModel):
    book_id: int = Field(..., ge=1)
    rating: int = Field(..., ge=1, le=5, description="Rating from 1 to 5")
    comment: str | None = Field(None, max_length=2000)
