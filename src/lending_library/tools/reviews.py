"""Review tools."""

from typing import Any

from pydantic import BaseModel, Field

from ..database.repository import PaginationParams
from ..database.review_repository import ReviewRepository
from ..database.session import get_session
from ..models.review import ReviewCreate
from ..observability import trace_tool
from .responses import ActorInput, success, tool_errors


class CreateReviewInput(ActorInput, ReviewCreate):
    pass


class BookReviewsInput(BaseModel):
    book_id: int = Field(..., ge=1)
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


@trace_tool("create_review")
@tool_errors("review creation")
async def create_review_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = CreateReviewInput.model_validate(arguments)
    data = ReviewCreate(**params.model_dump(include={"book_id", "rating", "comment"}))
    with get_session() as session:
        review = ReviewRepository(session).create(params.actor_id, data)
    return success(f'Review of "{review.book_title}" saved', {"review": review})


@trace_tool("list_book_reviews")
@tool_errors("review listing")
async def list_book_reviews_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = BookReviewsInput.model_validate(arguments)
    with get_session() as session:
        page = ReviewRepository(session).list_for_book(
            params.book_id, PaginationParams(page=params.page, page_size=params.page_size)
        )
    return success(f"Found {page.total} review(s)", page)


create_review = {
    "name": "create_review",
    "description": "Rate a book from 1 to 5. Only books the caller has borrowed can be reviewed.",
    "inputSchema": CreateReviewInput.model_json_schema(),
    "handler": create_review_handler,
}

list_book_reviews = {
    "name": "list_book_reviews",
    "description": "List reviews of a book, newest first.",
    "inputSchema": BookReviewsInput.model_json_schema(),
    "handler": list_book_reviews_handler,
}

review_tools = [create_review, list_book_reviews]
