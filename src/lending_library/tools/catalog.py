"""Catalog tools: search, look up and maintain books."""

import logging
from typing import Any

from pydantic import BaseModel, Field

from ..database.book_repository import BookRepository, BookSearchParams, BookSortOptions
from ..database.repository import PaginationParams
from ..database.review_repository import ReviewRepository
from ..database.session import get_session
from ..errors import AuthorizationError
from ..models.book import BookCreate, BookStatus
from ..observability import trace_tool
from .responses import ActorInput, success, tool_errors

logger = logging.getLogger(__name__)


class SearchBooksInput(BaseModel):
    query: str | None = Field(default=None, description="Matches title, author or ISBN")
    title: str | None = None
    author: str | None = None
    category: str | None = None
    isbn: str | None = None
    available_only: bool = False
    sort_by: BookSortOptions = BookSortOptions.TITLE
    sort_desc: bool = False
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class BookIdInput(BaseModel):
    book_id: int = Field(..., ge=1)


class AddBookInput(ActorInput, BookCreate):
    pass


class UpdateCopiesInput(ActorInput):
    book_id: int = Field(..., ge=1)
    total_copies: int = Field(..., ge=0, le=1000)


class DeleteBookInput(ActorInput):
    book_id: int = Field(..., ge=1)


class SetBookStatusInput(ActorInput):
    book_id: int = Field(..., ge=1)
    status: BookStatus


def _require_admin(params: ActorInput, action: str) -> None:
    if not params.actor.is_admin:
        raise AuthorizationError(f"Only administrators can {action}")


@trace_tool("search_books")
@tool_errors("book search")
async def search_books_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = SearchBooksInput.model_validate(arguments)
    search = BookSearchParams(
        **params.model_dump(include={"query", "title", "author", "category", "isbn", "available_only"})
    )

    with get_session() as session:
        page = BookRepository(session).search(
            search,
            PaginationParams(page=params.page, page_size=params.page_size),
            sort_by=params.sort_by,
            sort_desc=params.sort_desc,
        )
    return success(f"Found {page.total} book(s)", page)


@trace_tool("get_book")
@tool_errors("book lookup")
async def get_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = BookIdInput.model_validate(arguments)
    with get_session() as session:
        book = BookRepository(session).get(params.book_id)
        availability = BookRepository(session).check_availability(params.book_id)
        rating = ReviewRepository(session).average_rating(params.book_id)

    return success(
        f'"{book.title}" by {book.author}',
        {"book": book, "availability": availability, "average_rating": rating},
    )


@trace_tool("add_book")
@tool_errors("book creation")
async def add_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = AddBookInput.model_validate(arguments)
    _require_admin(params, "add books")

    data = BookCreate(**params.model_dump(exclude={"actor_id", "actor_role"}))
    with get_session() as session:
        book = BookRepository(session).create(data)
    return success(f'Added "{book.title}" ({book.total_copies} copies)', {"book": book})


@trace_tool("update_book_copies")
@tool_errors("copy count update")
async def update_book_copies_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = UpdateCopiesInput.model_validate(arguments)
    _require_admin(params, "change copy counts")

    with get_session() as session:
        book = BookRepository(session).update_total_copies(params.book_id, params.total_copies)
    return success(
        f'"{book.title}" now has {book.total_copies} copies ({book.available_copies} available)',
        {"book": book},
    )


@trace_tool("delete_book")
@tool_errors("book deletion")
async def delete_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = DeleteBookInput.model_validate(arguments)
    _require_admin(params, "delete books")

    with get_session() as session:
        removed = BookRepository(session).delete(params.book_id)
    message = "Book deleted" if removed else "Book has loan history and was marked deleted"
    return success(message, {"book_id": params.book_id, "physically_deleted": removed})


@trace_tool("set_book_status")
@tool_errors("book status update")
async def set_book_status_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = SetBookStatusInput.model_validate(arguments)
    _require_admin(params, "change book status")

    with get_session() as session:
        book = BookRepository(session).set_status(params.book_id, params.status)
    return success(f'"{book.title}" is now {book.status.value}', {"book": book})


search_books = {
    "name": "search_books",
    "description": "Search the catalog by title, author, category or ISBN.",
    "inputSchema": SearchBooksInput.model_json_schema(),
    "handler": search_books_handler,
}

get_book = {
    "name": "get_book",
    "description": "Get a book with its copy counts and average rating.",
    "inputSchema": BookIdInput.model_json_schema(),
    "handler": get_book_handler,
}

add_book = {
    "name": "add_book",
    "description": "Add a title to the catalog (administrators only).",
    "inputSchema": AddBookInput.model_json_schema(),
    "handler": add_book_handler,
}

update_book_copies = {
    "name": "update_book_copies",
    "description": (
        "Change how many copies the library owns (administrators only). Cannot drop below "
        "the number of copies currently on loan."
    ),
    "inputSchema": UpdateCopiesInput.model_json_schema(),
    "handler": update_book_copies_handler,
}

delete_book = {
    "name": "delete_book",
    "description": (
        "Remove a title (administrators only). Titles with loan history are marked deleted "
        "instead of being removed."
    ),
    "inputSchema": DeleteBookInput.model_json_schema(),
    "handler": delete_book_handler,
}

set_book_status = {
    "name": "set_book_status",
    "description": (
        "Take a title out of circulation (maintenance, lost, reserved) or put it back "
        "(administrators only). Titles out of circulation cannot be requested."
    ),
    "inputSchema": SetBookStatusInput.model_json_schema(),
    "handler": set_book_status_handler,
}

catalog_tools = [search_books, get_book, add_book, update_book_copies, delete_book, set_book_status]
