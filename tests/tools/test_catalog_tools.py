"""Tests for the catalog tools."""

from lending_library.database.schema import Book as BookDB
from lending_library.models.book import BookStatus
from lending_library.models.loan import LoanStatus
from lending_library.tools.catalog import (
    add_book_handler,
    delete_book_handler,
    get_book_handler,
    search_books_handler,
    set_book_status_handler,
    update_book_copies_handler,
)
from lending_library.tools.loans import request_loan_handler


class TestSearchBooksTool:
    async def test_search_by_query(self, mock_get_session, make_book):
        make_book(title="Things Fall Apart", author="Chinua Achebe")
        make_book(title="Half of a Yellow Sun", author="Chimamanda Ngozi Adichie")

        result = await search_books_handler({"query": "achebe"})

        assert result["success"] is True
        assert [book["title"] for book in result["data"]["items"]] == ["Things Fall Apart"]

    async def test_invalid_page_size(self, mock_get_session):
        result = await search_books_handler({"page_size": 500})
        assert result["error"]["kind"] == "validation"


class TestGetBookTool:
    async def test_includes_availability(self, mock_get_session, make_book, make_loan, student):
        book = make_book(total_copies=2)
        make_loan(student, book, status=LoanStatus.ACTIVE)

        result = await get_book_handler({"book_id": book.id})

        data = result["data"]
        assert data["book"]["id"] == book.id
        assert data["availability"]["available_copies"] == 1
        assert data["availability"]["lent_copies"] == 1
        assert data["average_rating"] is None

    async def test_unknown_book(self, mock_get_session):
        result = await get_book_handler({"book_id": 77})
        assert result["error"] == {"kind": "not_found", "status_code": 404}


class TestCatalogMaintenanceTools:
    async def test_add_book(self, mock_get_session, admin):
        result = await add_book_handler(
            {
                "actor_id": admin.id,
                "actor_role": "admin",
                "title": "Invisible Cities",
                "author": "Italo Calvino",
                "isbn": "9780156453806",
                "total_copies": 3,
            }
        )
        assert result["success"] is True
        assert result["data"]["book"]["available_copies"] == 3

    async def test_add_book_requires_admin(self, mock_get_session, student):
        result = await add_book_handler(
            {"actor_id": student.id, "title": "X", "author": "Y", "isbn": "9780156453806"}
        )
        assert result["error"]["kind"] == "forbidden"

    async def test_update_copies_below_lent(self, mock_get_session, admin, student, make_book, make_loan):
        book = make_book(total_copies=2)
        make_loan(student, book)

        result = await update_book_copies_handler(
            {"actor_id": admin.id, "actor_role": "admin", "book_id": book.id, "total_copies": 0}
        )
        assert result["error"]["kind"] == "policy_violation"

        result = await update_book_copies_handler(
            {"actor_id": admin.id, "actor_role": "admin", "book_id": book.id, "total_copies": 4}
        )
        assert result["data"]["book"]["available_copies"] == 3

    async def test_delete_with_history_is_soft(
        self, mock_get_session, admin, student, make_book, make_loan, test_db_session
    ):
        book = make_book()
        make_loan(student, book, status=LoanStatus.RETURNED)

        result = await delete_book_handler(
            {"actor_id": admin.id, "actor_role": "admin", "book_id": book.id}
        )

        assert result["data"] == {"book_id": book.id, "physically_deleted": False}
        row = test_db_session.get(BookDB, book.id, populate_existing=True)
        assert row.status == BookStatus.DELETED


def status_change(admin, book_id: int, status: str) -> dict:
    return {"actor_id": admin.id, "actor_role": "admin", "book_id": book_id, "status": status}


class TestSetBookStatusTool:
    async def test_maintenance_blocks_new_requests(self, mock_get_session, admin, student, make_book):
        book = make_book(total_copies=2)

        result = await set_book_status_handler(status_change(admin, book.id, "maintenance"))
        assert result["data"]["book"]["status"] == "maintenance"

        result = await request_loan_handler({"actor_id": student.id, "book_id": book.id})
        assert result["error"]["kind"] == "policy_violation"

        result = await set_book_status_handler(status_change(admin, book.id, "available"))
        assert result["data"]["book"]["status"] == "available"

        result = await request_loan_handler({"actor_id": student.id, "book_id": book.id})
        assert result["success"] is True

    async def test_deleted_is_not_a_settable_status(self, mock_get_session, admin, make_book):
        result = await set_book_status_handler(status_change(admin, make_book().id, "deleted"))
        assert result["error"]["kind"] == "policy_violation"

    async def test_unknown_status(self, mock_get_session, admin, make_book):
        result = await set_book_status_handler(status_change(admin, make_book().id, "burned"))
        assert result["error"]["kind"] == "validation"

    async def test_requires_admin(self, mock_get_session, student, make_book):
        result = await set_book_status_handler(
            {"actor_id": student.id, "book_id": make_book().id, "status": "lost"}
        )
        assert result["error"]["kind"] == "forbidden"
