"""Tests for the account tools."""

from lending_library.database.schema import User as UserDB
from lending_library.tools.loans import request_loan_handler
from lending_library.tools.users import (
    create_user_handler,
    deactivate_user_handler,
    get_user_handler,
    list_users_handler,
    user_tools,
)


def as_admin(admin, **arguments):
    return {"actor_id": admin.id, "actor_role": "admin", **arguments}


class TestCreateUserTool:
    async def test_create(self, mock_get_session, admin):
        result = await create_user_handler(
            as_admin(
                admin,
                first_name="Katherine",
                last_name="Johnson",
                email="kjohnson@example.com",
                role="librarian",
            )
        )

        assert result["success"] is True
        user = result["data"]["user"]
        assert user["role"] == "librarian"
        assert user["is_active"] is True

    async def test_duplicate_email(self, mock_get_session, admin, student):
        result = await create_user_handler(
            as_admin(admin, first_name="Sam", last_name="Twin", email=student.email)
        )
        assert result["error"] == {"kind": "conflict", "status_code": 409}

    async def test_invalid_email(self, mock_get_session, admin):
        result = await create_user_handler(
            as_admin(admin, first_name="A", last_name="B", email="not-an-email")
        )
        assert result["error"]["kind"] == "validation"

    async def test_requires_admin(self, mock_get_session, student):
        result = await create_user_handler(
            {"actor_id": student.id, "first_name": "A", "last_name": "B", "email": "a@example.com"}
        )
        assert result["error"]["kind"] == "forbidden"


class TestListAndGetUserTools:
    async def test_list_by_role(self, mock_get_session, admin, student, other_student):
        result = await list_users_handler(as_admin(admin, role="student"))
        assert result["data"]["total"] == 2
        assert {u["id"] for u in result["data"]["items"]} == {student.id, other_student.id}

    async def test_list_requires_admin(self, mock_get_session, student):
        result = await list_users_handler({"actor_id": student.id})
        assert result["error"]["kind"] == "forbidden"

    async def test_users_see_only_themselves(self, mock_get_session, student, other_student):
        own = await get_user_handler({"actor_id": student.id, "user_id": student.id})
        assert own["data"]["user"]["email"] == student.email

        other = await get_user_handler({"actor_id": student.id, "user_id": other_student.id})
        assert other["error"]["kind"] == "forbidden"

        by_email = await get_user_handler({"actor_id": student.id, "email": student.email})
        assert by_email["error"]["kind"] == "forbidden"

    async def test_admin_lookup_by_email(self, mock_get_session, admin, student):
        result = await get_user_handler(as_admin(admin, email=student.email.upper()))
        assert result["data"]["user"]["id"] == student.id

        result = await get_user_handler(as_admin(admin, email="ghost@example.com"))
        assert result["error"] == {"kind": "not_found", "status_code": 404}

    async def test_needs_exactly_one_key(self, mock_get_session, admin, student):
        result = await get_user_handler(as_admin(admin))
        assert result["error"]["kind"] == "validation"

        result = await get_user_handler(as_admin(admin, user_id=student.id, email=student.email))
        assert result["error"]["kind"] == "validation"


class TestDeactivateUserTool:
    async def test_deactivated_user_cannot_request_loans(
        self, mock_get_session, admin, student, make_book, test_db_session
    ):
        result = await deactivate_user_handler(as_admin(admin, user_id=student.id))
        assert result["data"]["user"]["is_active"] is False
        assert test_db_session.get(UserDB, student.id, populate_existing=True).is_active is False

        result = await request_loan_handler({"actor_id": student.id, "book_id": make_book().id})
        assert result["error"] == {"kind": "not_found", "status_code": 404}

    async def test_cannot_deactivate_self(self, mock_get_session, admin):
        result = await deactivate_user_handler(as_admin(admin, user_id=admin.id))
        assert result["error"]["kind"] == "policy_violation"

    async def test_unknown_user(self, mock_get_session, admin):
        result = await deactivate_user_handler(as_admin(admin, user_id=4242))
        assert result["error"]["kind"] == "not_found"

    async def test_requires_admin(self, mock_get_session, student, other_student):
        result = await deactivate_user_handler({"actor_id": student.id, "user_id": other_student.id})
        assert result["error"]["kind"] == "forbidden"


def test_tool_definitions():
    names = [tool["name"] for tool in user_tools]
    assert names == ["create_user", "list_users", "get_user", "deactivate_user"]
    for tool in user_tools:
        assert "actor_id" in tool["inputSchema"]["properties"]
