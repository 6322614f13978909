"""Account tools: register, look up and deactivate users."""

import logging
from typing import Any

from pydantic import BaseModel, EmailStr, Field, model_validator

from ..database.repository import PaginationParams
from ..database.session import get_session
from ..database.user_repository import UserRepository
from ..errors import AuthorizationError, NotFoundError, PolicyViolation
from ..models.user import UserCreate, UserRole
from ..observability import trace_tool
from .responses import ActorInput, success, tool_errors

logger = logging.getLogger(__name__)


class CreateUserInput(ActorInput, UserCreate):
    pass


class ListUsersInput(ActorInput):
    role: UserRole | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class GetUserInput(ActorInput):
    user_id: int | None = Field(default=None, ge=1)
    email: EmailStr | None = None

    @model_validator(mode="after")
    def one_lookup_key(self) -> "GetUserInput":
        if (self.user_id is None) == (self.email is None):
            raise ValueError("Provide exactly one of user_id or email")
        return self


class DeactivateUserInput(ActorInput):
    user_id: int = Field(..., ge=1)


def _require_admin(params: ActorInput, action: str) -> None:
    if not params.actor.is_admin:
        raise AuthorizationError(f"Only administrators can {action}")


@trace_tool("create_user")
@tool_errors("user creation")
async def create_user_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = CreateUserInput.model_validate(arguments)
    _require_admin(params, "create accounts")

    data = UserCreate(**params.model_dump(exclude={"actor_id", "actor_role"}))
    with get_session() as session:
        user = UserRepository(session).create(data)
    return success(f"Created {user.role.value} account for {user.full_name}", {"user": user})


@trace_tool("list_users")
@tool_errors("user listing")
async def list_users_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = ListUsersInput.model_validate(arguments)
    _require_admin(params, "list accounts")

    with get_session() as session:
        page = UserRepository(session).list_users(
            role=params.role,
            pagination=PaginationParams(page=params.page, page_size=params.page_size),
        )
    return success(f"Found {page.total} user(s)", page)


@trace_tool("get_user")
@tool_errors("user lookup")
async def get_user_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Admins look up anyone, by id or email; other users only themselves, by id."""
    params = GetUserInput.model_validate(arguments)
    actor = params.actor
    if not actor.is_admin and (params.email is not None or not actor.owns(params.user_id)):
        raise AuthorizationError("You can only view your own account")

    with get_session() as session:
        repo = UserRepository(session)
        if params.email is not None:
            user = repo.get_by_email(params.email)
            if user is None:
                raise NotFoundError(f"No user with email {params.email}")
        else:
            user = repo.get(params.user_id)
    return success(user.full_name, {"user": user})


@trace_tool("deactivate_user")
@tool_errors("user deactivation")
async def deactivate_user_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = DeactivateUserInput.model_validate(arguments)
    _require_admin(params, "deactivate accounts")
    if params.actor.owns(params.user_id):
        raise PolicyViolation("Administrators cannot deactivate their own account")

    with get_session() as session:
        user = UserRepository(session).deactivate(params.user_id)
    logger.info("User %s deactivated by %s", user.id, params.actor_id)
    return success(f"Deactivated {user.full_name}", {"user": user})


create_user = {
    "name": "create_user",
    "description": "Register a library account (administrators only).",
    "inputSchema": CreateUserInput.model_json_schema(),
    "handler": create_user_handler,
}

list_users = {
    "name": "list_users",
    "description": "List accounts, optionally by role (administrators only).",
    "inputSchema": ListUsersInput.model_json_schema(),
    "handler": list_users_handler,
}

get_user = {
    "name": "get_user",
    "description": (
        "Get an account by id, or by email for administrators. Other users can only "
        "view their own account."
    ),
    "inputSchema": GetUserInput.model_json_schema(),
    "handler": get_user_handler,
}

deactivate_user = {
    "name": "deactivate_user",
    "description": (
        "Deactivate an account (administrators only). Deactivated users cannot request "
        "loans; their loan history is kept."
    ),
    "inputSchema": DeactivateUserInput.model_json_schema(),
    "handler": deactivate_user_handler,
}

user_tools = [create_user, list_users, get_user, deactivate_user]
