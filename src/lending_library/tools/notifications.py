"""Notification tools: a user's inbox."""

from typing import Any

from pydantic import Field

from ..database.notification_repository import NotificationRepository
from ..database.repository import PaginationParams
from ..database.session import get_session
from ..observability import trace_tool
from .responses import ActorInput, success, tool_errors


class ListNotificationsInput(ActorInput):
    unread_only: bool = False
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class NotificationIdInput(ActorInput):
    notification_id: int = Field(..., ge=1)


@trace_tool("list_notifications")
@tool_errors("notification listing")
async def list_notifications_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = ListNotificationsInput.model_validate(arguments)
    with get_session() as session:
        repo = NotificationRepository(session)
        page = repo.list_for_user(
            params.actor_id,
            unread_only=params.unread_only,
            pagination=PaginationParams(page=params.page, page_size=params.page_size),
        )
        unread = repo.unread_count(params.actor_id)

    return success(
        f"{unread} unread notification(s)",
        {**page.model_dump(mode="json"), "unread_count": unread},
    )


@trace_tool("mark_notification_read")
@tool_errors("notification update")
async def mark_notification_read_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = NotificationIdInput.model_validate(arguments)
    with get_session() as session:
        notification = NotificationRepository(session).mark_as_read(
            params.notification_id, params.actor_id
        )
    return success("Notification marked as read", {"notification": notification})


@trace_tool("mark_all_notifications_read")
@tool_errors("notification update")
async def mark_all_notifications_read_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = ActorInput.model_validate(arguments)
    with get_session() as session:
        count = NotificationRepository(session).mark_all_as_read(params.actor_id)
    return success(f"{count} notification(s) marked as read", {"updated": count})


@trace_tool("delete_notification")
@tool_errors("notification deletion")
async def delete_notification_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = NotificationIdInput.model_validate(arguments)
    with get_session() as session:
        NotificationRepository(session).delete(params.notification_id, params.actor_id)
    return success("Notification deleted", {"notification_id": params.notification_id})


list_notifications = {
    "name": "list_notifications",
    "description": "List the caller's notifications, newest first.",
    "inputSchema": ListNotificationsInput.model_json_schema(),
    "handler": list_notifications_handler,
}

mark_notification_read = {
    "name": "mark_notification_read",
    "description": "Mark one of the caller's notifications as read.",
    "inputSchema": NotificationIdInput.model_json_schema(),
    "handler": mark_notification_read_handler,
}

mark_all_notifications_read = {
    "name": "mark_all_notifications_read",
    "description": "Mark all of the caller's notifications as read.",
    "inputSchema": ActorInput.model_json_schema(),
    "handler": mark_all_notifications_read_handler,
}

delete_notification = {
    "name": "delete_notification",
    "description": "Delete one of the caller's notifications.",
    "inputSchema": NotificationIdInput.model_json_schema(),
    "handler": delete_notification_handler,
}

notification_tools = [
    list_notifications,
    mark_notification_read,
    mark_all_notifications_read,
    delete_notification,
]
