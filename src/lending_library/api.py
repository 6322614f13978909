"""
REST routes for the Lending Library.

The routes are a thin adapter over the tool handlers: path parameters,
query string and JSON body are merged into the handler arguments, the
caller comes from the ``X-User-Id`` / ``X-User-Role`` headers set by the
upstream auth gateway, and the envelope's ``error.status_code`` becomes the
HTTP status.

``ROUTES`` is mounted on the MCP server with ``custom_route``;
``create_app`` builds a standalone Starlette app from the same table.
"""

import json
import logging
from collections.abc import Callable
from typing import Any

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from .database.session import get_db_manager
from .tools import catalog, loans, notifications, reviews, users
from .tools.responses import Handler, failure

logger = logging.getLogger(__name__)

USER_ID_HEADER = "x-user-id"
USER_ROLE_HEADER = "x-user-role"


class _RequestError(Exception):
    def __init__(self, message: str, kind: str, status_code: int):
        super().__init__(message)
        self.envelope = failure(message, kind, status_code)
        self.status_code = status_code


def _principal(request: Request) -> dict[str, Any]:
    raw_id = request.headers.get(USER_ID_HEADER, "")
    if not raw_id.isdigit():
        raise _RequestError("Missing or invalid X-User-Id header", "unauthenticated", 401)
    return {
        "actor_id": int(raw_id),
        "actor_role": request.headers.get(USER_ROLE_HEADER, "student").lower(),
    }


async def _json_body(request: Request) -> dict[str, Any]:
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except json.JSONDecodeError as e:
        raise _RequestError(f"Malformed JSON body: {e.msg}", "validation", 400) from e
    if not isinstance(body, dict):
        raise _RequestError("JSON body must be an object", "validation", 400)
    return body


def _endpoint(
    handler: Handler,
    *,
    authenticated: bool = True,
    with_body: bool = False,
    created: bool = False,
) -> Callable[[Request], Any]:
    async def endpoint(request: Request) -> JSONResponse:
        try:
            arguments: dict[str, Any] = dict(request.query_params)
            if with_body:
                arguments.update(await _json_body(request))
            arguments.update(request.path_params)
            if authenticated:
                arguments.update(_principal(request))
        except _RequestError as e:
            return JSONResponse(e.envelope, status_code=e.status_code)

        envelope = await handler(arguments)
        if envelope["success"]:
            status_code = 201 if created else 200
        else:
            status_code = envelope["error"]["status_code"]
        return JSONResponse(envelope, status_code=status_code)

    endpoint.__name__ = getattr(handler, "__name__", "endpoint").removesuffix("_handler")
    return endpoint


async def health(request: Request) -> JSONResponse:  # noqa: ARG001
    healthy = get_db_manager().verify_connection()
    return JSONResponse(
        {"status": "ok" if healthy else "degraded", "database": healthy},
        status_code=200 if healthy else 503,
    )


def _own(handler: Handler) -> Handler:
    """Scope ``handler`` to the caller's own records."""

    async def own(arguments: dict[str, Any]) -> dict[str, Any]:
        arguments["user_id"] = arguments["actor_id"]
        return await handler(arguments)

    own.__name__ = getattr(handler, "__name__", "own")
    return own


ROUTES: list[tuple[str, list[str], Callable]] = [
    ("/health", ["GET"], health),
    # Loans
    ("/loans", ["POST"], _endpoint(loans.request_loan_handler, with_body=True, created=True)),
    ("/loans", ["GET"], _endpoint(loans.list_loans_handler)),
    ("/loans/me", ["GET"], _endpoint(_own(loans.list_loans_handler))),
    ("/loans/me/summary", ["GET"], _endpoint(_own(loans.loan_summary_handler))),
    ("/loans/overdue", ["GET"], _endpoint(loans.list_overdue_loans_handler)),
    (
        "/loans/book/{book_id:int}/eligibility",
        ["GET"],
        _endpoint(loans.check_eligibility_handler),
    ),
    ("/loans/{loan_id:int}", ["GET"], _endpoint(loans.get_loan_handler)),
    ("/loans/{loan_id:int}/validate", ["PATCH"], _endpoint(loans.validate_loan_handler)),
    (
        "/loans/{loan_id:int}/refuse",
        ["PATCH"],
        _endpoint(loans.refuse_loan_handler, with_body=True),
    ),
    (
        "/loans/{loan_id:int}/return",
        ["PATCH"],
        _endpoint(loans.return_book_handler, with_body=True),
    ),
    (
        "/loans/{loan_id:int}/renew",
        ["PATCH"],
        _endpoint(loans.renew_loan_handler, with_body=True),
    ),
    ("/loans/{loan_id:int}/cancel", ["PATCH"], _endpoint(loans.cancel_loan_handler)),
    (
        "/loans/{loan_id:int}/overdue",
        ["PATCH"],
        _endpoint(loans.mark_loan_overdue_handler, with_body=True),
    ),
    ("/loans/{loan_id:int}/penalty", ["GET"], _endpoint(loans.calculate_penalty_handler)),
    (
        "/loans/{loan_id:int}/penalty",
        ["PATCH"],
        _endpoint(loans.apply_penalty_handler, with_body=True),
    ),
    # Catalog
    ("/books", ["GET"], _endpoint(catalog.search_books_handler, authenticated=False)),
    (
        "/books",
        ["POST"],
        _endpoint(catalog.add_book_handler, with_body=True, created=True),
    ),
    (
        "/books/{book_id:int}",
        ["GET"],
        _endpoint(catalog.get_book_handler, authenticated=False),
    ),
    (
        "/books/{book_id:int}/copies",
        ["PATCH"],
        _endpoint(catalog.update_book_copies_handler, with_body=True),
    ),
    ("/books/{book_id:int}", ["DELETE"], _endpoint(catalog.delete_book_handler)),
    (
        "/books/{book_id:int}/status",
        ["PATCH"],
        _endpoint(catalog.set_book_status_handler, with_body=True),
    ),
    (
        "/books/{book_id:int}/reviews",
        ["GET"],
        _endpoint(reviews.list_book_reviews_handler, authenticated=False),
    ),
    # Notifications
    ("/notifications", ["GET"], _endpoint(notifications.list_notifications_handler)),
    (
        "/notifications/read-all",
        ["PATCH"],
        _endpoint(notifications.mark_all_notifications_read_handler),
    ),
    (
        "/notifications/{notification_id:int}/read",
        ["PATCH"],
        _endpoint(notifications.mark_notification_read_handler),
    ),
    (
        "/notifications/{notification_id:int}",
        ["DELETE"],
        _endpoint(notifications.delete_notification_handler),
    ),
    # Users
    ("/users", ["POST"], _endpoint(users.create_user_handler, with_body=True, created=True)),
    ("/users", ["GET"], _endpoint(users.list_users_handler)),
    ("/users/{user_id:int}", ["GET"], _endpoint(users.get_user_handler)),
    ("/users/{user_id:int}/deactivate", ["PATCH"], _endpoint(users.deactivate_user_handler)),
    # Reviews
    (
        "/reviews",
        ["POST"],
        _endpoint(reviews.create_review_handler, with_body=True, created=True),
    ),
]


def create_app(debug: bool = False) -> Starlette:
    """Standalone Starlette app serving ``ROUTES``."""
    routes = [Route(path, endpoint, methods=methods) for path, methods, endpoint in ROUTES]
    logger.debug("Built REST app with %d routes", len(routes))
    return Starlette(debug=debug, routes=routes)
