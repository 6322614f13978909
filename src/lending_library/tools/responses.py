"""
Response envelopes shared by every tool handler.

Success:  {"success": True,  "message": str, "data": ...}
Failure:  {"success": False, "message": str, "data": None,
           "error": {"kind": str, "status_code": int}}

The REST layer turns ``error.status_code`` into the HTTP status, so both
surfaces report the same failure the same way.
"""

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ValidationError

from ..config import get_config
from ..errors import LibraryError, TransientInfrastructureError
from ..models.user import Actor, UserRole

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


class ActorInput(BaseModel):
    """Fields identifying who is calling; set by the transport, not the user."""

    actor_id: int
    actor_role: UserRole = UserRole.STUDENT

    @property
    def actor(self) -> Actor:
        return Actor(id=self.actor_id, role=self.actor_role)


def dump(value: Any) -> Any:
    """JSON-ready form of models and lists of models."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {key: dump(item) for key, item in value.items()}
    if isinstance(value, list):
        return [dump(item) for item in value]
    return value


def success(message: str, data: Any = None) -> dict[str, Any]:
    return {"success": True, "message": message, "data": dump(data)}


def failure(message: str, kind: str, status_code: int) -> dict[str, Any]:
    return {
        "success": False,
        "message": message,
        "data": None,
        "error": {"kind": kind, "status_code": status_code},
    }


def from_exception(error: LibraryError) -> dict[str, Any]:
    message = str(error)
    if isinstance(error, TransientInfrastructureError) and not get_config().debug:
        message = "The library database is temporarily unavailable"
    return failure(message, error.kind, error.status_code)


def tool_errors(action: str) -> Callable[[Handler], Handler]:
    """
    Turn exceptions raised by a handler into failure envelopes.

    Invalid input maps to ``validation`` (422), library errors to their own
    kind, anything else to ``internal`` (500) with the detail logged.
    """

    def decorator(func: Handler) -> Handler:
        @functools.wraps(func)
        async def wrapper(arguments: dict[str, Any]) -> dict[str, Any]:
            try:
                return await func(arguments)
            except ValidationError as e:
                logger.info("Invalid %s parameters: %s", action, e)
                return failure(f"Invalid {action} parameters: {e}", "validation", 422)
            except TransientInfrastructureError as e:
                logger.exception("%s failed: database unavailable", action)
                return from_exception(e)
            except LibraryError as e:
                logger.info("%s failed (%s): %s", action, e.kind, e)
                return from_exception(e)
            except ValueError as e:
                logger.info("%s rejected: %s", action, e)
                return failure(str(e), "validation", 422)
            except Exception as e:
                logger.exception("Unexpected error during %s", action)
                detail = f": {e!s}" if get_config().debug else ""
                return failure(f"{action.capitalize()} failed{detail}", "internal", 500)

        return wrapper

    return decorator
