"""
Tool handlers for the Lending Library.

Every tool is a dictionary with a name, a description, a JSON schema for its
input and an async handler taking the raw arguments. The MCP server registers
them as tools and the REST routes call the same handlers.
"""

from .catalog import catalog_tools
from .loans import loan_tools
from .notifications import notification_tools
from .reviews import review_tools
from .users import user_tools

all_tools = [*loan_tools, *catalog_tools, *notification_tools, *review_tools, *user_tools]

__all__ = [
    "all_tools",
    "catalog_tools",
    "loan_tools",
    "notification_tools",
    "review_tools",
    "user_tools",
]
