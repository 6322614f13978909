"""Lending Library MCP server.

Registers every tool handler with FastMCP and mounts the REST routes on the
same server with ``custom_route``. The transport (``stdio`` or ``http``) comes
from configuration; logging goes to stderr so stdout stays clean for stdio.
"""

import logging
import signal
import sys
from typing import Any

from fastmcp import FastMCP

from .api import ROUTES
from .config import get_config
from .database.session import get_db_manager
from .observability import initialize_observability
from .tools import all_tools

config = get_config()

logging.basicConfig(
    level=getattr(logging, config.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)

logger = logging.getLogger(__name__)

initialize_observability(config)

mcp = FastMCP(
    name=config.server_name,
    version=config.server_version,
    instructions=(
        "Lending Library - manages book loans for a library. Borrowers request loans, "
        "administrators validate, refuse, renew and close them, and the server keeps copy "
        "counts, due dates, penalties and notifications consistent. Every tool takes the "
        "caller as actor_id and actor_role."
    ),
)

for tool in all_tools:
    mcp.tool(name=tool["name"], description=tool["description"])(tool["handler"])

logger.info("Registered %d tools", len(all_tools))

for path, methods, endpoint in ROUTES:
    mcp.custom_route(path, methods=methods)(endpoint)

logger.info("Mounted %d REST routes", len(ROUTES))


def _install_signal_handlers() -> None:
    def signal_handler(signum: int, _frame: Any) -> None:
        logger.info("Received signal %s, shutting down", signum)
        get_db_manager().close()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def run_server() -> None:
    """Create the schema if needed and serve on the configured transport."""
    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)
    else:
        logging.getLogger("fastmcp").setLevel(logging.WARNING)

    get_db_manager().init_database()
    _install_signal_handlers()

    if config.transport == "stdio":
        logger.info("Starting %s v%s on stdio", config.server_name, config.server_version)
        mcp.run(transport="stdio")
    else:
        logger.info(
            "Starting %s v%s on http://%s:%s",
            config.server_name,
            config.server_version,
            config.http_host,
            config.http_port,
        )
        mcp.run(transport="http", host=config.http_host, port=config.http_port)


def main() -> None:
    """Entry point for ``lending-library``."""
    logger.info("Lending Library %s (transport=%s)", config.server_version, config.transport)
    try:
        run_server()
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception:
        logger.exception("Fatal error in MCP server")
        sys.exit(1)


if __name__ == "__main__":
    main()
