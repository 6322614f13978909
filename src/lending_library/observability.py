"""Logfire tracing and metrics for the Lending Library."""

import functools
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

import logfire

from .config import LibraryConfig, get_config

logger = logging.getLogger(__name__)

loan_events = logfire.metric_counter(
    "library.loans.events", description="Completed loan lifecycle events by type"
)

job_runs = logfire.metric_counter(
    "library.jobs.runs", description="Maintenance job executions by job name"
)

_initialized = False


def initialize_observability(config: LibraryConfig | None = None) -> None:
    """Configure logfire once per process."""
    global _initialized  # noqa: PLW0603
    if _initialized:
        return

    config = config or get_config()
    logfire.configure(
        token=config.logfire_token,
        service_name=config.server_name,
        service_version=config.server_version,
        environment=config.environment,
        send_to_logfire=config.send_to_logfire,
        console=False,
    )
    _initialized = True
    logger.debug("Observability initialised (send_to_logfire=%s)", config.send_to_logfire)


def record_loan_event(event: str) -> None:
    loan_events.add(1, {"event": event})


def trace_tool(tool_name: str):
    """Decorator to trace tool handler execution."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with logfire.span(f"tool.execution.{tool_name}", tool_name=tool_name) as span:
                start_time = datetime.now()
                result = await func(*args, **kwargs)

                success = bool(result.get("success")) if isinstance(result, dict) else True
                span.set_attribute("tool.success", success)
                span.set_attribute(
                    "tool.duration_ms", (datetime.now() - start_time).total_seconds() * 1000
                )
                if not success:
                    error = result.get("error") or {}
                    span.set_attribute("tool.error_kind", error.get("kind", "unknown"))
                return result

        return wrapper

    return decorator


def trace_job(job_name: str):
    """Decorator to trace a synchronous maintenance job."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            with logfire.span(f"job.{job_name}", job_name=job_name) as span:
                result = func(*args, **kwargs)
                if isinstance(result, int):
                    span.set_attribute("job.affected", result)
                job_runs.add(1, {"job": job_name})
                return result

        return wrapper

    return decorator
