"""
Structured Logging Setup
========================
Configures structlog for the auth core and binds per-request context.

Usage:
    from healthhub_core.logging_config import setup_logging, bind_request_context

    setup_logging(service_name="healthhub-auth")
    request_id = bind_request_context(identity="a@x.com")
"""

import logging
import sys
import uuid
from typing import Optional

import structlog


def setup_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        service_name: Name attached to every log line
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: JSON lines for production, console rendering otherwise
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)

    structlog.get_logger(__name__).info(
        "logging_configured", service=service_name, level=level.upper()
    )


def bind_request_context(
    request_id: Optional[str] = None,
    identity: Optional[str] = None,
) -> str:
    """
    Bind a correlation id (and optionally the acting identity) to the
    current task's log context.

    Returns:
        The request id, generated if not supplied
    """
    request_id = request_id or str(uuid.uuid4())
    context = {"request_id": request_id}
    if identity:
        context["identity"] = identity
    structlog.contextvars.bind_contextvars(**context)
    return request_id


def clear_request_context() -> None:
    """Drop request-scoped keys, keeping the service name."""
    structlog.contextvars.unbind_contextvars("request_id", "identity")
