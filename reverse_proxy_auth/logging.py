"""
Structured logging for the gateway.

Log events are dotted names with keyword context, e.g.::

    logger.info("gateway.cache.hit", username=username)
"""

import logging
import sys
import uuid
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from starlette.requests import Request

logger = structlog.get_logger("reverse_proxy_auth")


def configure_logging(level: str = "INFO", log_type: str = "json") -> None:
    """Route structlog through stdlib logging with a JSON or console renderer."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )
    renderer: Any
    if log_type == "text":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(request: "Request") -> Any:
    """
    Return a logger bound to the current request.

    The request id is taken from ``X-Request-Id`` when the proxy sends one,
    and generated otherwise; it is remembered on ``request.state`` so every
    call for the same request binds the same id.
    """
    request_id = getattr(request.state, "request_id", None)
    if request_id is None:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
    return logger.bind(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )
