"""
Structured JSON logging for the tour service.

Every event is rendered as one JSON line on stdout carrying the logger name,
level, ISO time, the service taken from the ``<service>.<component>`` logger
name, and the id of the HTTP request being handled, when there is one.
"""

import sys
import structlog
import logging
import uuid
import time
from typing import Any, Dict, Optional
from contextvars import ContextVar

# Set per request by the base service middleware.
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Route structlog through stdlib logging at ``log_level`` with JSON output."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            add_correlation_context,
            add_timestamp,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """``tour.cache_manager`` logs as service ``tour``."""
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict["service"] = logger_name.split(".")[0]

    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Tag the event with the current request id."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id

    return event_dict


def add_timestamp(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    # TimeStamper owns "timestamp"; epoch seconds go alongside it.
    event_dict["epoch"] = time.time()
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind the inbound ``X-Request-ID``, or a fresh uuid4, to this request."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def clear_context():
    """Forget the request id once the response is sent."""
    request_id_var.set(None)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Logger named ``<service>.<component>``, e.g. ``tour.api_client``."""
    return structlog.get_logger(name)
