"""
Structured logging (structlog).

Console renderer in development, one JSON object per line in production.
Every event carries the service name, and whatever the request middleware
bound (request_id, path, the search text) via contextvars.

    logger = get_logger(__name__)
    logger.info("Search completed", query="iphone 15", source="index", total=42)
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

SERVICE_NAME = "search-api"

# SDK loggers that report every HTTP round trip at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "uvicorn.access", "algoliasearch", "openai")


def _service_stamper(service: str) -> Processor:
    def add_service(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service)
        return event_dict
    return add_service


def configure_logging(
    json_logs: bool = False,
    log_level: str = "INFO",
    service: str = SERVICE_NAME,
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        json_logs: JSON lines instead of the colored console renderer.
        log_level: Minimum level for the root logger.
        service: Value of the `service` field on every event.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _service_stamper(service),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_logs:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Attach fields to every log event of the current request."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
