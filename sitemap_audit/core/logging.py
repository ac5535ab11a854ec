"""
Structured logging using structlog.

Every event carries the service name and, inside a crawl or comparison, the
identifiers bound with `crawl_context()` (crawl_id, site, url). One crawl can
then be followed across the sitemap, redirect and scoring engines.
Outputs JSON in production, colored console in development.
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

import structlog
from structlog.types import EventDict, Processor

from sitemap_audit.core.config import Settings, get_settings

SERVICE_NAME = "sitemap-audit"

# stdlib loggers that emit one line per outbound request
NOISY_LOGGERS = ("asyncio", "httpx", "httpcore")

SEVERITY_BY_METHOD = {
    "debug": "DEBUG",
    "info": "INFO",
    "warning": "WARNING",
    "error": "ERROR",
    "critical": "CRITICAL",
}


def add_severity(logger: Any, method: str, event_dict: EventDict) -> EventDict:
    """Map structlog levels to GCP/Datadog severity levels."""
    event_dict["severity"] = SEVERITY_BY_METHOD.get(method, "INFO")
    return event_dict


def add_service(logger: Any, method: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def new_crawl_id() -> str:
    return uuid.uuid4().hex[:12]


@contextmanager
def crawl_context(**values: Any) -> Iterator[dict[str, Any]]:
    """
    Bind crawl identifiers to every log event emitted inside the block.

    A crawl_id bound by an enclosing block is reused, so a sitemap lookup and
    the per-URL resolutions that follow it share one id. Bindings are undone
    on exit; asyncio tasks started inside inherit them.
    """
    bound = structlog.contextvars.get_contextvars()
    values.setdefault("crawl_id", bound.get("crawl_id") or new_crawl_id())
    with structlog.contextvars.bound_contextvars(**values):
        yield values


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        add_severity,
        add_service,
    ]

    if settings.LOG_FORMAT == "json":
        final_processors: list[Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        final_processors = [structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=shared_processors + final_processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        # Outside production, reconfiguring must reach loggers already in use
        cache_logger_on_first_use=settings.ENV == "production",
    )

    # stdlib records (httpx, asyncio) share the processors and renderer
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *final_processors],
    ))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(log_level)

    if settings.ENV == "production":
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
