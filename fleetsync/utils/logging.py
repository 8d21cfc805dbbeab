"""
Structured logging infrastructure using structlog.

This module provides centralized logging configuration with:
- JSON formatting for production
- Console formatting for development
- Per-reconciliation context (controller name, object key) via contextvars
- Member cluster identity stamped on every entry
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog
from structlog.types import EventDict, Processor


class AppContext:
    """
    Processor that stamps application and member cluster identity on log entries.

    Attributes:
        cluster_id: Member cluster ID, or None before configuration
    """

    def __init__(self, cluster_id: Optional[str] = None):
        self.cluster_id = cluster_id

    def __call__(self, logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict["app"] = "fleetsync"
        if self.cluster_id:
            event_dict.setdefault("member_cluster", self.cluster_id)
        return event_dict


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_output: str = "stdout",
    cluster_id: Optional[str] = None,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_output: Output stream (stdout or stderr)
        cluster_id: Member cluster ID added to every entry
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout if log_output == "stdout" else sys.stderr,
        level=getattr(logging, log_level.upper()),
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        AppContext(cluster_id),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@contextmanager
def reconcile_context(controller: str, key: str) -> Iterator[None]:
    """
    Bind controller name and object key for the duration of one reconciliation.

    Every log entry emitted inside the block, from any module, carries both
    fields.

    Args:
        controller: Controller name
        key: Object key ("namespace/name")
    """
    with structlog.contextvars.bound_contextvars(controller=controller, key=key):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)
