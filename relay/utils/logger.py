"""Structured logging for the ODoH relay.

structlog with JSON output by default. Per-request fields (``request_id``,
inbound ``method`` and ``path``) are bound with structlog's contextvars
support for the duration of one relayed request, so every line logged while
handling it carries them without being passed around.

Nothing logged here ever reaches the upstream target; the relay adds no
headers of its own to a CLONED request.
"""

import logging
import sys
import time
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

SERVICE_NAME = "odoh-relay"


def add_service(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog for the relay.

    Args:
        log_level:   DEBUG, INFO, WARNING, ERROR or CRITICAL.
        json_output: JSON lines when True, coloured console output otherwise.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_service,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "relay") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_request_context(request_id: str, method: str, path: str) -> None:
    """Bind the per-request log fields for the current task."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, method=method, path=path)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


class PerformanceLogger:
    """Times one operation, e.g. the upstream fetch.

    Logs ``{operation}_failed`` at ERROR when the block raises, otherwise
    ``{operation}_completed``: at WARNING when slower than ``slow_ms``,
    else at DEBUG.
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
        slow_ms: float = 1000.0,
        **context: Any,
    ):
        self.operation = operation
        self.logger = logger or get_logger()
        self.slow_ms = slow_ms
        self.context = context
        self.start_time: float = 0

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        duration_ms = round((time.perf_counter() - self.start_time) * 1000, 3)

        if exc_type is not None:
            self.logger.error(
                f"{self.operation}_failed",
                duration_ms=duration_ms,
                error=str(exc_val) or exc_type.__name__,
                **self.context,
            )
            return

        log = self.logger.warning if duration_ms > self.slow_ms else self.logger.debug
        log(
            f"{self.operation}_completed",
            duration_ms=duration_ms,
            slow=duration_ms > self.slow_ms,
            **self.context,
        )


# Defaults until relay.main reconfigures from the environment
configure_logging()
