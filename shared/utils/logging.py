"""
Structured logging.

structlog renders every event; the standard library ``logging`` module
is only the sink. Context shared by everything that happens inside one
job execution (job name, tenant) travels in contextvars, so nested
calls log it without threading a logger through.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog
from structlog.stdlib import LoggerFactory

SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def setup_logging(service_name: str, log_level: str = "info", format_type: str = "json") -> None:
    """
    Route structlog through stdlib logging on stdout.

    Args:
        service_name: Bound as ``service`` on every event
        log_level: debug, info, warning or error
        format_type: ``json`` for machines, ``console`` for people
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    renderer = structlog.processors.JSONRenderer() if format_type == "json" else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[*SHARED_PROCESSORS, renderer],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def add_tenant_id(logger: structlog.BoundLogger, tenant_id: Optional[int]) -> structlog.BoundLogger:
    """Bind the tenant a computation runs for."""
    return logger.bind(tenant_id=tenant_id)


def add_job_name(logger: structlog.BoundLogger, job_name: str) -> structlog.BoundLogger:
    """Bind the scheduled job being executed."""
    return logger.bind(job=job_name)


@contextmanager
def job_context(job_name: str) -> Iterator[None]:
    """Tag every event logged inside the block with ``job``.

    Each asyncio task has its own copy of the context, so concurrent
    jobs never see each other's tags.
    """
    with structlog.contextvars.bound_contextvars(job=job_name):
        yield
