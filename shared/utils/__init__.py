"""Logging setup and the shared exception hierarchy."""

from .errors import (
    ConfigurationError,
    DataProcessingError,
    ErrorContext,
    ValidationError,
    create_error_context,
)
from .logging import get_logger, job_context, setup_logging

__all__ = [
    "ConfigurationError",
    "DataProcessingError",
    "ErrorContext",
    "ValidationError",
    "create_error_context",
    "get_logger",
    "job_context",
    "setup_logging",
]
