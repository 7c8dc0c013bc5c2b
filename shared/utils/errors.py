"""
Exception hierarchy shared by all components.

Errors carry a stable ``error_code`` for log queries, an optional
``ErrorContext`` naming where they happened, and a ``details`` dict.
Wrap lower level failures with ``raise ... from exc`` so the cause shows
up in ``to_dict()``.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional


@dataclass
class ErrorContext:
    service: str
    operation: str
    tenant_id: Optional[int] = None
    job_name: Optional[str] = None
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class DataProcessingError(Exception):
    """Root of the hierarchy; subclasses override ``error_code``."""

    error_code = "DATA_PROCESSING_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.context = context
        self.details = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }
        if self.context is not None:
            data["context"] = self.context.to_dict()
        cause = self.__cause__
        if cause is not None:
            data["cause"] = f"{type(cause).__name__}: {cause}"
        return data


class ValidationError(DataProcessingError):
    """An argument supplied by the caller is out of range."""

    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
        if field:
            self.details.setdefault("field", field)
        if value is not None:
            self.details.setdefault("value", str(value))


class ConfigurationError(DataProcessingError):
    """Settings are missing or unusable."""

    error_code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, config_key: Optional[str] = None, config_value: Any = None, **kwargs):
        super().__init__(message, **kwargs)
        self.config_key = config_key
        if config_key:
            self.details.setdefault("config_key", config_key)
        if config_value is not None:
            self.details.setdefault("config_value", str(config_value))


def create_error_context(service: str, operation: str, **fields) -> ErrorContext:
    """Shorthand for ``ErrorContext``; ``metadata`` defaults to empty."""
    if fields.get("metadata") is None:
        fields.pop("metadata", None)
    return ErrorContext(service=service, operation=operation, **fields)
