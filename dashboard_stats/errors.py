"""Errors raised by the dashboard statistics service."""

from typing import Dict, Optional

from shared.utils.errors import DataProcessingError, ErrorContext, create_error_context

SERVICE_NAME = "dashboard-stats"


def error_context(operation: str, tenant_id: Optional[int] = None, job_name: Optional[str] = None, **metadata) -> ErrorContext:
    """Where in this service an error was raised."""
    return create_error_context(
        SERVICE_NAME, operation, tenant_id=tenant_id, job_name=job_name, metadata=metadata or None
    )


class TransientDataAccessError(DataProcessingError):
    """A repository call failed; the next scheduled run may succeed."""

    error_code = "TRANSIENT_DATA_ACCESS"

    def __init__(self, message: str, source: Optional[str] = None, context: Optional[ErrorContext] = None):
        super().__init__(message, context=context)
        self.source = source
        if source:
            self.details["source"] = source


class AggregationError(DataProcessingError):
    """An on-demand range query could not be answered."""

    error_code = "AGGREGATION_ERROR"

    def __init__(self, message: str, metric: Optional[str] = None, context: Optional[ErrorContext] = None):
        super().__init__(message, context=context)
        self.metric = metric
        if metric:
            self.details["metric"] = metric


class AuthorizationError(DataProcessingError):
    """Base for identity and access failures. Never downgraded to "no data"."""

    error_code = "AUTHORIZATION_ERROR"


class Unauthenticated(AuthorizationError):
    """No usable principal."""

    error_code = "UNAUTHENTICATED"


class AccessDenied(AuthorizationError):
    """The principal may not act on the requested tenant."""

    error_code = "ACCESS_DENIED"

    def __init__(self, message: str, tenant_id: Optional[int] = None, context: Optional[ErrorContext] = None):
        super().__init__(message, context=context)
        self.tenant_id = tenant_id
        if tenant_id is not None:
            self.details["tenant_id"] = tenant_id


class UnresolvedPrincipal(AuthorizationError):
    """A bare identifier could not be materialized into a user record."""

    error_code = "UNRESOLVED_PRINCIPAL"

    def __init__(self, message: str, identifier: Optional[str] = None):
        super().__init__(message)
        self.identifier = identifier
        if identifier:
            self.details["identifier"] = identifier


class PartialRefreshError(DataProcessingError):
    """A job ran for every tenant but some of them failed."""

    error_code = "PARTIAL_REFRESH"

    def __init__(self, message: str, failures: Dict[int, Exception], context: Optional[ErrorContext] = None):
        super().__init__(message, context=context, details={"failed_tenants": sorted(failures)})
        self.failures = failures

    @property
    def first_failure(self) -> Exception:
        return self.failures[min(self.failures)]
