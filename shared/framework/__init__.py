"""Service lifecycle, settings, health and Prometheus metrics."""

from .config import DatabaseConfig, ObservabilityConfig, ServiceConfig
from .health import HealthCheck, HealthChecker
from .metrics import MetricsCollector
from .service import AsyncService

__all__ = [
    "AsyncService",
    "DatabaseConfig",
    "HealthCheck",
    "HealthChecker",
    "MetricsCollector",
    "ObservabilityConfig",
    "ServiceConfig",
]
