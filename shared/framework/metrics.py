"""Prometheus instrumentation.

Every collector owns a ``CollectorRegistry`` so that several services,
or several tests, can build one in the same process.
"""

from typing import Dict, Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

JOB_DURATION_BUCKETS = (0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0)


class MetricsCollector:
    """Service, job, aggregation and cache metrics under one name prefix."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.prefix = service_name.replace("-", "_")
        self.registry = registry or CollectorRegistry()

        self.info = Info(self._name("info"), f"Build information for {service_name}", registry=self.registry)
        self.health_status = Gauge(
            self._name("health_status"), "1 when the last health evaluation passed", registry=self.registry
        )

        self.job_runs = self._counter("job_runs_total", "Scheduled job executions by outcome", "job", "status")
        self.job_duration = Histogram(
            self._name("job_duration_seconds"),
            "Wall time of scheduled job executions",
            ["job"],
            buckets=JOB_DURATION_BUCKETS,
            registry=self.registry,
        )
        self.job_last_success = Gauge(
            self._name("job_last_success_timestamp_seconds"),
            "Unix time the job last finished successfully",
            ["job"],
            registry=self.registry,
        )

        self.aggregation_failures = self._counter(
            "aggregation_failures_total", "Metric computations that raised", "metric"
        )
        self.cache_writes = self._counter("cache_writes_total", "Cache entries written", "scope")
        self.errors = self._counter("errors_total", "Job errors by classification", "error_type", "component")

    def _name(self, suffix: str) -> str:
        return f"{self.prefix}_{suffix}"

    def _counter(self, suffix: str, documentation: str, *labels: str) -> Counter:
        return Counter(self._name(suffix), documentation, list(labels), registry=self.registry)

    def record_job_run(self, job: str, status: str, duration: float, finished_at: Optional[float] = None) -> None:
        self.job_runs.labels(job=job, status=status).inc()
        self.job_duration.labels(job=job).observe(duration)
        if status == "ok" and finished_at is not None:
            self.job_last_success.labels(job=job).set(finished_at)

    def record_aggregation_failure(self, metric: str) -> None:
        self.aggregation_failures.labels(metric=metric).inc()

    def record_cache_write(self, scope: str) -> None:
        self.cache_writes.labels(scope=scope).inc()

    def record_error(self, error_type: str, component: str) -> None:
        self.errors.labels(error_type=error_type, component=component).inc()

    def set_health_status(self, healthy: bool) -> None:
        self.health_status.set(1 if healthy else 0)

    def update_service_info(self, version: str, environment: str, **extra: str) -> None:
        self.info.info({"version": version, "environment": environment, **extra})

    def get_sample(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Current value of ``<prefix>_<name>``, or ``None`` if never recorded."""
        return self.registry.get_sample_value(self._name(name), labels or {})

    def get_metrics(self) -> bytes:
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST
