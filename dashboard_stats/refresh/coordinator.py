"""
Cache refresh coordination.

Owns the static job catalog and binds it to a scheduler. Every job runs
for every tenant the tenant directory lists, each tenant under a
``SYSTEM`` context bound to that tenant. Failures stay inside the job:
``run_job`` always returns a ``JobResult``.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from shared.framework.metrics import MetricsCollector
from shared.utils.logging import add_job_name

from ..aggregation.aggregator import StatisticsAggregator
from ..aggregation.dashboard import DashboardService
from ..errors import PartialRefreshError, TransientDataAccessError, error_context
from ..models import JobResult, JobSeverity, PreprocessReport, ScheduledJobSpec, TenantContext, TriggerKind
from ..repositories import TenantDirectory
from .runner import JobRunner
from .scheduler import Scheduler

logger = structlog.get_logger(__name__)

REALTIME_REFRESH = "realtime-refresh"
CORE_METRICS_REFRESH = "core-metrics-refresh"
REVENUE_STATISTICS_REFRESH = "revenue-statistics-refresh"
TREND_PREPROCESSING = "trend-preprocessing"
TODAY_METRICS_PREPROCESSING = "today-metrics-preprocessing"
CACHE_CLEANUP = "cache-cleanup"

DEFAULT_SCHEDULE = {
    REALTIME_REFRESH: 300000,
    CORE_METRICS_REFRESH: 900000,
    REVENUE_STATISTICS_REFRESH: 3600000,
    TREND_PREPROCESSING: "0 1 * * *",
    TODAY_METRICS_PREPROCESSING: "0 2 * * *",
    CACHE_CLEANUP: "0 3 * * MON",
}

TenantOperation = Callable[[TenantContext], Awaitable[Any]]


class CacheRefreshCoordinator:
    """Runs the refresh and preprocessing jobs."""

    def __init__(
        self,
        aggregator: StatisticsAggregator,
        dashboard: DashboardService,
        tenants: TenantDirectory,
        config=None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.aggregator = aggregator
        self.dashboard = dashboard
        self.tenants = tenants
        self.config = config
        self.runner = JobRunner(
            metrics=metrics,
            history_size=config.job_history_size if config is not None else 100,
        )
        self.catalog: Dict[str, ScheduledJobSpec] = {spec.name: spec for spec in self._build_catalog()}

    def _schedule(self, job_name: str, attribute: str):
        if self.config is None:
            return DEFAULT_SCHEDULE[job_name]
        return getattr(self.config, attribute)

    def _build_catalog(self) -> List[ScheduledJobSpec]:
        def fixed(name, attribute, operation, description):
            return ScheduledJobSpec(
                name=name,
                trigger_kind=TriggerKind.FIXED_INTERVAL,
                operation=operation,
                severity=JobSeverity.INFORMATIONAL,
                interval_ms=self._schedule(name, attribute),
                description=description,
            )

        def calendar(name, attribute, operation, description):
            return ScheduledJobSpec(
                name=name,
                trigger_kind=TriggerKind.CALENDAR,
                operation=operation,
                severity=JobSeverity.PREPROCESSING,
                cron=self._schedule(name, attribute),
                description=description,
            )

        return [
            fixed(REALTIME_REFRESH, "realtime_interval_ms", self.refresh_real_time_data,
                  "Populate real-time dashboard data for all tenants"),
            fixed(CORE_METRICS_REFRESH, "core_metrics_interval_ms", self.refresh_core_metrics,
                  "Populate core dashboard metrics for all tenants"),
            fixed(REVENUE_STATISTICS_REFRESH, "revenue_interval_ms", self.refresh_revenue_statistics,
                  "Populate revenue statistics for all tenants"),
            calendar(TREND_PREPROCESSING, "trend_cron", self.preprocess_trend_data,
                     "Recompute the trend window for all tenants"),
            calendar(TODAY_METRICS_PREPROCESSING, "today_metrics_cron", self.preprocess_today_metrics,
                     "Recompute today's snapshot for all tenants"),
            calendar(CACHE_CLEANUP, "cleanup_cron", self.clear_dashboard_cache,
                     "Clear dashboard payloads"),
        ]

    async def run_job(self, name: str) -> JobResult:
        """Run one catalog job now; never raises for job failures."""
        spec = self.catalog.get(name)
        if spec is None:
            raise KeyError(f"Unknown job: {name}")
        return await self.runner.execute(spec)

    def register(self, scheduler: Scheduler) -> None:
        """Bind every catalog job to ``scheduler``."""
        for spec in self.catalog.values():
            callback = self._callback(spec.name)
            if spec.trigger_kind is TriggerKind.FIXED_INTERVAL:
                scheduler.register_fixed_interval(spec.interval_ms, callback, name=spec.name)
            else:
                scheduler.register_calendar(spec.cron, callback, name=spec.name)
        logger.info("Refresh jobs registered", jobs=list(self.catalog))

    def _callback(self, name: str) -> Callable[[], Awaitable[JobResult]]:
        async def fire() -> JobResult:
            return await self.run_job(name)
        return fire

    # Job operations

    async def refresh_real_time_data(self) -> None:
        await self._for_each_tenant(REALTIME_REFRESH, self.dashboard.refresh_real_time_data)

    async def refresh_core_metrics(self) -> None:
        await self._for_each_tenant(CORE_METRICS_REFRESH, self.dashboard.refresh_core_metrics)

    async def refresh_revenue_statistics(self) -> None:
        await self._for_each_tenant(REVENUE_STATISTICS_REFRESH, self.dashboard.refresh_revenue_statistics)

    async def preprocess_trend_data(self) -> None:
        await self._for_each_tenant(TREND_PREPROCESSING, self._checked(self.aggregator.preprocess_trend_data))

    async def preprocess_today_metrics(self) -> None:
        await self._for_each_tenant(TODAY_METRICS_PREPROCESSING, self._checked(self.aggregator.preprocess_today_metrics))

    async def clear_dashboard_cache(self) -> None:
        await self.dashboard.clear_dashboard_cache()

    @staticmethod
    def _checked(operation: Callable[[TenantContext], Awaitable[PreprocessReport]]) -> TenantOperation:
        """Turn a partially failed preprocessing report into a tenant failure."""
        async def run(context: TenantContext) -> PreprocessReport:
            report = await operation(context)
            if not report.ok:
                raise TransientDataAccessError(
                    f"{report.operation}: {len(report.failed)} item(s) failed ({', '.join(sorted(report.failed))})",
                    source=report.operation,
                    context=error_context(
                        report.operation,
                        tenant_id=report.tenant_id,
                        job_name=context.job_name,
                        failed=sorted(report.failed),
                    ),
                )
            return report
        return run

    async def _for_each_tenant(self, job_name: str, operation: TenantOperation) -> None:
        """Run ``operation`` for every tenant; one tenant's failure does not stop the rest."""
        log = add_job_name(logger, job_name)
        tenant_ids = await self.tenants.list_tenant_ids()
        failures: Dict[int, Exception] = {}

        for tenant_id in tenant_ids:
            try:
                await operation(TenantContext.for_job(tenant_id, job_name))
            except Exception as exc:
                log.warning("Tenant refresh failed", tenant_id=tenant_id, error=str(exc))
                failures[tenant_id] = exc

        log.info("Tenants processed", tenants=len(tenant_ids), failed=len(failures))
        if failures:
            raise PartialRefreshError(
                f"{job_name}: {len(failures)} of {len(tenant_ids)} tenant(s) failed",
                failures=failures,
                context=error_context("refresh_tenants", job_name=job_name, tenants=len(tenant_ids)),
            )

    # Observability

    def last_result(self, name: str) -> Optional[JobResult]:
        return self.runner.last_result(name)

    def history(self, name: Optional[str] = None) -> List[JobResult]:
        return self.runner.history(name)

    def status(self) -> Dict[str, Any]:
        """Per-job summary for the health endpoint."""
        summary = {}
        for name, spec in self.catalog.items():
            last = self.runner.last_result(name)
            summary[name] = {
                "schedule": spec.schedule,
                "severity": spec.severity.value,
                "running": self.runner.is_running(name),
                "last_result": last.to_dict() if last else None,
            }
        return summary
