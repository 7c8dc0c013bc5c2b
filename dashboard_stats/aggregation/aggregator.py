"""
Statistics aggregation.

Recomputes per-day metrics into the cache (today's snapshot and the
rolling trend window) and answers on-demand range queries. Every
operation is scoped by an explicit ``TenantContext``.

Preprocessing never aborts early: each sub-computation (or each date of
the trend window) has its own failure boundary and the outcome is
returned as a ``PreprocessReport``. Range queries are the opposite:
any data source failure surfaces as a single ``AggregationError``.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Tuple

import structlog

from shared.framework.metrics import MetricsCollector
from shared.utils.errors import ValidationError
from shared.utils.logging import add_tenant_id

from ..access.guard import TenantAccessGuard
from ..cache.store import CacheStore
from ..errors import AggregationError, error_context
from ..models import CacheKey, DailyMetricSnapshot, MetricKind, PreprocessReport, TenantContext
from ..repositories import Repositories

logger = structlog.get_logger(__name__)

RATING_BUCKETS = 5
TREND_WINDOW_DAYS = 30


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Calendar days from ``start`` to ``end`` inclusive, ascending."""
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def _revenue(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _status_counts(value: Any) -> dict:
    return {str(status): int(count) for status, count in sorted((value or {}).items())}


class StatisticsAggregator:
    """Computes statistics from the repositories and writes them to the cache."""

    def __init__(
        self,
        repositories: Repositories,
        cache: CacheStore,
        guard: TenantAccessGuard,
        config=None,
        metrics: Optional[MetricsCollector] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.repos = repositories
        self.cache = cache
        self.guard = guard
        self.metrics = metrics
        self.tz = config.tzinfo if config is not None else timezone.utc
        self.admin_fallback_tenant_id = config.admin_fallback_tenant_id if config is not None else None
        self._today = today or (lambda: datetime.now(self.tz).date())

    def today(self) -> date:
        """Today in the reference calendar."""
        return self._today()

    def trend_window(self) -> Tuple[date, date]:
        end = self.today()
        return end - timedelta(days=TREND_WINDOW_DAYS - 1), end

    def resolve_tenant(self, context: TenantContext, hotel_id: Optional[int] = None) -> int:
        return self.guard.resolve_tenant_id(context, hotel_id, self.admin_fallback_tenant_id)

    # Preprocessing

    async def preprocess_today_metrics(self, context: TenantContext, hotel_id: Optional[int] = None) -> PreprocessReport:
        """Recompute and cache today's order count, revenue, new users and room status distribution."""
        tenant_id = self.resolve_tenant(context, hotel_id)
        log = add_tenant_id(logger, tenant_id)
        day = self.today()
        report = PreprocessReport(tenant_id=tenant_id, operation="today_metrics")

        steps: List[Tuple[MetricKind, Callable[[], Awaitable[Any]]]] = [
            (MetricKind.ORDER_COUNT, lambda: self.repos.orders.count_orders_by_date(tenant_id, day)),
            (MetricKind.REVENUE, lambda: self.repos.orders.calculate_revenue_by_date(tenant_id, day)),
            (MetricKind.NEW_USERS, lambda: self.repos.users.count_users_by_date(tenant_id, day)),
            (MetricKind.ROOM_STATUS, lambda: self.repos.rooms.get_room_status_statistics(tenant_id)),
        ]

        log.info("Preprocessing today's metrics", date=day.isoformat())
        for metric, compute in steps:
            try:
                value = self._normalize(metric, await compute())
                await self._store(CacheKey.for_date(tenant_id, metric, day), value)
                report.processed.append(metric.value)
            except Exception as exc:
                log.error("Today metric computation failed", metric=metric.value, date=day.isoformat(), error=str(exc))
                self._record_failure(metric.value)
                report.failed[metric.value] = str(exc)

        log.info("Today's metrics preprocessed", processed=len(report.processed), failed=len(report.failed))
        return report

    async def preprocess_trend_data(self, context: TenantContext, hotel_id: Optional[int] = None) -> PreprocessReport:
        """Recompute order count, revenue and new users for every date of the trend window.

        Dates are processed one at a time in ascending order. A failing
        date writes nothing and is skipped.
        """
        tenant_id = self.resolve_tenant(context, hotel_id)
        log = add_tenant_id(logger, tenant_id)
        start, end = self.trend_window()
        report = PreprocessReport(tenant_id=tenant_id, operation="trend_data")

        log.info("Preprocessing trend window", start=start.isoformat(), end=end.isoformat())
        for day in iter_dates(start, end):
            try:
                values = {
                    MetricKind.ORDER_COUNT: await self.repos.orders.count_orders_by_date(tenant_id, day),
                    MetricKind.REVENUE: await self.repos.orders.calculate_revenue_by_date(tenant_id, day),
                    MetricKind.NEW_USERS: await self.repos.users.count_users_by_date(tenant_id, day),
                }
                await self._store_many({
                    CacheKey.for_date(tenant_id, metric, day): self._normalize(metric, value)
                    for metric, value in values.items()
                })
                report.processed.append(day.isoformat())
            except Exception as exc:
                log.warning("Trend date skipped", date=day.isoformat(), error=str(exc))
                self._record_failure("trend_day")
                report.failed[day.isoformat()] = str(exc)

        log.info("Trend window preprocessed", processed=len(report.processed), failed=len(report.failed))
        return report

    async def get_daily_snapshot(self, context: TenantContext, day: date, hotel_id: Optional[int] = None) -> DailyMetricSnapshot:
        """Assemble a snapshot from cached per-day entries; missing parts stay None."""
        tenant_id = self.resolve_tenant(context, hotel_id)
        snapshot = DailyMetricSnapshot(tenant_id=tenant_id, date=day)

        entry = await self.cache.get(CacheKey.for_date(tenant_id, MetricKind.ORDER_COUNT, day))
        if entry is not None:
            snapshot.order_count = int(entry.value)
        entry = await self.cache.get(CacheKey.for_date(tenant_id, MetricKind.REVENUE, day))
        if entry is not None:
            snapshot.revenue = Decimal(entry.value)
        entry = await self.cache.get(CacheKey.for_date(tenant_id, MetricKind.NEW_USERS, day))
        if entry is not None:
            snapshot.new_user_count = int(entry.value)
        entry = await self.cache.get(CacheKey.for_date(tenant_id, MetricKind.ROOM_STATUS, day))
        if entry is not None:
            snapshot.room_status_counts = dict(entry.value)
        return snapshot

    # On-demand range queries

    async def get_occupancy_history(
        self, context: TenantContext, start: date, end: date, hotel_id: Optional[int] = None
    ) -> List[float]:
        """Occupancy rate per day in ``[start, end]``."""
        tenant_id = self.resolve_tenant(context, hotel_id)
        return await self._daily_series(
            "occupancy_history", tenant_id, start, end,
            lambda: self.repos.orders.calculate_occupancy_history(tenant_id, start, end),
            float,
        )

    async def get_revenue_growth_trend(
        self, context: TenantContext, start: date, end: date, hotel_id: Optional[int] = None
    ) -> List[Decimal]:
        """Revenue per day in ``[start, end]``."""
        tenant_id = self.resolve_tenant(context, hotel_id)
        return await self._daily_series(
            "revenue_trend", tenant_id, start, end,
            lambda: self.repos.orders.calculate_revenue_trend(tenant_id, start, end),
            _revenue,
        )

    async def get_user_activity_trend(
        self, context: TenantContext, start: date, end: date, hotel_id: Optional[int] = None
    ) -> List[int]:
        """Active users per day in ``[start, end]``."""
        tenant_id = self.resolve_tenant(context, hotel_id)
        return await self._daily_series(
            "user_activity_trend", tenant_id, start, end,
            lambda: self.repos.users.calculate_user_activity_trend(tenant_id, start, end),
            int,
        )

    async def get_review_quality_stats(
        self, context: TenantContext, start: datetime, end: datetime, hotel_id: Optional[int] = None
    ) -> List[int]:
        """Review counts per rating value 1..5 for reviews created in ``[start, end]``."""
        tenant_id = self.resolve_tenant(context, hotel_id)
        self._validate_range(start, end)
        try:
            buckets = [int(count) for count in await self.repos.reviews.calculate_rating_distribution(tenant_id, start, end)]
        except Exception as exc:
            raise self._aggregation_error("review_quality", tenant_id, f"Failed to compute review_quality: {exc}") from exc

        if len(buckets) != RATING_BUCKETS:
            raise self._aggregation_error(
                "review_quality", tenant_id, f"Expected {RATING_BUCKETS} rating buckets, got {len(buckets)}"
            )
        return buckets

    async def _daily_series(
        self,
        metric: str,
        tenant_id: int,
        start: date,
        end: date,
        fetch: Callable[[], Awaitable[List[Any]]],
        convert: Callable[[Any], Any],
    ) -> List[Any]:
        self._validate_range(start, end)
        expected = (end - start).days + 1
        logger.info("Range query", metric=metric, tenant_id=tenant_id, start=start.isoformat(), end=end.isoformat())
        try:
            series = [convert(value) for value in await fetch()]
        except Exception as exc:
            raise self._aggregation_error(metric, tenant_id, f"Failed to compute {metric}: {exc}") from exc

        if len(series) != expected:
            raise self._aggregation_error(
                metric, tenant_id, f"{metric} returned {len(series)} values for a {expected} day range"
            )
        return series

    @staticmethod
    def _validate_range(start, end) -> None:
        if start > end:
            raise ValidationError("start must not be after end", field="start", value=start)

    def _aggregation_error(self, metric: str, tenant_id: int, message: str) -> AggregationError:
        logger.error("Range query failed", metric=metric, tenant_id=tenant_id, error=message)
        self._record_failure(metric)
        return AggregationError(message, metric=metric, context=error_context(metric, tenant_id=tenant_id))

    # Helpers

    @staticmethod
    def _normalize(metric: MetricKind, value: Any) -> Any:
        if metric is MetricKind.REVENUE:
            return _revenue(value)
        if metric is MetricKind.ROOM_STATUS:
            return _status_counts(value)
        return int(value or 0)

    async def _store(self, key: CacheKey, value: Any) -> None:
        await self.cache.put(key, value)
        if self.metrics:
            self.metrics.record_cache_write(key.metric.scope.value)

    async def _store_many(self, values: Dict[CacheKey, Any]) -> None:
        await self.cache.put_many(values)
        if self.metrics:
            for key in values:
                self.metrics.record_cache_write(key.metric.scope.value)

    def _record_failure(self, metric: str) -> None:
        if self.metrics:
            self.metrics.record_aggregation_failure(metric)
