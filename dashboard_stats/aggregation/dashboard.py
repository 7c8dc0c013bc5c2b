"""
Dashboard views.

The three dashboard payloads (real-time, core metrics, revenue
statistics) are computed per tenant by the fixed-interval refresh jobs
and read back from the cache by consumers. A cache miss on read falls
through to a refresh.
"""

import calendar
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, Optional

import structlog

from shared.framework.metrics import MetricsCollector
from shared.utils.logging import add_tenant_id

from ..access.guard import TenantAccessGuard
from ..cache.store import CacheStore
from ..errors import TransientDataAccessError, error_context
from ..models import CacheKey, CacheScope, MetricKind, TenantContext
from ..repositories import Repositories

logger = structlog.get_logger(__name__)

PENDING_STATUSES = ("PENDING",)
ACTIVE_STATUSES = ("CONFIRMED", "COMPLETED")

ROOM_AVAILABLE = "AVAILABLE"
ROOM_OCCUPIED = "OCCUPIED"
ROOM_MAINTENANCE = "MAINTENANCE"

REVIEW_PENDING = "PENDING"

CENTS = Decimal("0.01")
RATE_PRECISION = Decimal("0.0001")


def round_half_up(value, places: Decimal = CENTS) -> Decimal:
    return Decimal(str(value)).quantize(places, rounding=ROUND_HALF_UP)


def growth_rate(current: Optional[Decimal], previous: Optional[Decimal]) -> float:
    """Percentage change from ``previous`` to ``current``; 0 without a baseline."""
    if previous is None or previous == 0:
        return 0.0
    current = current if current is not None else Decimal("0")
    ratio = ((Decimal(current) - Decimal(previous)) / Decimal(previous)).quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)
    return float(ratio * 100)


def occupancy_rate(occupied: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return float(round_half_up(Decimal(occupied) * 100 / Decimal(total)))


class DashboardService:
    """Computes and caches the dashboard payloads of one tenant at a time."""

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
        self.recent_orders_limit = config.recent_orders_limit if config is not None else 10
        self.active_user_days = config.active_user_days if config is not None else 7
        self.admin_fallback_tenant_id = config.admin_fallback_tenant_id if config is not None else None
        self._today = today or (lambda: datetime.now(self.tz).date())

    def _resolve(self, context: TenantContext, hotel_id: Optional[int]) -> int:
        return self.guard.resolve_tenant_id(context, hotel_id, self.admin_fallback_tenant_id)

    # Refresh

    async def refresh_real_time_data(self, context: TenantContext, hotel_id: Optional[int] = None) -> Dict[str, Any]:
        """Room status, order pipeline and user activity as of now."""
        tenant_id = self._resolve(context, hotel_id)
        return await self._refresh(tenant_id, MetricKind.REALTIME, self._compute_real_time)

    async def refresh_core_metrics(self, context: TenantContext, hotel_id: Optional[int] = None) -> Dict[str, Any]:
        """Headline figures: today, month to date, rooms, users, reviews."""
        tenant_id = self._resolve(context, hotel_id)
        return await self._refresh(tenant_id, MetricKind.CORE_METRICS, self._compute_core_metrics)

    async def refresh_revenue_statistics(self, context: TenantContext, hotel_id: Optional[int] = None) -> Dict[str, Any]:
        """Revenue per period, growth rates and projections."""
        tenant_id = self._resolve(context, hotel_id)
        return await self._refresh(tenant_id, MetricKind.REVENUE_STATISTICS, self._compute_revenue_statistics)

    # Read

    async def get_real_time_data(self, context: TenantContext, hotel_id: Optional[int] = None) -> Dict[str, Any]:
        tenant_id = self._resolve(context, hotel_id)
        return await self._read_through(tenant_id, MetricKind.REALTIME, self._compute_real_time)

    async def get_core_metrics(self, context: TenantContext, hotel_id: Optional[int] = None) -> Dict[str, Any]:
        tenant_id = self._resolve(context, hotel_id)
        return await self._read_through(tenant_id, MetricKind.CORE_METRICS, self._compute_core_metrics)

    async def get_revenue_statistics(self, context: TenantContext, hotel_id: Optional[int] = None) -> Dict[str, Any]:
        tenant_id = self._resolve(context, hotel_id)
        return await self._read_through(tenant_id, MetricKind.REVENUE_STATISTICS, self._compute_revenue_statistics)

    async def clear_dashboard_cache(self) -> int:
        """Drop every dashboard payload of every tenant. Day snapshots are kept."""
        removed = await self.cache.clear(scope=CacheScope.DASHBOARD)
        logger.info("Dashboard cache cleared", removed=removed)
        return removed

    async def _read_through(self, tenant_id: int, metric: MetricKind, compute) -> Dict[str, Any]:
        entry = await self.cache.get(CacheKey.current(tenant_id, metric))
        if entry is not None:
            return entry.value
        logger.debug("Dashboard cache miss", tenant_id=tenant_id, metric=metric.value)
        return await self._refresh(tenant_id, metric, compute)

    async def _refresh(self, tenant_id: int, metric: MetricKind, compute) -> Dict[str, Any]:
        log = add_tenant_id(logger, tenant_id)
        try:
            payload = await compute(tenant_id)
        except TransientDataAccessError as exc:
            self._record_failure(metric)
            if exc.context is None:
                exc.context = error_context(metric.value, tenant_id=tenant_id)
            raise
        except Exception as exc:
            self._record_failure(metric)
            log.error("Dashboard computation failed", metric=metric.value, error=str(exc))
            raise TransientDataAccessError(
                f"Failed to compute {metric.value}: {exc}",
                source=metric.value,
                context=error_context(metric.value, tenant_id=tenant_id),
            ) from exc

        entry = await self.cache.put(CacheKey.current(tenant_id, metric), payload)
        if self.metrics:
            self.metrics.record_cache_write(CacheScope.DASHBOARD.value)
        log.debug("Dashboard payload refreshed", metric=metric.value)
        return entry.value

    def _record_failure(self, metric: MetricKind) -> None:
        if self.metrics:
            self.metrics.record_aggregation_failure(metric.value)

    # Computations

    async def _compute_real_time(self, tenant_id: int) -> Dict[str, Any]:
        today = self._today()
        orders = self.repos.orders

        room_status = await self.repos.rooms.get_room_status_statistics(tenant_id)
        active_users = await self.repos.users.count_active_users_since(
            tenant_id, today - timedelta(days=self.active_user_days)
        )

        return {
            "room_status": {str(k): int(v) for k, v in (room_status or {}).items()},
            "pending_orders": await orders.count_orders_by_status(tenant_id, PENDING_STATUSES),
            "active_orders": await orders.count_orders_by_status(tenant_id, ACTIVE_STATUSES),
            "today_check_ins": await orders.count_check_ins(tenant_id, today),
            "today_check_outs": await orders.count_check_outs(tenant_id, today),
            "active_users": active_users,
            "today_new_users": await self.repos.users.count_users_by_date(tenant_id, today),
            # Estimate; there is no session tracking behind it
            "online_users_count": active_users // 2,
            "recent_orders": await orders.find_recent_orders(tenant_id, self.recent_orders_limit),
            "last_update_time": datetime.now(self.tz).isoformat(),
        }

    async def _compute_core_metrics(self, tenant_id: int) -> Dict[str, Any]:
        today = self._today()
        month_start = today.replace(day=1)
        orders = self.repos.orders

        room_status = await self.repos.rooms.get_room_status_statistics(tenant_id) or {}
        total_rooms = sum(int(v) for v in room_status.values())
        occupied = int(room_status.get(ROOM_OCCUPIED, 0))

        average_rating = await self.repos.reviews.average_approved_rating(tenant_id)

        return {
            "today_orders": await orders.count_orders_by_date(tenant_id, today),
            "today_revenue": await orders.calculate_revenue_by_date(tenant_id, today) or Decimal("0"),
            "monthly_orders": await orders.count_orders_by_date_range(tenant_id, month_start, today),
            "monthly_revenue": await orders.calculate_revenue_by_date_range(tenant_id, month_start, today) or Decimal("0"),
            "total_rooms": total_rooms,
            "available_rooms": int(room_status.get(ROOM_AVAILABLE, 0)),
            "occupied_rooms": occupied,
            "maintenance_rooms": int(room_status.get(ROOM_MAINTENANCE, 0)),
            "occupancy_rate": occupancy_rate(occupied, total_rooms),
            "active_users": await self.repos.users.count_active_users_since(
                tenant_id, today - timedelta(days=self.active_user_days)
            ),
            "new_users_today": await self.repos.users.count_users_by_date(tenant_id, today),
            "average_rating": float(round_half_up(average_rating)) if average_rating is not None else 0.0,
            "pending_reviews": await self.repos.reviews.count_reviews_by_status(tenant_id, REVIEW_PENDING),
        }

    async def _compute_revenue_statistics(self, tenant_id: int) -> Dict[str, Any]:
        today = self._today()
        orders = self.repos.orders

        async def revenue(start: date, end: date) -> Decimal:
            value = await orders.calculate_revenue_by_date_range(tenant_id, start, end)
            return Decimal(value) if value is not None else Decimal("0")

        yesterday = today - timedelta(days=1)
        week_start = today - timedelta(days=6)
        last_week_end = week_start - timedelta(days=1)
        last_week_start = last_week_end - timedelta(days=6)
        month_start = today.replace(day=1)
        last_month_end = month_start - timedelta(days=1)
        last_month_start = last_month_end.replace(day=1)
        year_start = today.replace(month=1, day=1)
        last_year_start = year_start.replace(year=year_start.year - 1)
        last_year_end = year_start - timedelta(days=1)

        today_revenue = await orders.calculate_revenue_by_date(tenant_id, today) or Decimal("0")
        yesterday_revenue = await orders.calculate_revenue_by_date(tenant_id, yesterday) or Decimal("0")
        weekly_revenue = await revenue(week_start, today)
        last_week_revenue = await revenue(last_week_start, last_week_end)
        monthly_revenue = await revenue(month_start, today)
        last_month_revenue = await revenue(last_month_start, last_month_end)
        yearly_revenue = await revenue(year_start, today)
        last_year_revenue = await revenue(last_year_start, last_year_end)

        yearly_orders = await orders.count_orders_by_date_range(tenant_id, year_start, today)
        average_order_value = (
            round_half_up(yearly_revenue / Decimal(yearly_orders)) if yearly_orders else Decimal("0")
        )

        days_in_month = calendar.monthrange(today.year, today.month)[1]
        projected_monthly = round_half_up(monthly_revenue * Decimal(days_in_month) / Decimal(today.day))
        projected_yearly = round_half_up(monthly_revenue * 12)

        return {
            "today_revenue": today_revenue,
            "yesterday_revenue": yesterday_revenue,
            "weekly_revenue": weekly_revenue,
            "last_week_revenue": last_week_revenue,
            "monthly_revenue": monthly_revenue,
            "last_month_revenue": last_month_revenue,
            "yearly_revenue": yearly_revenue,
            "last_year_revenue": last_year_revenue,
            "total_revenue": yearly_revenue,
            "daily_growth_rate": growth_rate(today_revenue, yesterday_revenue),
            "weekly_growth_rate": growth_rate(weekly_revenue, last_week_revenue),
            "monthly_growth_rate": growth_rate(monthly_revenue, last_month_revenue),
            "yearly_growth_rate": growth_rate(yearly_revenue, last_year_revenue),
            "average_order_value": average_order_value,
            "projected_monthly_revenue": projected_monthly,
            "projected_yearly_revenue": projected_yearly,
        }
