"""Unit tests for the dashboard payloads."""

from datetime import date
from decimal import Decimal

import pytest

from dashboard_stats.aggregation.dashboard import growth_rate, occupancy_rate
from dashboard_stats.errors import AccessDenied, TransientDataAccessError
from dashboard_stats.models import CacheKey, MetricKind


@pytest.mark.parametrize(
    "current, previous, expected",
    [
        (Decimal("150"), Decimal("100"), 50.0),
        (Decimal("1"), Decimal("3"), -66.67),
        (Decimal("10"), Decimal("0"), 0.0),
        (Decimal("10"), None, 0.0),
        (None, Decimal("20"), -100.0),
    ],
)
def test_growth_rate(current, previous, expected):
    assert growth_rate(current, previous) == expected


def test_occupancy_rate():
    assert occupancy_rate(6, 20) == 30.0
    assert occupancy_rate(1, 3) == 33.33
    assert occupancy_rate(2, 3) == 66.67
    assert occupancy_rate(0, 0) == 0.0


class TestRealTimeData:

    @pytest.mark.asyncio
    async def test_payload(self, dashboard, cache, job_context):
        data = await dashboard.refresh_real_time_data(job_context)

        assert data["room_status"]["OCCUPIED"] == 6
        assert data["pending_orders"] == 3
        assert data["active_orders"] == 12
        assert data["today_check_ins"] == 2
        assert data["today_check_outs"] == 1
        assert data["active_users"] == 9
        assert data["online_users_count"] == 4
        assert data["today_new_users"] == 1
        assert len(data["recent_orders"]) == 10
        assert "last_update_time" in data
        assert (await cache.get(CacheKey.current(1, MetricKind.REALTIME))).value == data

    @pytest.mark.asyncio
    async def test_active_users_window(self, dashboard, repositories, job_context):
        await dashboard.refresh_real_time_data(job_context)
        assert repositories.users.calls_to("count_active_users_since") == [(1, date(2024, 3, 8))]


class TestCoreMetrics:

    @pytest.mark.asyncio
    async def test_payload(self, dashboard, job_context):
        data = await dashboard.refresh_core_metrics(job_context)

        assert data == {
            "today_orders": 4,
            "today_revenue": "250.50",
            "monthly_orders": 4,
            "monthly_revenue": "250.50",
            "total_rooms": 20,
            "available_rooms": 12,
            "occupied_rooms": 6,
            "maintenance_rooms": 1,
            "occupancy_rate": 30.0,
            "active_users": 9,
            "new_users_today": 1,
            "average_rating": 4.24,
            "pending_reviews": 3,
        }

    @pytest.mark.asyncio
    async def test_no_rooms_and_no_reviews(self, dashboard, repositories, job_context):
        repositories.rooms.statuses[1] = {}
        repositories.reviews.average.clear()

        data = await dashboard.refresh_core_metrics(job_context)

        assert data["occupancy_rate"] == 0.0
        assert data["average_rating"] == 0.0

    @pytest.mark.asyncio
    async def test_repository_failure_is_transient(self, dashboard, repositories, metrics, job_context):
        boom = RuntimeError("rooms table locked")
        repositories.rooms.fail("get_room_status_statistics", boom)

        with pytest.raises(TransientDataAccessError) as exc_info:
            await dashboard.refresh_core_metrics(job_context)
        assert exc_info.value.__cause__ is boom
        assert metrics.get_sample("aggregation_failures_total", {"metric": "core_metrics"}) == 1.0


class TestRevenueStatistics:

    @pytest.mark.asyncio
    async def test_payload(self, dashboard, job_context):
        data = await dashboard.refresh_revenue_statistics(job_context)

        assert data["today_revenue"] == "250.50"
        assert data["yesterday_revenue"] == "0"
        assert data["monthly_revenue"] == "250.50"
        assert data["total_revenue"] == "250.50"
        assert data["daily_growth_rate"] == 0.0
        assert data["average_order_value"] == "62.63"
        assert data["projected_monthly_revenue"] == "517.70"
        assert data["projected_yearly_revenue"] == "3006.00"

    @pytest.mark.asyncio
    async def test_growth_rates(self, dashboard, repositories, job_context):
        repositories.orders.revenue[(1, date(2024, 3, 14))] = Decimal("200.40")
        repositories.orders.revenue[(1, date(2024, 2, 10))] = Decimal("100.00")

        data = await dashboard.refresh_revenue_statistics(job_context)

        assert data["daily_growth_rate"] == 25.0
        assert data["monthly_revenue"] == "450.90"
        assert data["last_month_revenue"] == "100.00"
        assert data["monthly_growth_rate"] == 350.9

    @pytest.mark.asyncio
    async def test_period_boundaries(self, dashboard, repositories, job_context):
        await dashboard.refresh_revenue_statistics(job_context)

        ranges = [args[1:] for args in repositories.orders.calls_to("calculate_revenue_by_date_range")]
        assert (date(2024, 3, 9), date(2024, 3, 15)) in ranges
        assert (date(2024, 3, 2), date(2024, 3, 8)) in ranges
        assert (date(2024, 2, 1), date(2024, 2, 29)) in ranges
        assert (date(2023, 1, 1), date(2023, 12, 31)) in ranges


class TestReadsAndCleanup:

    @pytest.mark.asyncio
    async def test_read_through_then_cached(self, dashboard, repositories, job_context):
        first = await dashboard.get_core_metrics(job_context)
        repositories.orders.order_counts[(1, date(2024, 3, 15))] = 99

        second = await dashboard.get_core_metrics(job_context)

        assert second == first
        assert second["today_orders"] == 4

    @pytest.mark.asyncio
    async def test_reader_cannot_cross_tenants(self, dashboard, manager_context):
        with pytest.raises(AccessDenied):
            await dashboard.get_revenue_statistics(manager_context, hotel_id=2)

    @pytest.mark.asyncio
    async def test_clear_dashboard_cache_keeps_snapshots(self, dashboard, aggregator, cache, job_context, today):
        await aggregator.preprocess_today_metrics(job_context)
        await dashboard.refresh_real_time_data(job_context)
        await dashboard.refresh_core_metrics(job_context)
        await dashboard.refresh_revenue_statistics(job_context, hotel_id=1)

        removed = await dashboard.clear_dashboard_cache()

        assert removed == 3
        assert await cache.get(CacheKey.current(1, MetricKind.CORE_METRICS)) is None
        assert await cache.get(CacheKey.for_date(1, MetricKind.ORDER_COUNT, today)) is not None
