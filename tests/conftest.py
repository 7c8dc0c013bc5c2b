"""Pytest configuration and fixtures."""

import os
from datetime import date

import pytest
from prometheus_client import CollectorRegistry

from dashboard_stats.access.guard import TenantAccessGuard
from dashboard_stats.aggregation.aggregator import StatisticsAggregator
from dashboard_stats.aggregation.dashboard import DashboardService
from dashboard_stats.cache.store import InMemoryCacheStore
from dashboard_stats.models import TenantContext
from dashboard_stats.refresh.coordinator import CacheRefreshCoordinator
from shared.framework.metrics import MetricsCollector
from tests.fixtures.mock_services import ADMIN, MANAGER, build_repositories


TODAY = date(2024, 3, 15)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep DASH_STATS_* variables from the host out of config tests."""
    for name in list(os.environ):
        if name.startswith("DASH_STATS_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def repositories():
    return build_repositories(TODAY)


@pytest.fixture
def cache():
    return InMemoryCacheStore(namespace="stats")


@pytest.fixture
def metrics():
    return MetricsCollector("dashboard-stats", registry=CollectorRegistry())


@pytest.fixture
def guard(repositories):
    return TenantAccessGuard(repositories.directory)


@pytest.fixture
def aggregator(repositories, cache, guard, metrics):
    return StatisticsAggregator(repositories, cache, guard, metrics=metrics, today=lambda: TODAY)


@pytest.fixture
def dashboard(repositories, cache, guard, metrics):
    return DashboardService(repositories, cache, guard, metrics=metrics, today=lambda: TODAY)


@pytest.fixture
def coordinator(aggregator, dashboard, repositories, metrics):
    return CacheRefreshCoordinator(aggregator, dashboard, repositories.tenants, metrics=metrics)


@pytest.fixture
def manager_context():
    return TenantContext.for_user(MANAGER)


@pytest.fixture
def admin_context():
    return TenantContext.for_user(ADMIN)


@pytest.fixture
def job_context():
    return TenantContext.for_job(1, "test-job")
