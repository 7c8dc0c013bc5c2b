"""Main entry point for the dashboard statistics service."""

import asyncio
import importlib
from typing import Optional

import structlog

from shared.framework.health import HealthCheck
from shared.framework.service import AsyncService
from shared.storage.redis import RedisClient, RedisConfig
from shared.utils.errors import ConfigurationError
from shared.utils.logging import setup_logging

from .access.guard import TenantAccessGuard
from .aggregation.aggregator import StatisticsAggregator
from .aggregation.dashboard import DashboardService
from .cache.redis_store import RedisCacheStore
from .cache.store import CacheStore, InMemoryCacheStore
from .config import StatisticsConfig
from .refresh.coordinator import CacheRefreshCoordinator
from .refresh.scheduler import Scheduler
from .repositories import Repositories


logger = structlog.get_logger(__name__)


def load_repositories(factory_path: str) -> Repositories:
    """Import and call a ``package.module:callable`` repository factory."""
    if not factory_path or ":" not in factory_path:
        raise ConfigurationError(
            "Repository factory must be given as 'package.module:callable'",
            config_key="DASH_STATS_REPOSITORY_FACTORY",
            config_value=factory_path,
        )
    module_name, attribute = factory_path.split(":", 1)
    try:
        factory = getattr(importlib.import_module(module_name), attribute)
    except (ImportError, AttributeError) as exc:
        raise ConfigurationError(
            f"Cannot load repository factory {factory_path}",
            config_key="DASH_STATS_REPOSITORY_FACTORY",
            config_value=factory_path,
        ) from exc
    return factory()


def build_cache_store(config: StatisticsConfig) -> CacheStore:
    if config.cache_backend == "redis":
        client = RedisClient(RedisConfig(
            url=config.database.redis_url,
            max_connections=config.database.redis_max_connections,
            timeout=config.database.redis_timeout,
        ))
        return RedisCacheStore(client, namespace=config.cache_namespace, ttl_seconds=config.cache_ttl_seconds)
    return InMemoryCacheStore(namespace=config.cache_namespace)


class StatisticsService(AsyncService):
    """Runs the refresh schedule and exposes health and metrics."""

    def __init__(
        self,
        repositories: Optional[Repositories] = None,
        config: Optional[StatisticsConfig] = None,
        cache: Optional[CacheStore] = None,
    ):
        config = config or StatisticsConfig()
        super().__init__(config)
        self.config = config
        self.repositories = repositories
        self.cache = cache
        self.guard: Optional[TenantAccessGuard] = None
        self.aggregator: Optional[StatisticsAggregator] = None
        self.dashboard: Optional[DashboardService] = None
        self.coordinator: Optional[CacheRefreshCoordinator] = None
        self.scheduler: Optional[Scheduler] = None

    async def _startup_hook(self) -> None:
        setup_logging(
            self.config.service_name,
            self.config.observability.log_level,
            self.config.observability.log_format,
        )
        logger.info("Starting statistics service components", config=self.config.to_dict())
        self.metrics.update_service_info(version="1.0.0", environment=self.config.environment)

        if self.repositories is None:
            self.repositories = load_repositories(self.config.repository_factory)
        if self.cache is None:
            self.cache = build_cache_store(self.config)

        self.guard = TenantAccessGuard(self.repositories.directory)
        self.aggregator = StatisticsAggregator(
            self.repositories, self.cache, self.guard, config=self.config, metrics=self.metrics
        )
        self.dashboard = DashboardService(
            self.repositories, self.cache, self.guard, config=self.config, metrics=self.metrics
        )
        self.coordinator = CacheRefreshCoordinator(
            self.aggregator, self.dashboard, self.repositories.tenants, config=self.config, metrics=self.metrics
        )
        self.scheduler = Scheduler(self.config.tzinfo)
        self.coordinator.register(self.scheduler)

        self.health_checker.add_check(HealthCheck(
            name="cache",
            check_func=self.cache.ping,
            description="Cache store reachable",
        ))
        self.health_checker.add_check(HealthCheck(
            name="scheduler",
            check_func=self._check_scheduler,
            critical=self.config.scheduler_enabled,
            description="Refresh scheduler running",
        ))
        self.health_checker.add_detail("jobs", self.coordinator.status)

        if self.config.scheduler_enabled:
            await self.scheduler.start()
        else:
            logger.warning("Scheduler disabled; jobs only run on demand")

        logger.info("Statistics service started", jobs=list(self.coordinator.catalog))

    def _check_scheduler(self) -> bool:
        return self.scheduler is not None and self.scheduler.is_running

    async def _shutdown_hook(self) -> None:
        logger.info("Stopping statistics service components")
        if self.scheduler:
            await self.scheduler.stop()
        if self.cache:
            await self.cache.close()
        logger.info("Statistics service stopped")


async def main():
    """Main entry point."""
    service = StatisticsService()
    await service.run()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
