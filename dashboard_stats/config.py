"""Configuration for the dashboard statistics service."""

from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from shared.framework.config import ServiceConfig, env, env_bool

from .errors import SERVICE_NAME


class StatisticsConfig(ServiceConfig):
    """Configuration for the dashboard statistics service."""

    def __init__(self) -> None:
        super().__init__(service_name=SERVICE_NAME)

        # Fixed-interval refreshes, milliseconds between starts
        self.realtime_interval_ms = int(env("REALTIME_INTERVAL_MS", "300000"))
        self.core_metrics_interval_ms = int(env("CORE_METRICS_INTERVAL_MS", "900000"))
        self.revenue_interval_ms = int(env("REVENUE_INTERVAL_MS", "3600000"))

        # Calendar triggers, 5-field cron evaluated in ``timezone``
        self.trend_cron = env("TREND_CRON", "0 1 * * *")
        self.today_metrics_cron = env("TODAY_METRICS_CRON", "0 2 * * *")
        self.cleanup_cron = env("CLEANUP_CRON", "0 3 * * MON")

        self.timezone = env("TIMEZONE", "UTC")
        self.recent_orders_limit = int(env("RECENT_ORDERS_LIMIT", "10"))
        self.active_user_days = int(env("ACTIVE_USER_DAYS", "7"))

        self.cache_backend = env("CACHE_BACKEND", "memory")
        self.cache_namespace = env("CACHE_NAMESPACE", "stats")
        ttl = env("CACHE_TTL_SECONDS", "")
        self.cache_ttl_seconds: Optional[int] = int(ttl) if ttl else None

        fallback = env("ADMIN_FALLBACK_TENANT_ID", "")
        self.admin_fallback_tenant_id: Optional[int] = int(fallback) if fallback else None

        self.job_history_size = int(env("JOB_HISTORY_SIZE", "100"))
        self.scheduler_enabled = env_bool("SCHEDULER_ENABLED", True)

        # "package.module:callable" returning a Repositories bundle
        self.repository_factory = env("REPOSITORY_FACTORY", "")

        self.validate()

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def validate(self) -> None:
        for name in ("realtime_interval_ms", "core_metrics_interval_ms", "revenue_interval_ms"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        for name in ("trend_cron", "today_metrics_cron", "cleanup_cron"):
            if not croniter.is_valid(getattr(self, name)):
                raise ValueError(f"Invalid cron expression for {name}: {getattr(self, name)}")
        if self.cache_backend not in ("memory", "redis"):
            raise ValueError(f"Invalid cache backend: {self.cache_backend}")
        if not self.cache_namespace or ":" in self.cache_namespace:
            raise ValueError("cache_namespace must be non-empty and contain no ':'")
        try:
            ZoneInfo(self.timezone)
        except ZoneInfoNotFoundError as exc:
            raise ValueError(f"Unknown timezone: {self.timezone}") from exc

    def to_dict(self):
        result = super().to_dict()
        result.update({
            "realtime_interval_ms": self.realtime_interval_ms,
            "core_metrics_interval_ms": self.core_metrics_interval_ms,
            "revenue_interval_ms": self.revenue_interval_ms,
            "trend_cron": self.trend_cron,
            "today_metrics_cron": self.today_metrics_cron,
            "cleanup_cron": self.cleanup_cron,
            "timezone": self.timezone,
            "cache_backend": self.cache_backend,
            "cache_namespace": self.cache_namespace,
            "admin_fallback_tenant_id": self.admin_fallback_tenant_id,
            "scheduler_enabled": self.scheduler_enabled,
        })
        return result
