"""
Environment driven settings.

Every setting is read from a ``DASH_STATS_`` prefixed variable when the
dataclass is instantiated and checked in ``__post_init__``.
"""

import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict
from urllib.parse import urlsplit, urlunsplit


ENV_PREFIX = "DASH_STATS_"
ENVIRONMENTS = ("local", "dev", "staging", "prod")
LOG_LEVELS = ("debug", "info", "warning", "error")
LOG_FORMATS = ("json", "console")


def env(name: str, default: str) -> str:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def env_bool(name: str, default: bool) -> bool:
    return env(name, "true" if default else "false").lower() == "true"


def env_int(name: str, default: int) -> int:
    return int(env(name, str(default)))


def redact_url(url: str) -> str:
    """Hide the password part of a connection URL."""
    parts = urlsplit(url)
    if not parts.password:
        return url
    netloc = parts.netloc.replace(f":{parts.password}@", ":***@", 1)
    return urlunsplit(parts._replace(netloc=netloc))


@dataclass
class DatabaseConfig:
    redis_url: str = field(default_factory=lambda: env("REDIS_URL", "redis://localhost:6379/0"))
    redis_max_connections: int = field(default_factory=lambda: env_int("REDIS_MAX_CONNECTIONS", 20))
    redis_timeout: int = field(default_factory=lambda: env_int("REDIS_TIMEOUT", 30))

    def __post_init__(self):
        if self.redis_max_connections < 1:
            raise ValueError("redis_max_connections must be at least 1")


@dataclass
class ObservabilityConfig:
    log_level: str = field(default_factory=lambda: env("LOG_LEVEL", "info"))
    log_format: str = field(default_factory=lambda: env("LOG_FORMAT", "json"))
    metrics_enabled: bool = field(default_factory=lambda: env_bool("METRICS_ENABLED", True))
    health_port: int = field(default_factory=lambda: env_int("HEALTH_PORT", 8080))

    def __post_init__(self):
        self.log_level = self.log_level.lower()
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level}")
        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"Invalid log format: {self.log_format}")


@dataclass
class ServiceConfig:
    """Settings every service shares; subclasses add their own."""
    service_name: str
    environment: str = field(default_factory=lambda: env("ENV", "local"))
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def __post_init__(self):
        if not self.service_name:
            raise ValueError("service_name is required")
        if self.environment not in ENVIRONMENTS:
            raise ValueError(f"Invalid environment: {self.environment}")

    def to_dict(self) -> Dict[str, Any]:
        """Loggable view; connection secrets are masked."""
        database = asdict(self.database)
        database["redis_url"] = redact_url(self.database.redis_url)
        return {
            "service_name": self.service_name,
            "environment": self.environment,
            "database": database,
            "observability": asdict(self.observability),
        }
