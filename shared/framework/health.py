"""
Health and readiness reporting.

A check is any callable, plain or async, whose truthiness says whether
the dependency behind it works. An exception or a timeout counts as a
failed check. Failing critical checks make the service unhealthy;
failing optional ones only degrade it.
"""

import asyncio
import inspect
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import structlog

from .config import ENVIRONMENTS

logger = structlog.get_logger(__name__)


class HealthStatus(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class HealthCheck:
    """A named probe of one dependency."""
    name: str
    check_func: Callable[[], Any]
    timeout: float = 5.0
    critical: bool = True
    description: Optional[str] = None


class HealthChecker:
    """Evaluates registered checks concurrently and summarizes them.

    Detail providers contribute extra, non-judged sections to the health
    document (for example the state of background jobs).
    """

    def __init__(self, config):
        self.config = config
        self._checks: Dict[str, HealthCheck] = {}
        self._details: Dict[str, Callable[[], Any]] = {}
        self.last_status: Optional[HealthStatus] = None
        self.last_check_time: Optional[float] = None

        self.add_check(HealthCheck(
            name="config",
            check_func=self._config_is_valid,
            description="Service configuration validation",
        ))

    @property
    def checks(self) -> List[HealthCheck]:
        return list(self._checks.values())

    def add_check(self, check: HealthCheck) -> None:
        """Register ``check``, replacing any check with the same name."""
        self._checks[check.name] = check
        logger.debug("Registered health check", name=check.name, critical=check.critical)

    def remove_check(self, name: str) -> None:
        self._checks.pop(name, None)

    def add_detail(self, name: str, provider: Callable[[], Any]) -> None:
        self._details[name] = provider

    async def check_health(self) -> Dict[str, Any]:
        checks = self.checks
        outcomes = await asyncio.gather(*(self._evaluate(check) for check in checks))
        results = {check.name: outcome for check, outcome in zip(checks, outcomes)}

        critical_failures = sum(
            1 for check in checks if check.critical and results[check.name]["status"] != "healthy"
        )
        optional_failures = sum(
            1 for check in checks if not check.critical and results[check.name]["status"] != "healthy"
        )
        if critical_failures:
            status = HealthStatus.UNHEALTHY
        elif optional_failures:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.HEALTHY

        self.last_status = status
        self.last_check_time = time.time()

        report = {
            "healthy": status is not HealthStatus.UNHEALTHY,
            "status": status.value,
            "checks": results,
            "critical_failures": critical_failures,
            "total_checks": len(checks),
            "timestamp": self.last_check_time,
        }
        for name, provider in self._details.items():
            report[name] = self._detail(name, provider)
        return report

    async def check_readiness(self) -> Dict[str, Any]:
        health = await self.check_health()
        ready = health["critical_failures"] == 0
        return {
            "ready": ready,
            "status": "ready" if ready else "not_ready",
            "health": health,
            "timestamp": time.time(),
        }

    async def _evaluate(self, check: HealthCheck) -> Dict[str, Any]:
        started = time.perf_counter()
        result: Dict[str, Any] = {"critical": check.critical, "description": check.description}
        try:
            healthy = await asyncio.wait_for(self._call(check.check_func), timeout=check.timeout)
        except asyncio.TimeoutError:
            logger.warning("Health check timed out", name=check.name, timeout=check.timeout)
            healthy = False
            result["error"] = "timeout"
        except Exception as exc:
            logger.warning("Health check raised", name=check.name, error=str(exc))
            healthy = False
            result["error"] = str(exc)

        result["status"] = "healthy" if healthy else "unhealthy"
        result["duration_ms"] = round((time.perf_counter() - started) * 1000, 3)
        return result

    @staticmethod
    async def _call(func: Callable[[], Any]) -> bool:
        value = func()
        if inspect.isawaitable(value):
            value = await value
        return bool(value)

    @staticmethod
    def _detail(name: str, provider: Callable[[], Any]) -> Any:
        try:
            return provider()
        except Exception as exc:
            logger.warning("Health detail provider failed", name=name, error=str(exc))
            return {"error": str(exc)}

    def _config_is_valid(self) -> bool:
        return bool(self.config.service_name) and self.config.environment in ENVIRONMENTS
