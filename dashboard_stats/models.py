"""
Data models for the dashboard statistics service.

Tenant scope, cache keys and entries, per-day snapshots, the job
catalog entries and job outcomes.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union


class Role(str, Enum):
    """Principal roles."""
    ADMIN = "ADMIN"
    HOTEL_MANAGER = "HOTEL_MANAGER"
    RECEPTIONIST = "RECEPTIONIST"
    CUSTOMER = "CUSTOMER"
    SYSTEM = "SYSTEM"


@dataclass(frozen=True)
class UserRecord:
    """A fully materialized user identity."""
    user_id: int
    username: str
    role: Role
    hotel_id: Optional[int] = None


@dataclass(frozen=True)
class AuthenticationContext:
    """What the caller authenticated as.

    ``principal`` is None (anonymous), a ``UserRecord`` or a bare
    username that still needs a directory lookup.
    """
    principal: Union[UserRecord, str, None] = None
    authenticated: bool = True

    @classmethod
    def anonymous(cls) -> "AuthenticationContext":
        return cls(principal=None, authenticated=False)


@dataclass(frozen=True)
class TenantContext:
    """Resolved tenant scope of one request or one job execution."""
    tenant_id: Optional[int]
    role: Role
    user_id: Optional[int] = None
    username: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def job_name(self) -> Optional[str]:
        """Job a system context was created for."""
        return self.username if self.role is Role.SYSTEM else None

    @classmethod
    def for_user(cls, user: UserRecord) -> "TenantContext":
        return cls(tenant_id=user.hotel_id, role=user.role, user_id=user.user_id, username=user.username)

    @classmethod
    def for_job(cls, tenant_id: int, job_name: str = "scheduler") -> "TenantContext":
        return cls(tenant_id=tenant_id, role=Role.SYSTEM, username=job_name)


@dataclass(frozen=True)
class Bound:
    """The principal is bound to one tenant."""
    tenant_id: int


@dataclass(frozen=True)
class Unbound:
    """An admin without a tenant binding; the caller picks the tenant."""


UNBOUND = Unbound()
TenantBinding = Union[Bound, Unbound]


class CacheScope(str, Enum):
    """Top-level cache partitions."""
    DASHBOARD = "dashboard"
    SNAPSHOT = "snapshot"


class MetricKind(str, Enum):
    """Kinds of cached values."""
    ORDER_COUNT = "order_count"
    REVENUE = "revenue"
    NEW_USERS = "new_users"
    ROOM_STATUS = "room_status"
    REALTIME = "realtime"
    CORE_METRICS = "core_metrics"
    REVENUE_STATISTICS = "revenue_statistics"

    @property
    def scope(self) -> CacheScope:
        if self in (MetricKind.REALTIME, MetricKind.CORE_METRICS, MetricKind.REVENUE_STATISTICS):
            return CacheScope.DASHBOARD
        return CacheScope.SNAPSHOT


@dataclass(frozen=True)
class CacheKey:
    """(tenant, metric, period) address of a cached value."""
    tenant_id: int
    metric: MetricKind
    period: str

    @classmethod
    def for_date(cls, tenant_id: int, metric: MetricKind, day: date) -> "CacheKey":
        return cls(tenant_id, metric, day.isoformat())

    @classmethod
    def for_range(cls, tenant_id: int, metric: MetricKind, start: date, end: date) -> "CacheKey":
        return cls(tenant_id, metric, f"{start.isoformat()}..{end.isoformat()}")

    @classmethod
    def current(cls, tenant_id: int, metric: MetricKind) -> "CacheKey":
        return cls(tenant_id, metric, "current")

    def render(self, namespace: str = "stats") -> str:
        return f"{namespace}:{self.metric.scope.value}:{self.tenant_id}:{self.metric.value}:{self.period}"

    @staticmethod
    def prefix(
        namespace: str = "stats",
        scope: Optional[CacheScope] = None,
        tenant_id: Optional[int] = None,
        metric: Optional[MetricKind] = None,
    ) -> str:
        """Build a key prefix; parts are only meaningful left to right."""
        parts = [namespace]
        for part in (scope.value if scope else None, tenant_id, metric.value if metric else None):
            if part is None:
                break
            parts.append(str(part))
        return ":".join(parts) + ":"

    @classmethod
    def parse(cls, raw: str) -> "CacheKey":
        _namespace, _scope, tenant, metric, period = raw.split(":", 4)
        return cls(int(tenant), MetricKind(metric), period)


@dataclass(frozen=True)
class CacheEntry:
    """A cached value and when it was computed."""
    key: CacheKey
    value: Any
    computed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "computed_at": self.computed_at.isoformat()}


@dataclass
class DailyMetricSnapshot:
    """All per-day metrics of one tenant."""
    tenant_id: int
    date: date
    order_count: Optional[int] = None
    revenue: Optional[Decimal] = None
    new_user_count: Optional[int] = None
    room_status_counts: Optional[Dict[str, int]] = None

    @property
    def is_complete(self) -> bool:
        return None not in (self.order_count, self.revenue, self.new_user_count)


class TriggerKind(str, Enum):
    FIXED_INTERVAL = "fixed_interval"
    CALENDAR = "calendar"


class JobSeverity(str, Enum):
    """How loudly a job's failures are logged."""
    INFORMATIONAL = "informational"
    PREPROCESSING = "preprocessing"


JobOperation = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class ScheduledJobSpec:
    """One entry of the static job catalog."""
    name: str
    trigger_kind: TriggerKind
    operation: JobOperation
    severity: JobSeverity
    interval_ms: Optional[int] = None
    cron: Optional[str] = None
    description: str = ""

    def __post_init__(self):
        if self.trigger_kind is TriggerKind.FIXED_INTERVAL and not self.interval_ms:
            raise ValueError(f"Job {self.name} needs interval_ms")
        if self.trigger_kind is TriggerKind.CALENDAR and not self.cron:
            raise ValueError(f"Job {self.name} needs a cron expression")

    @property
    def schedule(self) -> str:
        if self.trigger_kind is TriggerKind.FIXED_INTERVAL:
            return f"every {self.interval_ms}ms"
        return self.cron


class JobStatus(str, Enum):
    OK = "ok"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class JobResult:
    """Outcome of one job execution."""
    job_name: str
    status: JobStatus
    started_at: datetime
    finished_at: datetime
    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is JobStatus.OK

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job": self.job_name,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "error_kind": self.error_kind,
            "error_message": self.error_message,
        }


@dataclass
class PreprocessReport:
    """What a preprocessing pass wrote and what failed."""
    tenant_id: int
    operation: str
    processed: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed
