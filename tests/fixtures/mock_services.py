"""In-memory repositories for testing."""

from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from dashboard_stats.aggregation.aggregator import iter_dates
from dashboard_stats.errors import TransientDataAccessError
from dashboard_stats.models import Role, UserRecord
from dashboard_stats.repositories import (
    OrderRepository,
    Repositories,
    ReviewRepository,
    RoomRepository,
    TenantDirectory,
    UserDirectory,
    UserRepository,
)


class FailureInjector:
    """Records calls and raises configured errors for selected methods."""

    def __init__(self):
        self.calls: List[Tuple[str, tuple]] = []
        self._rules: Dict[str, Tuple[Exception, Optional[Callable[..., bool]]]] = {}

    def fail(self, method: str, exc: Optional[Exception] = None, when: Optional[Callable[..., bool]] = None):
        """Make ``method`` raise ``exc``; ``when`` receives the call arguments."""
        self._rules[method] = (exc or TransientDataAccessError(f"{method} unavailable", source=method), when)

    def recover(self, method: Optional[str] = None):
        if method is None:
            self._rules.clear()
        else:
            self._rules.pop(method, None)

    def calls_to(self, method: str) -> List[tuple]:
        return [args for name, args in self.calls if name == method]

    def _check(self, method: str, *args):
        self.calls.append((method, args))
        rule = self._rules.get(method)
        if rule is None:
            return
        exc, when = rule
        if when is None or when(*args):
            raise exc


class StubOrderRepository(FailureInjector, OrderRepository):
    def __init__(self):
        super().__init__()
        self.order_counts: Dict[Tuple[int, date], int] = {}
        self.revenue: Dict[Tuple[int, date], Decimal] = {}
        self.occupancy: Dict[Tuple[int, date], float] = {}
        self.statuses: Dict[int, Dict[str, int]] = defaultdict(dict)
        self.check_ins: Dict[Tuple[int, date], int] = {}
        self.check_outs: Dict[Tuple[int, date], int] = {}
        self.recent: Dict[int, List[Dict[str, Any]]] = defaultdict(list)

    async def count_orders_by_date(self, tenant_id: int, day: date) -> int:
        self._check("count_orders_by_date", tenant_id, day)
        return self.order_counts.get((tenant_id, day), 0)

    async def calculate_revenue_by_date(self, tenant_id: int, day: date) -> Optional[Decimal]:
        self._check("calculate_revenue_by_date", tenant_id, day)
        return self.revenue.get((tenant_id, day))

    async def calculate_occupancy_history(self, tenant_id: int, start: date, end: date) -> List[float]:
        self._check("calculate_occupancy_history", tenant_id, start, end)
        return [self.occupancy.get((tenant_id, day), 0.0) for day in iter_dates(start, end)]

    async def calculate_revenue_trend(self, tenant_id: int, start: date, end: date) -> List[Decimal]:
        self._check("calculate_revenue_trend", tenant_id, start, end)
        return [self.revenue.get((tenant_id, day), Decimal("0")) for day in iter_dates(start, end)]

    async def count_orders_by_date_range(self, tenant_id: int, start: date, end: date) -> int:
        self._check("count_orders_by_date_range", tenant_id, start, end)
        return sum(self.order_counts.get((tenant_id, day), 0) for day in iter_dates(start, end))

    async def calculate_revenue_by_date_range(self, tenant_id: int, start: date, end: date) -> Optional[Decimal]:
        self._check("calculate_revenue_by_date_range", tenant_id, start, end)
        values = [self.revenue[(tenant_id, day)] for day in iter_dates(start, end) if (tenant_id, day) in self.revenue]
        return sum(values, Decimal("0")) if values else None

    async def count_orders_by_status(self, tenant_id: int, statuses: Sequence[str]) -> int:
        self._check("count_orders_by_status", tenant_id, tuple(statuses))
        return sum(self.statuses[tenant_id].get(status, 0) for status in statuses)

    async def count_check_ins(self, tenant_id: int, day: date) -> int:
        self._check("count_check_ins", tenant_id, day)
        return self.check_ins.get((tenant_id, day), 0)

    async def count_check_outs(self, tenant_id: int, day: date) -> int:
        self._check("count_check_outs", tenant_id, day)
        return self.check_outs.get((tenant_id, day), 0)

    async def find_recent_orders(self, tenant_id: int, limit: int) -> List[Dict[str, Any]]:
        self._check("find_recent_orders", tenant_id, limit)
        return self.recent[tenant_id][:limit]


class StubRoomRepository(FailureInjector, RoomRepository):
    def __init__(self):
        super().__init__()
        self.statuses: Dict[int, Dict[str, int]] = defaultdict(dict)

    async def get_room_status_statistics(self, tenant_id: int) -> Dict[str, int]:
        self._check("get_room_status_statistics", tenant_id)
        return dict(self.statuses[tenant_id])


class StubUserRepository(FailureInjector, UserRepository):
    def __init__(self):
        super().__init__()
        self.new_users: Dict[Tuple[int, date], int] = {}
        self.activity: Dict[Tuple[int, date], int] = {}
        self.active_users: Dict[int, int] = {}

    async def count_users_by_date(self, tenant_id: int, day: date) -> int:
        self._check("count_users_by_date", tenant_id, day)
        return self.new_users.get((tenant_id, day), 0)

    async def calculate_user_activity_trend(self, tenant_id: int, start: date, end: date) -> List[int]:
        self._check("calculate_user_activity_trend", tenant_id, start, end)
        return [self.activity.get((tenant_id, day), 0) for day in iter_dates(start, end)]

    async def count_active_users_since(self, tenant_id: int, since: date) -> int:
        self._check("count_active_users_since", tenant_id, since)
        return self.active_users.get(tenant_id, 0)


class StubReviewRepository(FailureInjector, ReviewRepository):
    def __init__(self):
        super().__init__()
        self.ratings: Dict[int, List[int]] = defaultdict(lambda: [0, 0, 0, 0, 0])
        self.average: Dict[int, float] = {}
        self.by_status: Dict[Tuple[int, str], int] = {}

    async def calculate_rating_distribution(self, tenant_id: int, start: datetime, end: datetime) -> List[int]:
        self._check("calculate_rating_distribution", tenant_id, start, end)
        return list(self.ratings[tenant_id])

    async def average_approved_rating(self, tenant_id: int) -> Optional[float]:
        self._check("average_approved_rating", tenant_id)
        return self.average.get(tenant_id)

    async def count_reviews_by_status(self, tenant_id: int, status: str) -> int:
        self._check("count_reviews_by_status", tenant_id, status)
        return self.by_status.get((tenant_id, status), 0)


class StubTenantDirectory(FailureInjector, TenantDirectory):
    def __init__(self, tenant_ids: Sequence[int] = (1, 2)):
        super().__init__()
        self.tenant_ids = list(tenant_ids)

    async def list_tenant_ids(self) -> List[int]:
        self._check("list_tenant_ids")
        return list(self.tenant_ids)


class StubUserDirectory(FailureInjector, UserDirectory):
    def __init__(self, users: Sequence[UserRecord] = ()):
        super().__init__()
        self.users = {user.username: user for user in users}

    async def find_by_username(self, username: str) -> Optional[UserRecord]:
        self._check("find_by_username", username)
        return self.users.get(username)


MANAGER = UserRecord(user_id=10, username="manager", role=Role.HOTEL_MANAGER, hotel_id=1)
RECEPTIONIST = UserRecord(user_id=11, username="front-desk", role=Role.RECEPTIONIST, hotel_id=2)
ADMIN = UserRecord(user_id=1, username="admin", role=Role.ADMIN)
ORPHAN = UserRecord(user_id=12, username="orphan", role=Role.CUSTOMER)


def build_repositories(today: date, tenant_ids: Sequence[int] = (1, 2)) -> Repositories:
    """Repositories seeded with a small, deterministic data set per tenant."""
    orders = StubOrderRepository()
    rooms = StubRoomRepository()
    users = StubUserRepository()
    reviews = StubReviewRepository()

    for tenant_id in tenant_ids:
        orders.order_counts[(tenant_id, today)] = 4 * tenant_id
        orders.revenue[(tenant_id, today)] = Decimal("250.50") * tenant_id
        orders.statuses[tenant_id] = {"PENDING": 3, "CONFIRMED": 5, "COMPLETED": 7, "CANCELLED": 1}
        orders.check_ins[(tenant_id, today)] = 2
        orders.check_outs[(tenant_id, today)] = 1
        orders.recent[tenant_id] = [{"order_id": n, "tenant_id": tenant_id} for n in range(15)]
        rooms.statuses[tenant_id] = {"AVAILABLE": 12, "OCCUPIED": 6, "MAINTENANCE": 1, "CLEANING": 1}
        users.new_users[(tenant_id, today)] = tenant_id
        users.active_users[tenant_id] = 9
        reviews.ratings[tenant_id] = [1, 0, 2, 5, 8]
        reviews.average[tenant_id] = 4.236
        reviews.by_status[(tenant_id, "PENDING")] = 3

    return Repositories(
        orders=orders,
        rooms=rooms,
        users=users,
        reviews=reviews,
        tenants=StubTenantDirectory(tenant_ids),
        directory=StubUserDirectory([MANAGER, RECEPTIONIST, ADMIN, ORPHAN]),
    )


def repositories_factory() -> Repositories:
    return build_repositories(date.today())
