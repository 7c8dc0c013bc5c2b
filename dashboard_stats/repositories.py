"""
Data source interfaces consumed by the aggregator.

Concrete implementations live with the persistence layer; every call
takes the tenant id explicitly and may block (await) for as long as
the backing store needs. Implementations should raise
``TransientDataAccessError`` for recoverable failures.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from .models import UserRecord


class OrderRepository(ABC):
    """Order and revenue queries."""

    @abstractmethod
    async def count_orders_by_date(self, tenant_id: int, day: date) -> int: ...

    @abstractmethod
    async def calculate_revenue_by_date(self, tenant_id: int, day: date) -> Optional[Decimal]: ...

    @abstractmethod
    async def calculate_occupancy_history(self, tenant_id: int, start: date, end: date) -> List[float]: ...

    @abstractmethod
    async def calculate_revenue_trend(self, tenant_id: int, start: date, end: date) -> List[Decimal]: ...

    @abstractmethod
    async def count_orders_by_date_range(self, tenant_id: int, start: date, end: date) -> int: ...

    @abstractmethod
    async def calculate_revenue_by_date_range(self, tenant_id: int, start: date, end: date) -> Optional[Decimal]: ...

    @abstractmethod
    async def count_orders_by_status(self, tenant_id: int, statuses: Sequence[str]) -> int: ...

    @abstractmethod
    async def count_check_ins(self, tenant_id: int, day: date) -> int: ...

    @abstractmethod
    async def count_check_outs(self, tenant_id: int, day: date) -> int: ...

    @abstractmethod
    async def find_recent_orders(self, tenant_id: int, limit: int) -> List[Dict[str, Any]]: ...


class RoomRepository(ABC):
    """Room inventory queries."""

    @abstractmethod
    async def get_room_status_statistics(self, tenant_id: int) -> Dict[str, int]: ...


class UserRepository(ABC):
    """Guest account queries."""

    @abstractmethod
    async def count_users_by_date(self, tenant_id: int, day: date) -> int: ...

    @abstractmethod
    async def calculate_user_activity_trend(self, tenant_id: int, start: date, end: date) -> List[int]: ...

    @abstractmethod
    async def count_active_users_since(self, tenant_id: int, since: date) -> int: ...


class ReviewRepository(ABC):
    """Review queries."""

    @abstractmethod
    async def calculate_rating_distribution(self, tenant_id: int, start: datetime, end: datetime) -> List[int]:
        """Counts per rating value; index 0 holds rating 1."""

    @abstractmethod
    async def average_approved_rating(self, tenant_id: int) -> Optional[float]: ...

    @abstractmethod
    async def count_reviews_by_status(self, tenant_id: int, status: str) -> int: ...


class TenantDirectory(ABC):
    """Lists the tenants scheduled jobs iterate over."""

    @abstractmethod
    async def list_tenant_ids(self) -> List[int]: ...


class UserDirectory(ABC):
    """Secondary lookup for principals that carry only a username."""

    @abstractmethod
    async def find_by_username(self, username: str) -> Optional[UserRecord]: ...


@dataclass
class Repositories:
    """Bundle of the data sources the aggregation layer reads."""
    orders: OrderRepository
    rooms: RoomRepository
    users: UserRepository
    reviews: ReviewRepository
    tenants: TenantDirectory
    directory: Optional[UserDirectory] = None
