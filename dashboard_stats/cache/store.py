"""Tenant-scoped cache store for precomputed statistics."""

import json
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import structlog

from ..models import CacheEntry, CacheKey, CacheScope, MetricKind

logger = structlog.get_logger(__name__)


def to_cache_value(value: Any) -> Any:
    """Normalize a computed value into JSON-compatible primitives.

    Decimals keep their exact string form, dates become ISO strings and
    mappings get string keys so equal inputs always serialize to the
    same bytes.
    """
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_cache_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_cache_value(v) for v in value]
    return value


def serialize(value: Any) -> str:
    return json.dumps(to_cache_value(value), sort_keys=True, separators=(",", ":"))


class CacheStore(ABC):
    """Key/value store keyed by (tenant, metric, period).

    Writes are unconditional overwrites; nothing is merged with a
    previous value, so concurrent writers of the same key are safe.
    """

    def __init__(self, namespace: str = "stats"):
        self.namespace = namespace
        self.logger = structlog.get_logger("cache-store").bind(namespace=namespace)

    async def put(self, key: CacheKey, value: Any, computed_at: Optional[datetime] = None) -> CacheEntry:
        """Overwrite the entry for ``key``."""
        computed_at = computed_at or datetime.now(timezone.utc)
        payload = {"value": to_cache_value(value), "computed_at": computed_at.isoformat()}
        await self._write(key.render(self.namespace), payload)
        self.logger.debug("Cache entry written", key=key.render(self.namespace))
        return CacheEntry(key=key, value=payload["value"], computed_at=computed_at)

    async def put_many(self, values: Dict[CacheKey, Any], computed_at: Optional[datetime] = None) -> List[CacheEntry]:
        """Overwrite several entries as one unit.

        Either every entry is written or, when the backend write fails,
        none of them is.
        """
        computed_at = computed_at or datetime.now(timezone.utc)
        stamp = computed_at.isoformat()
        payloads = {
            key.render(self.namespace): {"value": to_cache_value(value), "computed_at": stamp}
            for key, value in values.items()
        }
        await self._write_many(payloads)
        self.logger.debug("Cache entries written", count=len(payloads))
        return [
            CacheEntry(key=key, value=payloads[key.render(self.namespace)]["value"], computed_at=computed_at)
            for key in values
        ]

    async def get(self, key: CacheKey) -> Optional[CacheEntry]:
        """Point lookup."""
        payload = await self._read(key.render(self.namespace))
        if payload is None:
            return None
        return self._to_entry(key, payload)

    async def scan(
        self,
        scope: Optional[CacheScope] = None,
        tenant_id: Optional[int] = None,
        metric: Optional[MetricKind] = None,
    ) -> List[CacheEntry]:
        """Range lookup by key prefix, ordered by key."""
        prefix = CacheKey.prefix(self.namespace, scope, tenant_id, metric)
        entries = []
        for raw_key in sorted(await self._keys(prefix)):
            payload = await self._read(raw_key)
            if payload is not None:
                entries.append(self._to_entry(CacheKey.parse(raw_key), payload))
        return entries

    async def clear(self, scope: Optional[CacheScope] = None, tenant_id: Optional[int] = None) -> int:
        """Bulk delete every entry under the prefix; returns the number removed."""
        prefix = CacheKey.prefix(self.namespace, scope, tenant_id)
        keys = await self._keys(prefix)
        removed = await self._delete(keys) if keys else 0
        self.logger.info("Cache cleared", prefix=prefix, removed=removed)
        return removed

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        """Release backend resources."""

    @staticmethod
    def _to_entry(key: CacheKey, payload: Dict[str, Any]) -> CacheEntry:
        return CacheEntry(
            key=key,
            value=payload["value"],
            computed_at=datetime.fromisoformat(payload["computed_at"]),
        )

    @abstractmethod
    async def _write(self, raw_key: str, payload: Dict[str, Any]) -> None: ...

    @abstractmethod
    async def _write_many(self, payloads: Dict[str, Dict[str, Any]]) -> None: ...

    @abstractmethod
    async def _read(self, raw_key: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    async def _keys(self, prefix: str) -> List[str]: ...

    @abstractmethod
    async def _delete(self, raw_keys: Iterable[str]) -> int: ...


class InMemoryCacheStore(CacheStore):
    """Process-local store. Payloads are kept serialized so reads never alias writes."""

    def __init__(self, namespace: str = "stats"):
        super().__init__(namespace)
        self._data: Dict[str, str] = {}

    async def _write(self, raw_key: str, payload: Dict[str, Any]) -> None:
        self._data[raw_key] = serialize(payload)

    async def _write_many(self, payloads: Dict[str, Dict[str, Any]]) -> None:
        serialized = {raw_key: serialize(payload) for raw_key, payload in payloads.items()}
        self._data.update(serialized)

    async def _read(self, raw_key: str) -> Optional[Dict[str, Any]]:
        raw = self._data.get(raw_key)
        return json.loads(raw) if raw is not None else None

    async def _keys(self, prefix: str) -> List[str]:
        return [key for key in self._data if key.startswith(prefix)]

    async def _delete(self, raw_keys: Iterable[str]) -> int:
        removed = 0
        for key in list(raw_keys):
            if self._data.pop(key, None) is not None:
                removed += 1
        return removed

    def raw(self, key: CacheKey) -> Optional[str]:
        """Serialized payload for ``key`` (used to compare writes byte for byte)."""
        return self._data.get(key.render(self.namespace))

    def __len__(self) -> int:
        return len(self._data)
