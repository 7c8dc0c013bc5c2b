"""Redis-backed cache store shared by every process of the service."""

from typing import Any, Dict, Iterable, List, Optional

from shared.storage.redis import RedisClient

from .store import CacheStore, to_cache_value


class RedisCacheStore(CacheStore):
    """Stores each entry as one JSON string under its rendered key."""

    def __init__(self, redis_client: RedisClient, namespace: str = "stats", ttl_seconds: Optional[int] = None):
        super().__init__(namespace)
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    async def _write(self, raw_key: str, payload: Dict[str, Any]) -> None:
        await self.redis.set_json(raw_key, to_cache_value(payload), self.ttl_seconds)

    async def _write_many(self, payloads: Dict[str, Dict[str, Any]]) -> None:
        await self.redis.set_many_json(
            {raw_key: to_cache_value(payload) for raw_key, payload in payloads.items()},
            self.ttl_seconds,
        )

    async def _read(self, raw_key: str) -> Optional[Dict[str, Any]]:
        return await self.redis.get_json(raw_key)

    async def _keys(self, prefix: str) -> List[str]:
        return await self.redis.scan_keys(f"{prefix}*")

    async def _delete(self, raw_keys: Iterable[str]) -> int:
        return await self.redis.delete(*raw_keys)

    async def ping(self) -> bool:
        return await self.redis.health_check()

    async def close(self) -> None:
        await self.redis.close()
