"""JSON document access on top of ``redis.asyncio``.

The connection pool is created on first use. Command failures are
logged with the key involved and re-raised unchanged.
"""

import json
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import redis.asyncio as redis
import structlog


logger = structlog.get_logger(__name__)


@dataclass
class RedisConfig:
    url: str
    max_connections: int = 20
    timeout: int = 30
    retry_on_timeout: bool = True


class RedisClient:
    """Pooled client storing JSON documents under string keys."""

    def __init__(self, config: RedisConfig | str):
        self.config = RedisConfig(url=config) if isinstance(config, str) else config
        self.client: Optional[redis.Redis] = None

    @property
    def is_connected(self) -> bool:
        return self.client is not None

    async def connect(self) -> None:
        if self.client is not None:
            return
        client = redis.from_url(
            self.config.url,
            decode_responses=True,
            max_connections=self.config.max_connections,
            socket_timeout=self.config.timeout,
            retry_on_timeout=self.config.retry_on_timeout,
        )
        await client.ping()
        self.client = client
        logger.info("Connected to Redis", max_connections=self.config.max_connections)

    async def disconnect(self) -> None:
        if self.client is None:
            return
        client, self.client = self.client, None
        await client.aclose()
        logger.info("Disconnected from Redis")

    close = disconnect

    async def _ensure_connected(self) -> redis.Redis:
        if self.client is None:
            await self.connect()
        return self.client

    @contextmanager
    def _command(self, name: str, **fields) -> Iterator[None]:
        try:
            yield
        except Exception as exc:
            logger.error("Redis command failed", command=name, error=str(exc), **fields)
            raise

    async def get_json(self, key: str) -> Optional[Any]:
        client = await self._ensure_connected()
        with self._command("GET", key=key):
            raw = await client.get(key)
        return None if raw is None else json.loads(raw)

    async def set_json(self, key: str, value: Dict[str, Any], ttl: Optional[int] = None) -> None:
        """Store ``value``; ``ttl`` in seconds, ``None`` keeps it forever.

        Keys are sorted so equal documents serialize to equal text.
        """
        client = await self._ensure_connected()
        with self._command("SET", key=key):
            await client.set(key, json.dumps(value, sort_keys=True), ex=ttl)

    async def set_many_json(self, values: Dict[str, Dict[str, Any]], ttl: Optional[int] = None) -> None:
        """Store several documents in one MULTI/EXEC transaction."""
        if not values:
            return
        client = await self._ensure_connected()
        with self._command("MULTI", keys=len(values)):
            async with client.pipeline(transaction=True) as pipe:
                for key, value in values.items():
                    pipe.set(key, json.dumps(value, sort_keys=True), ex=ttl)
                await pipe.execute()

    async def delete(self, *keys: str) -> int:
        """Number of keys that existed and were removed."""
        if not keys:
            return 0
        client = await self._ensure_connected()
        with self._command("DEL", keys=len(keys)):
            return await client.delete(*keys)

    async def scan_keys(self, pattern: str) -> List[str]:
        # SCAN walks the keyspace in batches instead of blocking like KEYS
        client = await self._ensure_connected()
        with self._command("SCAN", pattern=pattern):
            return [key async for key in client.scan_iter(match=pattern)]

    async def health_check(self) -> bool:
        try:
            client = await self._ensure_connected()
            return await client.ping() is True
        except Exception as exc:
            logger.warning("Redis health check failed", error=str(exc))
            return False

    async def __aenter__(self) -> "RedisClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()
