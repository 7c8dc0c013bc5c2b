from .store import CacheStore, InMemoryCacheStore, serialize, to_cache_value
from .redis_store import RedisCacheStore

__all__ = [
    "CacheStore",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "serialize",
    "to_cache_value",
]
