"""Storage clients."""

from .redis import RedisClient, RedisConfig

__all__ = ["RedisClient", "RedisConfig"]
