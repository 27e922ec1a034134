"""
Namespaced views over a shared Redis client.

Several applications can share one Redis connection by each working
through its own namespace. Every key and channel name is prefixed on the
way in, and keys returned by scans are stripped on the way out:

    redis = RedisClient()
    await redis.connect()

    auth = create_namespaced(redis, "auth")
    shop = create_namespaced(redis, "shop")

    await auth.set("session:user123", "auth-data")  # stored as auth:session:user123
    await shop.set("session:user123", "shop-data")  # stored as shop:session:user123

    await auth.scan_all("session:*")  # ["session:user123"]

Closing a namespaced view leaves the shared client open; the owner of the
client closes it once, after every view is done with it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from dbwrap.redis.client import RedisClient, SetOptions, Value
from dbwrap.redis.keys import (
    add_prefix,
    add_prefixes,
    normalize_namespace,
    prefix_mapping,
    remove_prefix,
)
from dbwrap.redis.pubsub import MessageCallback, Subscription

logger = logging.getLogger(__name__)


class NamespacedRedis:
    """
    RedisClient operations scoped to one namespace.

    Only key names and channel names are rewritten. Hash field names,
    values, options and results pass through unchanged, except scan
    results, which come back as logical keys. Errors from the shared
    client propagate as-is.
    """

    def __init__(self, redis: RedisClient, namespace: str) -> None:
        self._redis = redis
        self.namespace = namespace
        self.prefix = normalize_namespace(namespace)

    def __repr__(self) -> str:
        return f"NamespacedRedis(prefix={self.prefix!r})"

    def _key(self, key: str) -> str:
        return add_prefix(self.prefix, key)

    # ========================================================================
    # Core operations
    # ========================================================================

    async def get(self, key: str) -> str | None:
        return await self._redis.get(self._key(key))

    async def set(self, key: str, value: Value, options: SetOptions | None = None) -> bool | None:
        return await self._redis.set(self._key(key), value, options)

    async def delete(self, *keys: str) -> int:
        return await self._redis.delete(*add_prefixes(self.prefix, keys))

    async def exists(self, *keys: str) -> int:
        """Count of the given keys that exist in this namespace."""
        return await self._redis.exists(*add_prefixes(self.prefix, keys))

    # ========================================================================
    # JSON operations
    # ========================================================================

    async def get_json(self, key: str) -> Any:
        return await self._redis.get_json(self._key(key))

    async def set_json(self, key: str, value: Any, options: SetOptions | None = None) -> bool | None:
        return await self._redis.set_json(self._key(key), value, options)

    # ========================================================================
    # Multi operations
    # ========================================================================

    async def mget(self, *keys: str) -> list[str | None]:
        return await self._redis.mget(*add_prefixes(self.prefix, keys))

    async def mset(self, mapping: Mapping[str, Value]) -> bool:
        return await self._redis.mset(prefix_mapping(self.prefix, mapping))

    # ========================================================================
    # Hash operations (field names are not namespaced)
    # ========================================================================

    async def hget(self, key: str, field: str) -> str | None:
        return await self._redis.hget(self._key(key), field)

    async def hset(self, key: str, field: str, value: Value) -> int:
        return await self._redis.hset(self._key(key), field, value)

    async def hmget(self, key: str, *fields: str) -> list[str | None]:
        return await self._redis.hmget(self._key(key), *fields)

    async def hmset(self, key: str, mapping: Mapping[str, Value]) -> bool:
        return await self._redis.hmset(self._key(key), mapping)

    async def hgetall(self, key: str) -> dict[str, str]:
        return await self._redis.hgetall(self._key(key))

    # ========================================================================
    # Counter operations
    # ========================================================================

    async def incr(self, key: str) -> int:
        return await self._redis.incr(self._key(key))

    async def decr(self, key: str) -> int:
        return await self._redis.decr(self._key(key))

    # ========================================================================
    # TTL operations
    # ========================================================================

    async def ttl(self, key: str) -> int:
        return await self._redis.ttl(self._key(key))

    async def set_ttl(self, key: str, seconds: int) -> bool:
        return await self._redis.set_ttl(self._key(key), seconds)

    async def expire(self, key: str, seconds: int) -> int:
        return await self._redis.expire(self._key(key), seconds)

    # ========================================================================
    # Pattern matching (within namespace)
    # ========================================================================

    async def scan_all(self, pattern: str = "*", count: int | None = None) -> list[str]:
        """
        Logical keys in this namespace matching pattern.

        The prefix is prepended to the pattern itself, so keys of other
        namespaces can never match.
        """
        keys = await self._redis.scan_all(self._key(pattern), count)
        return [remove_prefix(self.prefix, key) for key in keys]

    # ========================================================================
    # Pub/Sub (namespaced channels)
    # ========================================================================

    async def publish(self, channel: str, message: str) -> int:
        return await self._redis.publish(self._key(channel), message)

    async def subscribe(self, channel: str, callback: MessageCallback) -> Subscription:
        """
        Subscribe to a channel within this namespace.

        The callback receives the physical channel name. The returned
        Subscription is independent of this view and must be released by
        the caller.
        """
        return await self._redis.subscribe(self._key(channel), callback)

    # ========================================================================
    # List operations
    # ========================================================================

    async def lpush(self, key: str, *values: Value) -> int:
        return await self._redis.lpush(self._key(key), *values)

    async def rpush(self, key: str, *values: Value) -> int:
        return await self._redis.rpush(self._key(key), *values)

    async def lrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        return await self._redis.lrange(self._key(key), start, stop)

    async def lpop(self, key: str) -> str | None:
        return await self._redis.lpop(self._key(key))

    async def rpop(self, key: str) -> str | None:
        return await self._redis.rpop(self._key(key))

    # ========================================================================
    # Set operations
    # ========================================================================

    async def sadd(self, key: str, *members: Value) -> int:
        return await self._redis.sadd(self._key(key), *members)

    async def srem(self, key: str, *members: Value) -> int:
        return await self._redis.srem(self._key(key), *members)

    async def smembers(self, key: str) -> set[str]:
        return await self._redis.smembers(self._key(key))

    # ========================================================================
    # Cleanup
    # ========================================================================

    async def close(self) -> None:
        """Does nothing: the shared client belongs to its creator."""

    async def __aenter__(self) -> "NamespacedRedis":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def create_namespaced(redis: RedisClient, namespace: str) -> NamespacedRedis:
    """
    Create a namespaced view over a shared client.

    Args:
        redis: Shared client; must outlive the view
        namespace: Namespace name, e.g. "auth" or "myapp:production"

    Returns:
        NamespacedRedis whose keys live under "<namespace>:"
    """
    return NamespacedRedis(redis, namespace)


async def clear_namespace(redis: RedisClient, namespace: str) -> int:
    """
    Delete every key under a namespace.

    Keys that expire or are deleted between the scan and the delete are
    simply not counted.

    Args:
        redis: Shared client
        namespace: Namespace to clear

    Returns:
        Number of keys actually deleted
    """
    prefix = normalize_namespace(namespace)
    keys = await redis.scan_all(f"{prefix}*")

    if not keys:
        return 0

    deleted = await redis.delete(*keys)
    logger.info(f"Cleared namespace {prefix}: {deleted} keys deleted")
    return deleted
