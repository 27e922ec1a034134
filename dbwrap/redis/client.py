"""Async Redis client with connection pooling and convenience operations."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator, Iterable, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Optional

import redis.asyncio as redis
from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.client import Pipeline

from dbwrap.config import Settings, get_settings
from dbwrap.redis.pubsub import MessageCallback, Subscription

logger = logging.getLogger(__name__)

Value = str | int | float


@dataclass
class SetOptions:
    """Modifiers for SET."""

    ex: int | None = None  # expire in seconds
    px: int | None = None  # expire in milliseconds
    nx: bool = False  # only set if the key does not exist
    xx: bool = False  # only set if the key exists
    keepttl: bool = False  # retain the current time to live

    def as_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``redis.asyncio.Redis.set``."""
        return {
            "ex": self.ex,
            "px": self.px,
            "nx": self.nx,
            "xx": self.xx,
            "keepttl": self.keepttl,
        }


class RedisClient:
    """
    Production Redis client with connection pooling.

    Features:
    - Lazy initialization
    - Connection pooling
    - Automatic reconnection
    - Health checks
    - String, JSON, hash, list, set, counter and TTL helpers
    - Full cursor scans
    - Pub/Sub on dedicated connections
    """

    _instance: Optional["RedisClient"] = None
    _lock: asyncio.Lock = asyncio.Lock()

    def __init__(self, url: str | None = None, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._url = url or self._settings.redis_url
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = None
        self._initialized = False

    @classmethod
    def from_client(cls, client: Redis, settings: Settings | None = None) -> "RedisClient":
        """Wrap an already configured ``redis.asyncio.Redis``."""
        instance = cls(settings=settings)
        instance._client = client
        instance._initialized = True
        return instance

    @classmethod
    async def get_instance(cls) -> "RedisClient":
        """Thread-safe singleton access."""
        if cls._instance is None:
            async with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
                    await cls._instance.connect()
        return cls._instance

    async def connect(self) -> None:
        """Initialize connection pool."""
        if self._initialized:
            return

        try:
            self._pool = ConnectionPool.from_url(
                self._url,
                max_connections=self._settings.redis_max_connections,
                decode_responses=True,
                socket_timeout=self._settings.redis_socket_timeout,
                socket_connect_timeout=self._settings.redis_socket_timeout,
                retry_on_timeout=True,
            )
            self._client = Redis(connection_pool=self._pool)

            # Verify connection
            await self._client.ping()
            self._initialized = True
            logger.info("Redis connection established")

        except redis.ConnectionError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

    async def disconnect(self) -> None:
        """Close the client and its connection pool."""
        if not self._initialized:
            return
        if self._client:
            await self._client.aclose()
        if self._pool:
            await self._pool.disconnect()
        self._initialized = False
        logger.info("Redis connection closed")

    async def close(self) -> None:
        """Alias for disconnect()."""
        await self.disconnect()

    async def __aenter__(self) -> "RedisClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    @property
    def client(self) -> Redis:
        """Get Redis client instance."""
        if not self._client or not self._initialized:
            raise RuntimeError("Redis client not initialized. Call connect() first.")
        return self._client

    @asynccontextmanager
    async def pipeline(self, transaction: bool = True) -> AsyncGenerator[Pipeline, None]:
        """Context manager for Redis pipelines; executes on exit."""
        async with self.client.pipeline(transaction=transaction) as pipe:
            yield pipe
            await pipe.execute()

    async def health_check(self) -> bool:
        """Check if Redis is healthy."""
        try:
            await self.client.ping()
            return True
        except Exception as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    # ========================================================================
    # Generic commands
    # ========================================================================

    async def command(self, *args: Any) -> Any:
        """Execute a raw Redis command, e.g. ``command("OBJECT", "ENCODING", key)``."""
        return await self.client.execute_command(*args)

    async def transaction(self, commands: Iterable[str | Sequence[Any]]) -> list[Any]:
        """
        Run commands atomically inside MULTI/EXEC.

        Args:
            commands: Either whitespace separated strings ("SET a 1") or
                argument sequences (["SET", "a", "1"])

        Returns:
            One reply per command
        """
        async with self.client.pipeline(transaction=True) as pipe:
            for command in commands:
                args = command.split() if isinstance(command, str) else list(command)
                if args:
                    pipe.execute_command(*args)
            return await pipe.execute()

    async def info(self, section: str | None = None) -> dict[str, Any]:
        """Server information, optionally limited to one section."""
        if section:
            return await self.client.info(section)
        return await self.client.info()

    # ========================================================================
    # Core operations
    # ========================================================================

    async def get(self, key: str) -> str | None:
        return await self.client.get(key)

    async def set(self, key: str, value: Value, options: SetOptions | None = None) -> bool | None:
        """
        Set the string value of a key.

        Returns:
            True on success, None when NX/XX prevented the write
        """
        options = options or SetOptions()
        return await self.client.set(key, value, **options.as_kwargs())

    async def delete(self, *keys: str) -> int:
        """Delete keys; returns how many existed."""
        if not keys:
            return 0
        return await self.client.delete(*keys)

    async def exists(self, *keys: str) -> int:
        """
        Count how many of the given keys exist.

        A key named twice is counted twice, as Redis does.
        """
        if not keys:
            return 0
        return await self.client.exists(*keys)

    # ========================================================================
    # JSON operations
    # ========================================================================

    async def get_json(self, key: str) -> Any:
        """
        Get and parse a JSON value.

        Returns:
            Parsed value, or None if the key is missing or holds invalid JSON
        """
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring malformed JSON at {key}: {e}")
            return None

    async def set_json(self, key: str, value: Any, options: SetOptions | None = None) -> bool | None:
        """Serialize value as JSON and store it."""
        return await self.set(key, json.dumps(value), options)

    # ========================================================================
    # Multi operations
    # ========================================================================

    async def mget(self, *keys: str) -> list[str | None]:
        return await self.client.mget(list(keys))

    async def mset(self, mapping: Mapping[str, Value]) -> bool:
        return await self.client.mset(dict(mapping))

    # ========================================================================
    # Hash operations
    # ========================================================================

    async def hget(self, key: str, field: str) -> str | None:
        return await self.client.hget(key, field)

    async def hset(self, key: str, field: str, value: Value) -> int:
        """Set one hash field; returns 1 if the field is new, 0 if updated."""
        return await self.client.hset(key, field, value)

    async def hmget(self, key: str, *fields: str) -> list[str | None]:
        return await self.client.hmget(key, list(fields))

    async def hmset(self, key: str, mapping: Mapping[str, Value]) -> bool:
        await self.client.hset(key, mapping=dict(mapping))
        return True

    async def hgetall(self, key: str) -> dict[str, str]:
        return await self.client.hgetall(key)

    # ========================================================================
    # Counter operations
    # ========================================================================

    async def incr(self, key: str) -> int:
        return await self.client.incr(key)

    async def decr(self, key: str) -> int:
        return await self.client.decr(key)

    # ========================================================================
    # TTL operations
    # ========================================================================

    async def ttl(self, key: str) -> int:
        """Seconds to live; -1 if the key has no expiry, -2 if it does not exist."""
        return await self.client.ttl(key)

    async def set_ttl(self, key: str, seconds: int) -> bool:
        """Set a timeout; False if the key does not exist."""
        return bool(await self.client.expire(key, seconds))

    async def expire(self, key: str, seconds: int) -> int:
        """Set a timeout; 1 if set, 0 if the key does not exist."""
        return int(await self.client.expire(key, seconds))

    # ========================================================================
    # Pattern matching
    # ========================================================================

    async def scan_all(self, pattern: str = "*", count: int | None = None) -> list[str]:
        """
        Collect every key matching a glob pattern.

        Follows the SCAN cursor until Redis reports completion. SCAN may
        repeat a key across pages; each key is returned once, in the order
        first seen.

        Args:
            pattern: Glob-style MATCH pattern
            count: COUNT hint per page (defaults to settings.redis_scan_count)
        """
        count = count or self._settings.redis_scan_count
        cursor = 0
        found: dict[str, None] = {}

        while True:
            cursor, keys = await self.client.scan(cursor=cursor, match=pattern, count=count)
            found.update(dict.fromkeys(keys))
            if cursor == 0:
                break

        return list(found)

    # ========================================================================
    # Pub/Sub
    # ========================================================================

    async def publish(self, channel: str, message: str) -> int:
        """Publish a message; returns the number of receiving subscribers."""
        return await self.client.publish(channel, message)

    async def subscribe(self, channel: str, callback: MessageCallback) -> Subscription:
        """
        Subscribe to a channel on a dedicated connection.

        Waits up to settings.redis_socket_timeout for the server to confirm
        the subscription. The returned Subscription must be released by the
        caller.
        """
        return await Subscription.open(
            self.client, channel, callback, timeout=self._settings.redis_socket_timeout
        )

    # ========================================================================
    # List operations
    # ========================================================================

    async def lpush(self, key: str, *values: Value) -> int:
        return await self.client.lpush(key, *values)

    async def rpush(self, key: str, *values: Value) -> int:
        return await self.client.rpush(key, *values)

    async def lrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        """Elements from start to stop inclusive; negative indexes count from the end."""
        return await self.client.lrange(key, start, stop)

    async def lpop(self, key: str) -> str | None:
        return await self.client.lpop(key)

    async def rpop(self, key: str) -> str | None:
        return await self.client.rpop(key)

    # ========================================================================
    # Set operations
    # ========================================================================

    async def sadd(self, key: str, *members: Value) -> int:
        return await self.client.sadd(key, *members)

    async def srem(self, key: str, *members: Value) -> int:
        return await self.client.srem(key, *members)

    async def smembers(self, key: str) -> set[str]:
        return await self.client.smembers(key)


# Global instance accessor
async def get_redis() -> RedisClient:
    """Get Redis client instance."""
    return await RedisClient.get_instance()
