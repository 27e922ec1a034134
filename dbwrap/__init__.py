"""Async convenience wrappers for PostgreSQL and Redis, with namespaced Redis views."""

from dbwrap.config import Settings, get_settings
from dbwrap.exceptions import DatabaseError, DbwrapError
from dbwrap.postgres import PostgresClient, get_postgres
from dbwrap.redis import (
    NamespacedRedis,
    RedisClient,
    SetOptions,
    Subscription,
    clear_namespace,
    create_namespaced,
    get_redis,
)

__version__ = "1.0.0"

__all__ = [
    "DatabaseError",
    "DbwrapError",
    "NamespacedRedis",
    "PostgresClient",
    "RedisClient",
    "SetOptions",
    "Settings",
    "Subscription",
    "clear_namespace",
    "create_namespaced",
    "get_postgres",
    "get_redis",
    "get_settings",
]
