"""Redis client module with namespaced views."""

from dbwrap.redis.client import RedisClient, SetOptions, get_redis
from dbwrap.redis.namespace import NamespacedRedis, clear_namespace, create_namespaced
from dbwrap.redis.pubsub import Subscription

__all__ = [
    "NamespacedRedis",
    "RedisClient",
    "SetOptions",
    "Subscription",
    "clear_namespace",
    "create_namespaced",
    "get_redis",
]
