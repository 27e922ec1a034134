"""Test fixtures: in-memory Redis, shared RedisClient, settings.

Every test gets its own fake server, so no state leaks between tests.
"""

import fakeredis
import pytest
import pytest_asyncio

from dbwrap.config import Settings
from dbwrap.redis.client import RedisClient


@pytest.fixture
def settings() -> Settings:
    return Settings(
        redis_url="redis://localhost:6379/15",  # never contacted
        redis_scan_count=10,
        postgres_user="dbwrap",
        postgres_password="secret",
        postgres_database="dbwrap_test",
    )


@pytest_asyncio.fixture
async def fake_redis():
    """FakeAsyncRedis on a private server, decoding responses like the real pool."""
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def redis_client(fake_redis, settings) -> RedisClient:
    """The shared client every namespaced view is built on."""
    return RedisClient.from_client(fake_redis, settings=settings)

