"""Pub/Sub subscriptions on dedicated connections."""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from redis.asyncio import Redis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str, str], Awaitable[Any] | Any]

# Seconds a single read waits before the reader re-checks for release
READ_INTERVAL = 1.0
# Seconds to wait for the reader after each cancel request
STOP_TIMEOUT = 2.0
STOP_ATTEMPTS = 3


class Subscription:
    """
    A live subscription to a single channel.

    Each subscription owns its own pub/sub connection and a reader task
    that feeds incoming messages to the callback. A connection waiting for
    pushed messages cannot serve ordinary commands, so nothing else shares
    it. The caller must release it with ``await sub.unsubscribe()``,
    ``await sub()`` or by leaving ``async with sub:``; otherwise the
    connection stays checked out.
    """

    def __init__(self, pubsub: PubSub, channel: str, callback: MessageCallback) -> None:
        self._pubsub = pubsub
        self._callback = callback
        self._task: asyncio.Task | None = None
        self._closed = False
        self.channel = channel

    @classmethod
    async def open(
        cls,
        redis: Redis,
        channel: str,
        callback: MessageCallback,
        timeout: float = 5.0,
    ) -> "Subscription":
        """
        Subscribe to a channel on a fresh connection.

        Returns only after the server has confirmed the subscription, so a
        message published once this returns is delivered.

        Args:
            redis: Client whose pool provides the dedicated connection
            channel: Channel name exactly as it exists in Redis
            callback: Called as ``callback(message, channel)``; may be async
            timeout: Seconds to wait for the subscribe confirmation

        Returns:
            Running Subscription

        Raises:
            redis.exceptions.TimeoutError: No confirmation within timeout
        """
        pubsub = redis.pubsub()
        subscription = cls(pubsub, channel, callback)

        try:
            await pubsub.subscribe(channel)
            await subscription._confirm(timeout)
        except BaseException:
            await pubsub.aclose()
            raise

        subscription._start_reader()
        logger.debug(f"Subscribed to {channel}")
        return subscription

    @property
    def active(self) -> bool:
        """True until the subscription is released."""
        return not self._closed

    async def _confirm(self, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise RedisTimeoutError(f"No subscribe confirmation for {self.channel}")
            message = await self._pubsub.get_message(timeout=remaining)
            if message is not None and message["type"] == "subscribe":
                return

    def _start_reader(self) -> None:
        self._task = asyncio.create_task(self._read(), name=f"dbwrap-pubsub:{self.channel}")

    async def _read(self) -> None:
        # Checked on every pass so a read that absorbs a cancel still ends the loop
        while not self._closed:
            message = await self._pubsub.get_message(
                ignore_subscribe_messages=True, timeout=READ_INTERVAL
            )
            if message is not None and message["type"] == "message":
                await self._dispatch(message)

    async def _dispatch(self, message: dict[str, Any]) -> None:
        try:
            result = self._callback(message["data"], message["channel"])
            if inspect.isawaitable(result):
                await result
        except Exception:
            # Keep the reader alive for the next message
            logger.exception(f"Subscriber callback failed on {self.channel}")

    async def _stop_reader(self) -> None:
        task = self._task
        if task is None:
            return

        for _ in range(STOP_ATTEMPTS):
            if task.done():
                break
            task.cancel()
            await asyncio.wait({task}, timeout=STOP_TIMEOUT)
        else:
            if not task.done():
                logger.warning(f"Pub/Sub reader for {self.channel} did not stop")
                return

        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"Pub/Sub reader for {self.channel} had failed: {task.exception()}")

    async def unsubscribe(self) -> None:
        """Stop delivery and close the dedicated connection. Idempotent."""
        if self._closed:
            return
        self._closed = True

        try:
            try:
                await self._pubsub.unsubscribe(self.channel)
            except RedisError as e:
                logger.warning(f"Unsubscribe from {self.channel} failed: {e}")
            await self._stop_reader()
        finally:
            if self._task is not None and not self._task.done():
                self._task.cancel()
            await self._pubsub.aclose()

        logger.debug(f"Unsubscribed from {self.channel}")

    async def __call__(self) -> None:
        await self.unsubscribe()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.unsubscribe()
