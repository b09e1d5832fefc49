"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Redis pub/sub push channel.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from ..errors import SubscriptionError
from .types import ChangeEvent, ChangeHandlers, PushChannel, Subscription

logger = logging.getLogger("trainwatch.realtime.redis")


class RedisPushChannel(PushChannel):
    """
    Push channel backed by Redis pub/sub.

    The backend publishes JSON change messages on
    ``{prefix}:{channel_name}``; each subscription owns one ``PubSub``
    connection and a listener task.

    Requires ``redis.asyncio`` (``pip install redis``).

    Args:
        redis: An ``redis.asyncio.Redis`` client instance.
        prefix: Key prefix for namespacing.
    """

    def __init__(self, redis: Any, *, prefix: str = "trainwatch:realtime") -> None:
        self._redis = redis
        self._prefix = prefix
        self._listeners: set[asyncio.Task[None]] = set()

    def _channel_key(self, channel_name: str) -> str:
        return f"{self._prefix}:{channel_name}"

    def _deserialize(self, raw: str | bytes) -> ChangeEvent | None:
        try:
            text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
            return ChangeEvent.from_message(json.loads(text))
        except (ValueError, TypeError, AttributeError):
            # UnicodeDecodeError is a ValueError.
            logger.warning("Dropping malformed change message: %r", raw[:200])
            return None

    async def subscribe(
        self,
        channel_name: str,
        *,
        user_id: str,
        handlers: ChangeHandlers,
    ) -> Subscription:
        key = self._channel_key(channel_name)
        pubsub = self._redis.pubsub()
        try:
            await pubsub.subscribe(key)
        except Exception as exc:  # noqa: BLE001
            await pubsub.aclose()
            raise SubscriptionError(
                f"Could not subscribe to Redis channel '{key}': {exc}"
            ) from exc

        listener: asyncio.Task[None] | None = None

        async def _cleanup() -> None:
            if listener is not None and not listener.done():
                listener.cancel()
                await asyncio.gather(listener, return_exceptions=True)
            try:
                await pubsub.unsubscribe(key)
            finally:
                await pubsub.aclose()
            logger.info("Unsubscribed from %s", key)

        subscription = Subscription(
            channel_name, user_id=user_id, handlers=handlers, cleanup=_cleanup
        )
        listener = asyncio.create_task(self._listen(pubsub, subscription))
        self._listeners.add(listener)
        listener.add_done_callback(self._listeners.discard)
        logger.info("Subscribed to %s (user_id=%s)", key, user_id)
        return subscription

    async def _listen(self, pubsub: Any, subscription: Subscription) -> None:
        try:
            async for message in pubsub.listen():
                if subscription.closed:
                    return
                if message.get("type") != "message":
                    continue
                event = self._deserialize(message.get("data") or b"")
                if event is not None:
                    subscription.deliver(event)
        except asyncio.CancelledError:
            raise
        except Exception:  # noqa: BLE001
            logger.warning(
                "Redis channel %s disconnected",
                subscription.channel_name,
                exc_info=True,
            )
        subscription.notify_disconnected()

    async def publish(self, channel_name: str, event: ChangeEvent) -> int:
        """Publish ``event``; returns the number of receiving clients."""
        payload = json.dumps(event.to_message(), default=str)
        return await self._redis.publish(self._channel_key(channel_name), payload)

    async def aclose(self) -> None:
        """Cancel listener tasks that are still running."""
        for task in list(self._listeners):
            task.cancel()
        if self._listeners:
            await asyncio.gather(*self._listeners, return_exceptions=True)
