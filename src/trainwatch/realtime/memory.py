"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

In-memory push channel for single-process use and testing.
"""

from __future__ import annotations

from ..errors import SubscriptionError
from .types import ChangeEvent, ChangeHandlers, PushChannel, Subscription


class InMemoryPushChannel(PushChannel):
    """
    In-process push channel; ``publish`` delivers synchronously.

    Set ``available = False`` to simulate a channel that cannot be opened.
    Events are not persisted: nothing published before ``subscribe`` is seen.
    """

    def __init__(self, *, available: bool = True) -> None:
        self.available = available
        self._subscriptions: dict[str, list[Subscription]] = {}

    async def subscribe(
        self,
        channel_name: str,
        *,
        user_id: str,
        handlers: ChangeHandlers,
    ) -> Subscription:
        if not self.available:
            raise SubscriptionError(f"Channel '{channel_name}' is unavailable")

        def _remove() -> None:
            subs = self._subscriptions.get(channel_name, [])
            if subscription in subs:
                subs.remove(subscription)
            if not subs:
                self._subscriptions.pop(channel_name, None)

        subscription = Subscription(
            channel_name, user_id=user_id, handlers=handlers, cleanup=_remove
        )
        self._subscriptions.setdefault(channel_name, []).append(subscription)
        return subscription

    async def publish(self, channel_name: str, event: ChangeEvent) -> int:
        """Deliver ``event`` to every open subscription; return delivery count."""
        delivered = 0
        for subscription in list(self._subscriptions.get(channel_name, [])):
            if subscription.deliver(event):
                delivered += 1
        return delivered

    async def disconnect(self, channel_name: str) -> None:
        """Simulate a dropped connection for every subscriber of a channel."""
        for subscription in list(self._subscriptions.pop(channel_name, [])):
            subscription.notify_disconnected()

    def subscriber_count(self, channel_name: str) -> int:
        return len(self._subscriptions.get(channel_name, []))

    @property
    def channels(self) -> list[str]:
        """Channel names with at least one open subscription."""
        return list(self._subscriptions.keys())
