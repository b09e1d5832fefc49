"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Realtime push-channel package.

Provides a ``PushChannel`` abstraction delivering row-level change events for
training jobs, with in-memory and Redis backends.

Quick start::

    from trainwatch.realtime import ChangeEvent, ChangeHandlers, InMemoryPushChannel

    channel = InMemoryPushChannel()
    sub = await channel.subscribe(
        "training-jobs-7",
        user_id="7",
        handlers=ChangeHandlers(on_update=print),
    )
    await channel.publish(
        "training-jobs-7",
        ChangeEvent(kind="update", new={"job_id": "abc", "user_id": 7}),
    )
    await sub.close()
"""

from .factory import create_push_channel, create_push_channel_from_env
from .memory import InMemoryPushChannel
from .types import ChangeEvent, ChangeHandlers, ChangeKind, PushChannel, Subscription

__all__ = [
    "ChangeEvent",
    "ChangeHandlers",
    "ChangeKind",
    "PushChannel",
    "Subscription",
    "InMemoryPushChannel",
    "create_push_channel",
    "create_push_channel_from_env",
]


# Lazy import for Redis channel to avoid hard dependency
def __getattr__(name: str):
    if name == "RedisPushChannel":
        from .redis_channel import RedisPushChannel

        return RedisPushChannel
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
