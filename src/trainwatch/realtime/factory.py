"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Factory helpers for selecting push-channel backends from settings.
"""

from __future__ import annotations

import logging
from typing import Any

from ..settings import ClientSettings
from .memory import InMemoryPushChannel
from .types import PushChannel

logger = logging.getLogger("trainwatch.realtime")


def create_push_channel(
    settings: ClientSettings, *, redis_client: Any | None = None
) -> PushChannel | None:
    """
    Create a push channel from ``settings.realtime_backend``.

    Backends:
    - `none` (default): returns ``None``; consumers fall back to polling
    - `memory`
    - `redis`

    Redis resolution:
    - Uses the provided `redis_client` when supplied.
    - Otherwise builds a client from `settings.realtime_redis_url`. Without a
      URL, realtime is reported as unconfigured and ``None`` is returned.
    """
    backend = settings.realtime_backend.strip().lower()

    if backend in ("", "none", "off", "disabled"):
        return None

    if backend in ("mem", "memory", "inmemory", "in_memory"):
        return InMemoryPushChannel()

    if backend in ("redis",):
        from .redis_channel import RedisPushChannel

        client = redis_client
        if client is None:
            if not settings.realtime_redis_url:
                logger.warning(
                    "Realtime backend is 'redis' but no URL is configured; "
                    "realtime disabled"
                )
                return None
            try:
                import redis.asyncio as redis
            except ModuleNotFoundError as exc:  # pragma: no cover
                raise RuntimeError(
                    "Redis push channel requires `redis` to be installed."
                ) from exc
            client = redis.Redis.from_url(settings.realtime_redis_url)

        return RedisPushChannel(client, prefix=settings.realtime_prefix)

    raise ValueError(f"Unknown TRAINWATCH_REALTIME_BACKEND: {backend}")


def create_push_channel_from_env(*, redis_client: Any | None = None) -> PushChannel | None:
    """Create a push channel from `TRAINWATCH_REALTIME_*` environment variables."""
    return create_push_channel(ClientSettings.from_env(), redis_client=redis_client)
