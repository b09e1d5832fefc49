"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Client settings and explicit config loading.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ClientSettings:
    """Explicit settings used by the HTTP layer and the job reconciler."""

    api_base_url: str = "http://localhost:8000"
    api_token: str | None = None
    request_timeout_s: float = 30.0

    dedupe_ttl_s: float = 5.0
    max_cache_size: int = 100
    cache_ttl_s: float = 30.0
    stale_ttl_s: float = 60.0

    max_retries: int = 3
    retry_delay_s: float = 1.0

    fast_poll_interval_s: float = 3.0
    slow_poll_interval_s: float = 10.0
    backup_poll_interval_s: float = 30.0

    realtime_backend: str = "none"
    realtime_redis_url: str | None = None
    realtime_prefix: str = "trainwatch:realtime"

    @staticmethod
    def from_env() -> "ClientSettings":
        """Load settings from environment variables."""
        return ClientSettings(
            api_base_url=os.getenv("TRAINWATCH_API_BASE_URL", "http://localhost:8000"),
            api_token=os.getenv("TRAINWATCH_API_TOKEN") or None,
            request_timeout_s=float(os.getenv("TRAINWATCH_REQUEST_TIMEOUT_S", "30")),
            dedupe_ttl_s=float(os.getenv("TRAINWATCH_DEDUPE_TTL_S", "5")),
            max_cache_size=int(os.getenv("TRAINWATCH_MAX_CACHE_SIZE", "100")),
            cache_ttl_s=float(os.getenv("TRAINWATCH_CACHE_TTL_S", "30")),
            stale_ttl_s=float(os.getenv("TRAINWATCH_STALE_TTL_S", "60")),
            max_retries=int(os.getenv("TRAINWATCH_MAX_RETRIES", "3")),
            retry_delay_s=float(os.getenv("TRAINWATCH_RETRY_DELAY_S", "1")),
            fast_poll_interval_s=float(os.getenv("TRAINWATCH_FAST_POLL_S", "3")),
            slow_poll_interval_s=float(os.getenv("TRAINWATCH_SLOW_POLL_S", "10")),
            backup_poll_interval_s=float(os.getenv("TRAINWATCH_BACKUP_POLL_S", "30")),
            realtime_backend=os.getenv("TRAINWATCH_REALTIME_BACKEND", "none")
            .strip()
            .lower(),
            realtime_redis_url=os.getenv("TRAINWATCH_REALTIME_REDIS_URL") or None,
            realtime_prefix=os.getenv(
                "TRAINWATCH_REALTIME_PREFIX", "trainwatch:realtime"
            ),
        )
