"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Bounded retry for transient backend failures.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..errors import NetworkError, RequestError, TrainwatchError

T = TypeVar("T")

logger = logging.getLogger("trainwatch.http.retry")


def is_transient(error: Exception) -> bool:
    """Network failures and 5xx responses are retried; 4xx never are."""
    if isinstance(error, NetworkError):
        return True
    if isinstance(error, RequestError):
        return error.status_code >= 500
    return False


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    delay_s: float = 1.0,
) -> T:
    """
    Execute ``fn`` with up to ``max_retries`` extra attempts.

    The wait before retry ``n`` (1-based) is ``delay_s * n``.
    """
    for attempt in range(max_retries + 1):
        try:
            return await fn()
        except (NetworkError, RequestError) as error:
            if not is_transient(error) or attempt >= max_retries:
                raise
            wait_s = delay_s * (attempt + 1)
            logger.info(
                "Transient failure (%s), retry %d/%d in %.1fs",
                error,
                attempt + 1,
                max_retries,
                wait_s,
            )
            await asyncio.sleep(wait_s)
    raise TrainwatchError("Retry loop exhausted")
