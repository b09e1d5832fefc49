"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Settled-response cache with stale-while-revalidate reads.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from ..types import JSONValue
from .keys import encode_query

logger = logging.getLogger("trainwatch.http.cache")


def cache_key(url: str, params: Mapping[str, Any] | None = None) -> str:
    """Return ``url`` with URL-encoded query params appended in sorted order."""
    if not params:
        return url
    return f"{url}?{encode_query(params)}"


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """One cached response body with its store time."""

    value: JSONValue
    stored_at: float


class ResponseCache:
    """
    Process-local cache of decoded responses.

    Entries younger than ``ttl_s`` are fresh and served directly. Entries
    younger than ``stale_ttl_s`` are served immediately while a single
    background refresh runs for the key.
    """

    def __init__(
        self,
        *,
        ttl_s: float = 30.0,
        stale_ttl_s: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_s = ttl_s
        self._stale_ttl_s = stale_ttl_s
        self._clock = clock
        self._rows: dict[str, CacheEntry] = {}
        self._revalidating: dict[str, asyncio.Task[None]] = {}
        # Bumped on invalidation; fetches started under an older value are not stored.
        self._generations: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._rows)

    def get(self, key: str, *, ttl_s: float | None = None) -> JSONValue:
        """Return the fresh value for ``key`` or ``None``."""
        row = self._rows.get(key)
        if row is None or not self._is_fresh(row, ttl_s):
            return None
        return row.value

    def set(self, key: str, value: JSONValue) -> None:
        self._rows[key] = CacheEntry(value=value, stored_at=self._clock())

    def invalidate(self, key: str) -> None:
        self._rows.pop(key, None)
        self._generations[key] = self._generations.get(key, 0) + 1

    def clear(self, pattern: str | None = None) -> None:
        """
        Drop every entry, or only keys containing ``pattern``.

        Refreshes already in flight for a dropped key finish without storing
        their result.
        """
        keys = {*self._rows, *self._revalidating}
        for key in keys:
            if pattern is None or pattern in key:
                self.invalidate(key)

    def _is_fresh(self, row: CacheEntry, ttl_s: float | None) -> bool:
        ttl = self._ttl_s if ttl_s is None else ttl_s
        return self._clock() - row.stored_at < ttl

    def _is_stale_usable(self, row: CacheEntry) -> bool:
        return self._clock() - row.stored_at < self._stale_ttl_s

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[JSONValue]],
        *,
        ttl_s: float | None = None,
        stale_while_revalidate: bool = True,
    ) -> JSONValue:
        """
        Serve ``key`` from cache, falling back to ``fetch``.

        Errors from a foreground fetch propagate; errors from a background
        revalidation are logged and leave the stale entry in place.
        """
        row = self._rows.get(key)
        if row is not None and self._is_fresh(row, ttl_s):
            return row.value

        generation = self._generations.get(key, 0)
        if row is not None and stale_while_revalidate and self._is_stale_usable(row):
            if key not in self._revalidating:
                task = asyncio.create_task(self._revalidate(key, fetch, generation))
                self._revalidating[key] = task
                task.add_done_callback(lambda _t: self._revalidating.pop(key, None))
            return row.value

        value = await fetch()
        self._store(key, value, generation)
        return value

    def _store(self, key: str, value: JSONValue, generation: int) -> None:
        if self._generations.get(key, 0) != generation:
            logger.debug("Dropping result for %s invalidated during fetch", key)
            return
        self.set(key, value)

    async def _revalidate(
        self, key: str, fetch: Callable[[], Awaitable[JSONValue]], generation: int
    ) -> None:
        try:
            value = await fetch()
        except Exception:  # noqa: BLE001
            logger.exception("Background revalidation failed for %s", key)
            return
        self._store(key, value, generation)

    async def wait_revalidations(self) -> None:
        """Wait for background refreshes currently in flight."""
        if self._revalidating:
            await asyncio.gather(*self._revalidating.values(), return_exceptions=True)
