"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Keyed in-flight request deduplication.

Concurrent callers issuing the same ``(method, url, body)`` within a TTL
window share one underlying HTTP call and observe the same result or error.
Entries are dropped as soon as the call settles, so the next call after
completion always performs fresh network I/O.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx

from ..errors import AuthenticationError, NetworkError, RequestError, error_message
from ..metrics import ClientMetrics, NoOpClientMetrics
from ..types import JSONValue
from .keys import RequestOptions, request_key

logger = logging.getLogger("trainwatch.http.dedup")

DEFAULT_TTL_S = 5.0
DEFAULT_MAX_CACHE_SIZE = 100


@dataclass(slots=True)
class PendingRequest:
    """One shared in-flight request."""

    key: str
    task: asyncio.Task[JSONValue]
    created_at: float


@dataclass(frozen=True, slots=True)
class DeduplicatorStats:
    """Snapshot of the pending-request map."""

    pending_requests: int
    requests: list[tuple[str, float]] = field(default_factory=list)


def raise_for_response(response: httpx.Response) -> None:
    """
    Raise ``RequestError`` for non-2xx responses.

    The message is the JSON body's ``detail`` when present, otherwise
    ``HTTP <status>``. Bodies that are not JSON fall back to the reason phrase.
    """
    if response.is_success:
        return

    body: JSONValue = None
    try:
        body = response.json()
    except ValueError:
        detail: JSONValue = response.reason_phrase
    else:
        detail = body.get("detail") if isinstance(body, dict) else None

    error_cls = AuthenticationError if response.status_code == 401 else RequestError
    raise error_cls(
        error_message(response.status_code, detail),
        status_code=response.status_code,
        detail=detail,
        body=body,
    )


def decode_response(response: httpx.Response) -> JSONValue:
    """Validate status and decode the JSON payload of one response."""
    raise_for_response(response)
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise RequestError(
            f"Invalid JSON response from {response.request.url}",
            status_code=response.status_code,
        ) from exc


class RequestDeduplicator:
    """
    Collapse concurrent identical requests into one network call.

    Args:
        client: ``httpx.AsyncClient`` used for I/O. A private client is created
            (and closed by ``aclose``) when omitted.
        ttl_s: Default reuse window for pending entries.
        max_cache_size: Upper bound on tracked entries; oldest evicted first.
        metrics: Optional counter sink.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        ttl_s: float = DEFAULT_TTL_S,
        max_cache_size: int = DEFAULT_MAX_CACHE_SIZE,
        metrics: ClientMetrics | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_s <= 0:
            raise ValueError("ttl_s must be > 0")
        if max_cache_size < 1:
            raise ValueError("max_cache_size must be >= 1")
        self._client = client
        self._owns_client = client is None
        self._ttl_s = ttl_s
        self._max_cache_size = max_cache_size
        self._metrics: ClientMetrics = metrics or NoOpClientMetrics()
        self._clock = clock
        self._pending: dict[str, PendingRequest] = {}

    @property
    def pending_count(self) -> int:
        """Number of tracked in-flight entries."""
        return len(self._pending)

    async def execute(
        self,
        url: str,
        options: RequestOptions | None = None,
        ttl_s: float | None = None,
    ) -> JSONValue:
        """
        Execute a request, joining an identical in-flight one when possible.

        Args:
            url: Absolute URL, or a path relative to the client's base URL.
            options: Method, headers and body of the request.
            ttl_s: Reuse window for this call; defaults to the instance TTL.

        Returns:
            Decoded JSON body.

        Raises:
            RequestError: On non-2xx responses (shared by every waiter).
            NetworkError: When no response was received.
        """
        opts = options or RequestOptions()
        key = request_key(url, opts)
        ttl = ttl_s if ttl_s is not None else self._ttl_s

        existing = self._pending.get(key)
        if existing is not None and self._clock() - existing.created_at < ttl:
            logger.debug("Reusing in-flight request: %s", key)
            self._metrics.incr("dedup_hits_total")
            return await asyncio.shield(existing.task)

        self._metrics.incr("dedup_misses_total")
        task: asyncio.Task[JSONValue] = asyncio.create_task(self._send(url, opts))
        entry = PendingRequest(key=key, task=task, created_at=self._clock())
        # Re-insert so dict order tracks creation time.
        self._pending.pop(key, None)
        self._pending[key] = entry
        task.add_done_callback(lambda _t: self._settle(entry))
        self.cleanup()
        return await asyncio.shield(task)

    async def _send(self, url: str, opts: RequestOptions) -> JSONValue:
        client = self._ensure_client()
        try:
            response = await client.request(
                (opts.method or "GET").upper(),
                url,
                headers=dict(opts.headers),
                json=opts.json,
                content=opts.content,
                files=opts.files,
                params=opts.params,
            )
        except httpx.HTTPError as exc:
            logger.warning("Request failed for %s: %s", url, exc)
            raise NetworkError(f"Network error calling {url}: {exc}") from exc
        return decode_response(response)

    def _settle(self, entry: PendingRequest) -> None:
        # Only drop the entry if a newer request has not replaced it.
        if self._pending.get(entry.key) is entry:
            del self._pending[entry.key]
        if not entry.task.cancelled():
            _ = entry.task.exception()

    def cleanup(self) -> None:
        """Drop entries older than the TTL, then trim to ``max_cache_size``."""
        now = self._clock()
        expired = [
            key
            for key, entry in self._pending.items()
            if now - entry.created_at > self._ttl_s
        ]
        for key in expired:
            del self._pending[key]

        overflow = len(self._pending) - self._max_cache_size
        if overflow > 0:
            oldest = sorted(self._pending.values(), key=lambda e: e.created_at)
            for entry in oldest[:overflow]:
                del self._pending[entry.key]
            self._metrics.incr("dedup_evictions_total", overflow)
            logger.debug("Evicted %d oldest pending request(s)", overflow)

    def clear(self) -> None:
        """Forget all tracked entries. In-flight calls keep running."""
        self._pending.clear()

    def stats(self) -> DeduplicatorStats:
        """Return pending keys with their ages in seconds."""
        now = self._clock()
        return DeduplicatorStats(
            pending_requests=len(self._pending),
            requests=[(key, now - e.created_at) for key, e in self._pending.items()],
        )

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
