"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Job reconciler: keeps a local job collection consistent with the backend by
combining push events with a polling fallback.

State machine::

    inactive -> subscribing -> active (push) | fallback (poll) -> inactive

``active`` degrades to ``fallback`` when the transport reports a dropped
connection. Push events and poll snapshots for the same job resolve as last
write wins.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import Counter
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from pydantic import ValidationError

from ..metrics import ClientMetrics, NoOpClientMetrics
from ..realtime.types import ChangeHandlers, PushChannel, Subscription
from ..settings import ClientSettings
from ..types import JSONValue
from .models import JobRecord, parse_realtime_job
from .store import JobCollection

logger = logging.getLogger("trainwatch.jobs.reconciler")

ReconcilerState = Literal["inactive", "subscribing", "active", "fallback"]

FetchJobs = Callable[[], Awaitable[Iterable[Mapping[str, Any]]]]
ChangeCallback = Callable[[tuple[JobRecord, ...]], None]


class JobsApi(Protocol):
    """Mutating endpoints used by the reconciler's job operations."""

    async def create_training_job(self, config: Mapping[str, JSONValue]) -> JSONValue: ...

    async def cancel_training_job(self, job_id: str) -> JSONValue: ...

    async def delete_training_job(self, job_id: str) -> JSONValue: ...


@dataclass(frozen=True, slots=True)
class PollingConfig:
    """
    Poll cadence.

    Attributes:
        fast_interval_s: Fallback cadence while any job is pending/running.
        slow_interval_s: Fallback cadence when every job is terminal.
        backup_interval_s: Cadence while the push channel is active.
    """

    fast_interval_s: float = 3.0
    slow_interval_s: float = 10.0
    backup_interval_s: float = 30.0

    @classmethod
    def from_settings(cls, settings: ClientSettings) -> "PollingConfig":
        return cls(
            fast_interval_s=settings.fast_poll_interval_s,
            slow_interval_s=settings.slow_poll_interval_s,
            backup_interval_s=settings.backup_poll_interval_s,
        )


def channel_name_for(user_id: str) -> str:
    return f"training-jobs-{user_id}"


class JobReconciler:
    """
    Owns one job collection for one active view and user identity.

    Args:
        fetch_jobs: Coroutine returning the current job payloads.
        channel: Push channel; ``None`` means realtime is not configured.
        api: Mutating endpoints for ``create_job``/``cancel_job``/``delete_job``.
        config: Poll cadence.
        metrics: Optional counter sink.
        on_change: Called with a snapshot after every applied change.
    """

    def __init__(
        self,
        fetch_jobs: FetchJobs,
        *,
        channel: PushChannel | None = None,
        api: JobsApi | None = None,
        config: PollingConfig | None = None,
        metrics: ClientMetrics | None = None,
        on_change: ChangeCallback | None = None,
    ) -> None:
        self._fetch_jobs = fetch_jobs
        self._channel = channel
        self._api = api
        self._config = config or PollingConfig()
        self._metrics: ClientMetrics = metrics or NoOpClientMetrics()
        self._on_change = on_change

        self._jobs = JobCollection()
        self._state: ReconcilerState = "inactive"
        self._user_id: str | None = None
        self._last_user_id: str | None = None
        self._subscription: Subscription | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._generation = 0
        self._mutations: Counter[str] = Counter()
        self._mutation_epoch = 0
        self._wake = asyncio.Event()
        self._ready: asyncio.Event | None = None
        self._sleeping_interval: float | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> ReconcilerState:
        return self._state

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def jobs(self) -> tuple[JobRecord, ...]:
        """Snapshot of the current job records."""
        return self._jobs.snapshot()

    def get_job(self, job_id: str) -> JobRecord | None:
        return self._jobs.get(job_id)

    @property
    def has_active_jobs(self) -> bool:
        return self._jobs.has_active_jobs

    @property
    def push_active(self) -> bool:
        return self._state == "active"

    @property
    def is_mutating(self) -> bool:
        """Whether any mutating operation is in flight."""
        return bool(self._mutations)

    @property
    def active_mutations(self) -> list[str]:
        return sorted(self._mutations)

    def poll_interval(self) -> float:
        """Seconds until the next poll for the current state and jobs."""
        if self._state == "active":
            return self._config.backup_interval_s
        if self._jobs.has_active_jobs:
            return self._config.fast_interval_s
        return self._config.slow_interval_s

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def activate(self, user_id: str | int) -> None:
        """
        Start reconciling jobs for ``user_id``.

        Re-activating with the same identity waits for any activation still in
        progress and is otherwise a no-op; a different identity tears down the
        current session first.
        """
        uid = str(user_id)
        if self._state != "inactive":
            if self._user_id == uid:
                if self._ready is not None:
                    await self._ready.wait()
                return
            await self.deactivate()

        self._generation += 1
        generation = self._generation
        ready = self._ready = asyncio.Event()
        try:
            await self._activate(uid, generation)
        finally:
            ready.set()

    async def _activate(self, uid: str, generation: int) -> None:
        if self._last_user_id != uid:
            self._jobs = JobCollection()
        self._user_id = uid
        self._last_user_id = uid
        self._state = "subscribing"

        subscription = await self._open_subscription(uid, generation)
        if generation != self._generation:
            if subscription is not None:
                await subscription.close()
            return

        if subscription is None:
            self._state = "fallback"
            self._metrics.incr("reconciler_fallback_total")
        else:
            self._subscription = subscription
            self._state = "active"
            logger.info("Subscribed to training job updates (user_id=%s)", uid)

        try:
            await self._poll_once(generation)
        except Exception:  # noqa: BLE001
            logger.exception("Initial job fetch failed (user_id=%s)", uid)

        if generation == self._generation:
            self._poll_task = asyncio.create_task(self._poll_loop(generation))

    async def deactivate(self) -> None:
        """
        Stop reconciling: close the subscription once and stop polling.

        Results of polls still in flight and late push callbacks are dropped.
        """
        if self._state == "inactive":
            return
        self._generation += 1
        self._state = "inactive"
        self._user_id = None

        subscription, self._subscription = self._subscription, None
        task, self._poll_task = self._poll_task, None

        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        if subscription is not None:
            try:
                await subscription.close()
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Failed to close subscription %s", subscription.channel_name
                )
        logger.info("Job reconciler deactivated")

    async def _open_subscription(
        self, user_id: str, generation: int
    ) -> Subscription | None:
        if self._channel is None:
            logger.info("Realtime not configured, using polling fallback")
            return None

        handlers = ChangeHandlers(
            on_update=lambda row: self._on_push_update(generation, row),
            on_insert=lambda row: self._on_push_insert(generation, row),
            on_delete=lambda job_id: self._on_push_delete(generation, job_id),
            on_closed=lambda: self._on_channel_closed(generation),
        )
        try:
            return await self._channel.subscribe(
                channel_name_for(user_id), user_id=user_id, handlers=handlers
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Realtime unavailable (%s), using polling fallback", exc)
            return None

    # ------------------------------------------------------------------
    # Push handlers
    # ------------------------------------------------------------------

    def _parse_push_row(self, row: Mapping[str, Any]) -> dict[str, JSONValue] | None:
        try:
            return parse_realtime_job(row)
        except ValidationError as exc:
            logger.warning("Ignoring push row without a valid job_id: %s", exc)
            return None

    def _on_push_update(self, generation: int, row: Mapping[str, Any]) -> None:
        if generation != self._generation:
            return
        changes = self._parse_push_row(row)
        if changes is None:
            return
        self._metrics.incr("reconciler_push_events_total", tags={"kind": "update"})
        merged = self._jobs.apply_update(changes)
        if merged is not None:
            logger.debug("Job updated: %s %s", merged.job_id, merged.status)
            self._emit_change()

    def _on_push_insert(self, generation: int, row: Mapping[str, Any]) -> None:
        if generation != self._generation:
            return
        changes = self._parse_push_row(row)
        if changes is None:
            return
        self._metrics.incr("reconciler_push_events_total", tags={"kind": "insert"})
        if self._jobs.apply_insert(JobRecord.from_payload(changes)):
            logger.debug("New job: %s", changes["job_id"])
            self._emit_change()

    def _on_push_delete(self, generation: int, job_id: str) -> None:
        if generation != self._generation:
            return
        self._metrics.incr("reconciler_push_events_total", tags={"kind": "delete"})
        if self._jobs.apply_delete(job_id):
            logger.debug("Job deleted: %s", job_id)
            self._emit_change()

    def _on_channel_closed(self, generation: int) -> None:
        if generation != self._generation or self._state != "active":
            return
        logger.warning(
            "Realtime channel closed (user_id=%s), falling back to polling",
            self._user_id,
        )
        self._state = "fallback"
        self._metrics.incr("reconciler_fallback_total")
        self._wake.set()

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def refresh(self) -> None:
        """Fetch and apply a snapshot now. Errors propagate to the caller."""
        if self._state == "inactive":
            raise RuntimeError("JobReconciler is not active")
        await self._poll_once(self._generation)

    async def _poll_once(self, generation: int) -> bool:
        epoch = self._mutation_epoch
        rows = await self._fetch_jobs()
        self._metrics.incr("reconciler_polls_total")
        if generation != self._generation:
            return False
        if self.is_mutating or epoch != self._mutation_epoch:
            logger.debug("Discarding poll result that raced a mutation")
            return False

        records: list[JobRecord] = []
        for row in rows:
            try:
                records.append(JobRecord.from_payload(row))
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping malformed job payload: %s", exc)
        self._jobs.replace_all(records)
        self._emit_change()
        return True

    async def _sleep(self, interval: float) -> bool:
        """Sleep up to ``interval``; False when woken early to re-plan."""
        self._wake.clear()
        self._sleeping_interval = interval
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=interval)
        except asyncio.TimeoutError:
            return True
        finally:
            self._sleeping_interval = None
        return False

    async def _poll_loop(self, generation: int) -> None:
        while generation == self._generation:
            try:
                if not await self._sleep(self.poll_interval()):
                    continue
                if generation != self._generation:
                    break
                if self.is_mutating:
                    self._metrics.incr("reconciler_poll_skipped_total")
                    logger.debug(
                        "Skipping poll during mutation(s): %s",
                        ", ".join(self.active_mutations),
                    )
                    continue
                await self._poll_once(generation)
            except asyncio.CancelledError:
                raise
            except Exception:  # noqa: BLE001
                logger.exception("Job poll failed (user_id=%s)", self._user_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def mutation(self, name: str) -> AsyncIterator[None]:
        """Suspend polling while the wrapped operation runs."""
        self._mutations[name] += 1
        self._mutation_epoch += 1
        try:
            yield
        finally:
            self._mutations[name] -= 1
            if self._mutations[name] <= 0:
                del self._mutations[name]

    def _require_api(self) -> JobsApi:
        if self._api is None:
            raise RuntimeError("JobReconciler was created without an api")
        return self._api

    async def create_job(self, config: Mapping[str, JSONValue]) -> JobRecord | None:
        """Create a job and add it locally once the backend accepts it."""
        api = self._require_api()
        generation = self._generation
        async with self.mutation("create_job"):
            result = await api.create_training_job(config)
            if not isinstance(result, dict) or not result.get("job_id"):
                return None
            record = JobRecord.from_payload({"status": "pending", **result})
            if generation == self._generation and self._jobs.apply_insert(record):
                self._emit_change()
            return record

    async def cancel_job(self, job_id: str) -> JobRecord | None:
        """Cancel a job and mark it ``cancelled`` locally."""
        api = self._require_api()
        generation = self._generation
        async with self.mutation("cancel_job"):
            await api.cancel_training_job(job_id)
            if generation != self._generation:
                return None
            merged = self._jobs.apply_update({"job_id": job_id, "status": "cancelled"})
            if merged is not None:
                self._emit_change()
            return merged

    async def delete_job(self, job_id: str) -> bool:
        """Delete a job and drop it locally."""
        api = self._require_api()
        generation = self._generation
        async with self.mutation("delete_job"):
            await api.delete_training_job(job_id)
            if generation != self._generation:
                return False
            removed = self._jobs.apply_delete(job_id)
            if removed:
                self._emit_change()
            return removed

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _emit_change(self) -> None:
        if (
            self._sleeping_interval is not None
            and self._sleeping_interval != self.poll_interval()
        ):
            self._wake.set()
        if self._on_change is None:
            return
        try:
            self._on_change(self._jobs.snapshot())
        except Exception:  # noqa: BLE001
            logger.exception("on_change callback failed")
