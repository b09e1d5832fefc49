"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Push-channel types and protocols.
"""

from __future__ import annotations

import inspect
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from ..types import JSONValue

logger = logging.getLogger("trainwatch.realtime")

# ---------------------------------------------------------------------------
# Change events
# ---------------------------------------------------------------------------

ChangeKind = Literal["insert", "update", "delete"]

_KIND_ALIASES: dict[str, ChangeKind] = {
    "insert": "insert",
    "update": "update",
    "delete": "delete",
}


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """
    One row-level change notification.

    Attributes:
        kind: ``insert``, ``update`` or ``delete``.
        new: Row after the change (insert/update).
        old: Row before the change (delete).
        timestamp: Unix timestamp when the event was received.
    """

    kind: ChangeKind
    new: dict[str, JSONValue] | None = None
    old: dict[str, JSONValue] | None = None
    timestamp: float = field(default_factory=time.time)

    @property
    def row(self) -> dict[str, JSONValue]:
        """The row the event refers to."""
        return (self.old if self.kind == "delete" else self.new) or {}

    @classmethod
    def from_message(cls, data: Mapping[str, Any]) -> "ChangeEvent":
        """
        Parse a wire message ``{"type": "UPDATE", "new": {...}, "old": {...}}``.

        ``eventType`` is accepted as an alias of ``type``.

        Raises:
            ValueError: On an unknown event type.
        """
        raw_kind = str(data.get("type") or data.get("eventType") or "").lower()
        kind = _KIND_ALIASES.get(raw_kind)
        if kind is None:
            raise ValueError(f"Unknown change event type '{raw_kind}'")
        new = data.get("new")
        old = data.get("old")
        return cls(
            kind=kind,
            new=dict(new) if isinstance(new, Mapping) else None,
            old=dict(old) if isinstance(old, Mapping) else None,
        )

    def to_message(self) -> dict[str, JSONValue]:
        return {"type": self.kind.upper(), "new": self.new, "old": self.old}


# ---------------------------------------------------------------------------
# Handlers and subscription handle
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChangeHandlers:
    """Callbacks installed on a subscription."""

    on_update: Callable[[dict[str, JSONValue]], None]
    on_insert: Callable[[dict[str, JSONValue]], None] | None = None
    on_delete: Callable[[str], None] | None = None
    on_closed: Callable[[], None] | None = None

    def dispatch(self, event: ChangeEvent) -> None:
        if event.kind == "update" and event.new is not None:
            self.on_update(event.new)
        elif event.kind == "insert" and event.new is not None:
            if self.on_insert is not None:
                self.on_insert(event.new)
        elif event.kind == "delete" and event.old is not None:
            job_id = event.old.get("job_id")
            if self.on_delete is not None and job_id is not None:
                self.on_delete(str(job_id))


Cleanup = Callable[[], Awaitable[None] | None]


class Subscription:
    """
    Handle for one open push subscription.

    ``close()`` runs the transport cleanup exactly once and is safe to call
    repeatedly. Events delivered after close are dropped.
    """

    def __init__(
        self,
        channel_name: str,
        *,
        user_id: str,
        handlers: ChangeHandlers,
        cleanup: Cleanup | None = None,
    ) -> None:
        self._channel_name = channel_name
        self._user_id = str(user_id)
        self._handlers = handlers
        self._cleanup = cleanup
        self._closed = False

    @property
    def channel_name(self) -> str:
        return self._channel_name

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, event: ChangeEvent) -> bool:
        """Equality filter on the row's ``user_id``."""
        owner = event.row.get("user_id")
        return owner is not None and str(owner) == self._user_id

    def deliver(self, event: ChangeEvent) -> bool:
        """
        Dispatch ``event`` to the handlers if open and matching.

        Handler errors are logged, never raised into the transport.
        """
        if self._closed or not self.matches(event):
            return False
        try:
            self._handlers.dispatch(event)
        except Exception:  # noqa: BLE001
            logger.exception(
                "Change handler failed (channel=%s, kind=%s)",
                self._channel_name,
                event.kind,
            )
        return True

    def notify_disconnected(self) -> None:
        """Called by transports when the underlying connection drops."""
        if self._closed or self._handlers.on_closed is None:
            return
        try:
            self._handlers.on_closed()
        except Exception:  # noqa: BLE001
            logger.exception("on_closed handler failed (channel=%s)", self._channel_name)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._cleanup is None:
            return
        result = self._cleanup()
        if inspect.isawaitable(result):
            await result


# ---------------------------------------------------------------------------
# Push channel abstract base
# ---------------------------------------------------------------------------


class PushChannel(ABC):
    """
    Abstract source of row-level change events.

    Implementations provide the transport (in-memory, Redis pub/sub, ...).
    """

    @abstractmethod
    async def subscribe(
        self,
        channel_name: str,
        *,
        user_id: str,
        handlers: ChangeHandlers,
    ) -> Subscription:
        """
        Open a subscription for rows owned by ``user_id``.

        Raises:
            SubscriptionError: If the channel cannot be opened.
        """
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        return None
