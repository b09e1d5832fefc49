"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Training-job record types.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator

from ..types import JSONValue

JobStatus = Literal["pending", "running", "completed", "failed", "cancelled"]

ACTIVE_STATUSES: frozenset[str] = frozenset({"pending", "running"})
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed", "cancelled"})


def decode_json_object(value: Any) -> dict[str, JSONValue]:
    """
    Decode a JSON object that may arrive as a string.

    Anything that is not an object (or a string holding one) becomes ``{}``.
    """
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, (str, bytes)):
        try:
            decoded = json.loads(value)
        except ValueError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


@dataclass(frozen=True, slots=True)
class JobRecord:
    """
    Client-side view of one training job.

    Only the fields the reconciler reads are typed; every other payload field
    is kept verbatim in ``extra``.

    Attributes:
        job_id: Stable job identity.
        status: Lifecycle status reported by the backend.
        current_epoch: Last completed epoch.
        total_epochs: Planned epoch count.
        metrics: Latest metric snapshot (opaque).
        best_metrics: Best metric snapshot (opaque).
        created_at: Creation timestamp as sent by the backend.
        started_at: Start timestamp, if started.
        completed_at: Completion timestamp, if terminal.
        extra: Remaining payload fields.
    """

    job_id: str
    status: JobStatus | str = "pending"
    current_epoch: int = 0
    total_epochs: int = 0
    metrics: dict[str, JSONValue] = field(default_factory=dict)
    best_metrics: dict[str, JSONValue] = field(default_factory=dict)
    created_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    extra: dict[str, JSONValue] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        """Whether the job is pending or running."""
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "JobRecord":
        """
        Build a record from a decoded REST or push payload.

        Raises:
            ValueError: If ``job_id`` is missing or empty.
        """
        job_id = payload.get("job_id")
        if job_id is None or str(job_id) == "":
            raise ValueError("job payload is missing 'job_id'")

        typed = {f.name for f in fields(cls)} - {"extra"}
        return cls(
            job_id=str(job_id),
            status=str(payload.get("status") or "pending"),
            current_epoch=int(payload.get("current_epoch") or 0),
            total_epochs=int(payload.get("total_epochs") or 0),
            metrics=decode_json_object(payload.get("metrics")),
            best_metrics=decode_json_object(payload.get("best_metrics")),
            created_at=payload.get("created_at"),
            started_at=payload.get("started_at"),
            completed_at=payload.get("completed_at"),
            extra={k: v for k, v in payload.items() if k not in typed},
        )

    def to_dict(self) -> dict[str, JSONValue]:
        """Flatten the record back into a single payload mapping."""
        return {
            **self.extra,
            "job_id": self.job_id,
            "status": self.status,
            "current_epoch": self.current_epoch,
            "total_epochs": self.total_epochs,
            "metrics": dict(self.metrics),
            "best_metrics": dict(self.best_metrics),
            "created_at": self.created_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }

    def merged(self, changes: Mapping[str, Any]) -> "JobRecord":
        """Return a copy with ``changes`` applied field by field."""
        if "job_id" in changes and str(changes["job_id"]) != self.job_id:
            raise ValueError(
                f"Cannot merge job '{changes['job_id']}' into '{self.job_id}'"
            )
        return JobRecord.from_payload({**self.to_dict(), **changes})


class RealtimeJobRow(BaseModel):
    """
    Row payload delivered by the push channel.

    JSON sub-fields may arrive as encoded strings; malformed values decode to
    an empty object instead of failing the whole row.
    """

    model_config = ConfigDict(extra="allow")

    job_id: str
    status: str = "pending"
    current_epoch: int = 0
    total_epochs: int = 0
    metrics: dict[str, Any] = {}
    best_metrics: dict[str, Any] = {}
    config: dict[str, Any] = {}
    error_message: str | None = None
    created_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None

    @field_validator("job_id", mode="before")
    @classmethod
    def _coerce_job_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("metrics", "best_metrics", "config", mode="before")
    @classmethod
    def _lenient_json(cls, value: Any) -> dict[str, Any]:
        return decode_json_object(value)

    @field_validator("current_epoch", "total_epochs", mode="before")
    @classmethod
    def _null_epoch(cls, value: Any) -> Any:
        return 0 if value is None else value


def parse_realtime_job(row: Mapping[str, Any]) -> dict[str, JSONValue]:
    """
    Validate a push row and return only the fields it actually carried.

    Raises:
        pydantic.ValidationError: If the row has no usable ``job_id``.
    """
    data = RealtimeJobRow.model_validate(dict(row)).model_dump()
    return {key: value for key, value in data.items() if key in row}
