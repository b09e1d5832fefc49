"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Ordered, id-unique collection of job records.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from .models import JobRecord


class JobCollection:
    """
    Job records keyed by ``job_id`` in display order.

    Every mutation keeps ``job_id`` unique; callers never touch the underlying
    mapping directly.
    """

    def __init__(self, records: Iterable[JobRecord] = ()) -> None:
        self._rows: dict[str, JobRecord] = {}
        self.replace_all(records)

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._rows

    def __iter__(self) -> Iterator[JobRecord]:
        return iter(list(self._rows.values()))

    def get(self, job_id: str) -> JobRecord | None:
        return self._rows.get(job_id)

    def snapshot(self) -> tuple[JobRecord, ...]:
        """Immutable view of the current records."""
        return tuple(self._rows.values())

    @property
    def has_active_jobs(self) -> bool:
        """Whether any job is pending or running."""
        return any(row.is_active for row in self._rows.values())

    def apply_update(self, changes: Mapping[str, Any]) -> JobRecord | None:
        """
        Merge ``changes`` into the record with the same ``job_id``.

        Returns the merged record, or ``None`` when no record matches.
        """
        job_id = str(changes.get("job_id", ""))
        current = self._rows.get(job_id)
        if current is None:
            return None
        merged = current.merged(changes)
        self._rows[job_id] = merged
        return merged

    def apply_insert(self, record: JobRecord) -> bool:
        """Append ``record`` unless its id is already present."""
        if record.job_id in self._rows:
            return False
        self._rows[record.job_id] = record
        return True

    def apply_delete(self, job_id: str) -> bool:
        """Remove the record for ``job_id``; absent ids are a no-op."""
        return self._rows.pop(job_id, None) is not None

    def replace_all(self, records: Iterable[JobRecord]) -> None:
        """Replace contents with a server snapshot; later duplicates win."""
        rows: dict[str, JobRecord] = {}
        for record in records:
            rows[record.job_id] = record
        self._rows = rows
