"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Training-job records and the realtime/polling reconciler.
"""

from .models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    JobRecord,
    JobStatus,
    RealtimeJobRow,
    decode_json_object,
    parse_realtime_job,
)
from .reconciler import (
    JobReconciler,
    JobsApi,
    PollingConfig,
    ReconcilerState,
    channel_name_for,
)
from .store import JobCollection

__all__ = [
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "JobRecord",
    "JobStatus",
    "RealtimeJobRow",
    "decode_json_object",
    "parse_realtime_job",
    "JobReconciler",
    "JobsApi",
    "PollingConfig",
    "ReconcilerState",
    "channel_name_for",
    "JobCollection",
]
