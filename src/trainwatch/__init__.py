"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

trainwatch: request deduplication and realtime/polling job reconciliation
for ML training dashboards.

Usage::

    from trainwatch import ApiClient, ClientSettings, JobReconciler

    settings = ClientSettings.from_env()
    api = ApiClient(settings)
    reconciler = JobReconciler(api.get_training_jobs, api=api)
    await reconciler.activate(user_id=7)
"""

from .api import ApiClient
from .errors import (
    AuthenticationError,
    NetworkError,
    RequestError,
    SubscriptionError,
    TrainwatchError,
)
from .http import RequestDeduplicator, RequestOptions, ResponseCache
from .jobs import JobCollection, JobReconciler, JobRecord, PollingConfig
from .settings import ClientSettings

__all__ = [
    "ApiClient",
    "AuthenticationError",
    "NetworkError",
    "RequestError",
    "SubscriptionError",
    "TrainwatchError",
    "RequestDeduplicator",
    "RequestOptions",
    "ResponseCache",
    "JobCollection",
    "JobReconciler",
    "JobRecord",
    "PollingConfig",
    "ClientSettings",
]
