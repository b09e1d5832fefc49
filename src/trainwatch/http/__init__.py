"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

HTTP layer: request deduplication, response caching and retry.
"""

from .cache import CacheEntry, ResponseCache, cache_key
from .dedup import (
    DeduplicatorStats,
    PendingRequest,
    RequestDeduplicator,
    decode_response,
    raise_for_response,
)
from .keys import RequestOptions, encode_query, request_key
from .retry import call_with_retry, is_transient

__all__ = [
    "CacheEntry",
    "ResponseCache",
    "cache_key",
    "DeduplicatorStats",
    "PendingRequest",
    "RequestDeduplicator",
    "decode_response",
    "raise_for_response",
    "RequestOptions",
    "encode_query",
    "request_key",
    "call_with_retry",
    "is_transient",
]
