"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Request descriptors and deduplication keys.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

from ..types import JSONValue


@dataclass(frozen=True, slots=True)
class RequestOptions:
    """
    Describes one HTTP request issued through the deduplicator.

    Attributes:
        method: HTTP verb, upper-cased when the key is built.
        headers: Extra request headers.
        json: JSON-serializable body.
        content: Raw body (bytes, text or a stream).
        files: Multipart upload mapping passed through to ``httpx``.
        params: Query parameters appended to the URL.
    """

    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)
    json: JSONValue = None
    content: Any = None
    files: Any = None
    params: Mapping[str, Any] | None = None

    @property
    def has_opaque_body(self) -> bool:
        """Whether the body cannot be serialized into a stable key."""
        return self.content is not None or self.files is not None


def encode_query(params: Mapping[str, Any]) -> str:
    """URL-encode ``params`` in sorted key order; sequences repeat the key."""
    items = sorted(params.items(), key=lambda item: str(item[0]))
    return urlencode(items, doseq=True)


def serialize_body(options: RequestOptions) -> str:
    """
    Serialize the request body for key construction.

    JSON bodies are canonicalized (sorted keys, compact separators). Binary and
    multipart bodies get a per-call unique token so unrelated uploads never
    share a request.
    """
    if options.has_opaque_body:
        return f"upload:{uuid.uuid4().hex}"
    if options.json is None:
        return ""
    return json.dumps(
        options.json, sort_keys=True, separators=(",", ":"), default=str
    )


def request_key(url: str, options: RequestOptions | None = None) -> str:
    """Return ``method:url:body`` for one request."""
    opts = options or RequestOptions()
    method = (opts.method or "GET").upper()
    target = url
    if opts.params:
        target = f"{url}?{encode_query(opts.params)}"
    return f"{method}:{target}:{serialize_body(opts)}"
