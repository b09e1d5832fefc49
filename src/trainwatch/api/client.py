"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

REST client for the training/processing backend.

Every JSON call goes through a ``RequestDeduplicator`` so bursts of identical
requests from several consumers cost one round trip. Reads can additionally
be served from a ``ResponseCache``; mutations invalidate the cached entries
they affect.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

import httpx

from ..errors import NetworkError
from ..http.cache import ResponseCache, cache_key
from ..http.dedup import RequestDeduplicator, raise_for_response
from ..http.keys import RequestOptions
from ..http.retry import call_with_retry
from ..metrics import ClientMetrics
from ..settings import ClientSettings
from ..types import JSONValue

logger = logging.getLogger("trainwatch.api")

JOBS_TTL_S = 10.0
MODELS_TTL_S = 10.0
FILES_TTL_S = 5.0
DEVICES_TTL_S = 5.0


class ApiClient:
    """Bearer-token JSON client bound to one backend base URL."""

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        deduplicator: RequestDeduplicator | None = None,
        cache: ResponseCache | None = None,
        metrics: ClientMetrics | None = None,
    ) -> None:
        self.settings = settings or ClientSettings()
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=self.settings.request_timeout_s
        )
        self._dedup = deduplicator or RequestDeduplicator(
            self._http,
            ttl_s=self.settings.dedupe_ttl_s,
            max_cache_size=self.settings.max_cache_size,
            metrics=metrics,
        )
        self._cache = cache or ResponseCache(
            ttl_s=self.settings.cache_ttl_s,
            stale_ttl_s=self.settings.stale_ttl_s,
        )
        self._token = self.settings.api_token

    @property
    def deduplicator(self) -> RequestDeduplicator:
        return self._dedup

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    def set_token(self, token: str | None) -> None:
        """Replace the bearer token used for subsequent requests."""
        self._token = token

    def auth_headers(self, *, json_body: bool = True) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if json_body:
            headers["Content-Type"] = "application/json"
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.settings.api_base_url.rstrip('/')}/{path.lstrip('/')}"

    # ------------------------------------------------------------------
    # Generic verbs
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: JSONValue = None,
        files: Any = None,
        params: Mapping[str, Any] | None = None,
        ttl_s: float | None = None,
        retry: bool = True,
    ) -> JSONValue:
        """
        Issue one deduplicated JSON request.

        Transient failures (network errors, 5xx) are retried with linear
        backoff when ``retry`` is set.
        """
        options = RequestOptions(
            method=method,
            headers=self.auth_headers(json_body=files is None),
            json=json,
            files=files,
            params=params,
        )
        url = self.url(path)

        async def _once() -> JSONValue:
            return await self._dedup.execute(url, options, ttl_s)

        if not retry:
            return await _once()
        return await call_with_retry(
            _once,
            max_retries=self.settings.max_retries,
            delay_s=self.settings.retry_delay_s,
        )

    async def get(
        self,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        ttl_s: float | None = None,
    ) -> JSONValue:
        return await self.request("GET", path, params=params, ttl_s=ttl_s)

    async def get_cached(
        self,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        ttl_s: float | None = None,
        cache_ttl_s: float | None = None,
        stale_while_revalidate: bool = True,
    ) -> JSONValue:
        """``get`` served through the response cache."""
        return await self._cache.get_or_fetch(
            cache_key(path, params),
            lambda: self.get(path, params=params, ttl_s=ttl_s),
            ttl_s=cache_ttl_s,
            stale_while_revalidate=stale_while_revalidate,
        )

    async def mutate(
        self,
        method: str,
        path: str,
        *,
        json: JSONValue = None,
        files: Any = None,
        invalidate: Iterable[str] = (),
    ) -> JSONValue:
        """Send a mutating request, then drop cached reads matching ``invalidate``."""
        result = await self.request(method, path, json=json, files=files, retry=False)
        for pattern in invalidate:
            self._cache.clear(pattern)
        return result

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def list_datasets(self) -> list[dict[str, JSONValue]]:
        result = await self.get_cached("/datasets/list")
        return _items(result, "datasets")

    async def get_training_jobs(
        self, status: str | None = None, *, ttl_s: float = JOBS_TTL_S
    ) -> list[dict[str, JSONValue]]:
        """Return job payloads, optionally filtered by ``status``."""
        params = {"status": status} if status else None
        result = await self.get("/datasets/train/jobs", params=params, ttl_s=ttl_s)
        return _items(result, "jobs")

    async def get_training_job(self, job_id: str) -> dict[str, JSONValue]:
        result = await self.get(f"/datasets/train/jobs/{job_id}")
        return result if isinstance(result, dict) else {}

    async def create_training_job(self, config: Mapping[str, JSONValue]) -> JSONValue:
        return await self.mutate(
            "POST",
            "/datasets/train/cloud",
            json=dict(config),
            invalidate=("/datasets/train/jobs",),
        )

    async def cancel_training_job(self, job_id: str) -> JSONValue:
        return await self.mutate(
            "POST",
            f"/datasets/train/jobs/{job_id}/cancel",
            invalidate=("/datasets/train/jobs",),
        )

    async def delete_training_job(self, job_id: str) -> JSONValue:
        return await self.mutate(
            "DELETE",
            f"/datasets/train/jobs/{job_id}",
            invalidate=("/datasets/train/jobs",),
        )

    async def get_models(self, *, ttl_s: float = MODELS_TTL_S) -> list[dict[str, JSONValue]]:
        result = await self.get("/datasets/models", ttl_s=ttl_s)
        return _items(result, "models")

    async def rename_model(self, model_id: int | str, name: str) -> JSONValue:
        return await self.mutate(
            "PUT",
            f"/datasets/models/{model_id}/rename",
            json={"name": name.strip()},
            invalidate=("/datasets/models",),
        )

    async def delete_model(self, model_id: int | str) -> JSONValue:
        return await self.mutate(
            "DELETE",
            f"/datasets/models/{model_id}",
            invalidate=("/datasets/models",),
        )

    async def download_model(self, model_id: int | str) -> bytes:
        """Download model artifact bytes. Binary, so not deduplicated."""
        url = self.url(f"/datasets/models/{model_id}/download")
        headers = self.auth_headers(json_body=False)
        headers["Accept"] = "application/octet-stream"
        try:
            response = await self._http.get(url, headers=headers)
        except httpx.HTTPError as exc:
            raise NetworkError(f"Network error calling {url}: {exc}") from exc
        raise_for_response(response)
        logger.info("Downloaded model %s (%d bytes)", model_id, len(response.content))
        return response.content

    async def upload_dataset_files(
        self, dataset_id: int | str, files: Any
    ) -> JSONValue:
        """Upload files to a dataset; multipart bodies never share a request."""
        return await self.mutate(
            "POST",
            f"/datasets/{dataset_id}/files",
            files=files,
            invalidate=("/datasets",),
        )

    async def get_files(
        self,
        *,
        limit: int | None = None,
        offset: int | None = None,
        device_id: str | None = None,
        content_type: str | None = None,
        ttl_s: float = FILES_TTL_S,
    ) -> list[dict[str, JSONValue]]:
        params: dict[str, Any] = {}
        if limit:
            params["limit"] = limit
        if offset:
            params["offset"] = offset
        if device_id:
            params["device_id"] = device_id
        if content_type:
            params["content_type"] = content_type
        result = await self.get("/file/files", params=params or None, ttl_s=ttl_s)
        return _items(result, "files")

    async def get_devices(self, *, ttl_s: float = DEVICES_TTL_S) -> list[dict[str, JSONValue]]:
        result = await self.get("/device/devices", ttl_s=ttl_s)
        return _items(result, "devices")

    def clear_cache(self) -> None:
        """Forget cached reads and pending request entries."""
        self._cache.clear()
        self._dedup.clear()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()


def _items(result: JSONValue, key: str) -> list[dict[str, JSONValue]]:
    """Extract ``result[key]`` (or a bare list) as a list of objects."""
    if isinstance(result, dict):
        result = result.get(key)
    if not isinstance(result, list):
        return []
    return [item for item in result if isinstance(item, dict)]
