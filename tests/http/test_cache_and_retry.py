from __future__ import annotations

import asyncio

import pytest

from trainwatch.errors import NetworkError, RequestError
from trainwatch.http import ResponseCache, cache_key, call_with_retry, is_transient


def run_async(coro):
    return asyncio.run(coro)


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_fresh_entries_are_served_without_fetching():
    async def scenario() -> None:
        clock = _FakeClock()
        cache = ResponseCache(ttl_s=30, stale_ttl_s=60, clock=clock)
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            return {"n": calls}

        assert await cache.get_or_fetch("/models", fetch) == {"n": 1}
        clock.now = 29
        assert await cache.get_or_fetch("/models", fetch) == {"n": 1}
        assert calls == 1

    run_async(scenario())


def test_stale_entry_is_returned_while_one_background_refresh_runs():
    async def scenario() -> None:
        clock = _FakeClock()
        cache = ResponseCache(ttl_s=30, stale_ttl_s=60, clock=clock)
        calls = 0

        async def fetch():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return {"n": calls}

        await cache.get_or_fetch("/jobs", fetch)
        clock.now = 45
        first = await cache.get_or_fetch("/jobs", fetch)
        second = await cache.get_or_fetch("/jobs", fetch)
        assert first == second == {"n": 1}

        await cache.wait_revalidations()
        assert calls == 2
        assert cache.get("/jobs") == {"n": 2}

    run_async(scenario())


def test_expired_entry_is_fetched_in_foreground():
    async def scenario() -> None:
        clock = _FakeClock()
        cache = ResponseCache(ttl_s=30, stale_ttl_s=60, clock=clock)
        values = iter([{"v": 1}, {"v": 2}])

        async def fetch():
            return next(values)

        await cache.get_or_fetch("/jobs", fetch)
        clock.now = 61
        assert await cache.get_or_fetch("/jobs", fetch) == {"v": 2}

    run_async(scenario())


def test_background_refresh_failure_keeps_stale_value():
    async def scenario() -> None:
        clock = _FakeClock()
        cache = ResponseCache(ttl_s=1, stale_ttl_s=60, clock=clock)
        cache.set("/jobs", {"v": "old"})

        async def failing():
            raise NetworkError("offline")

        clock.now = 5
        assert await cache.get_or_fetch("/jobs", failing) == {"v": "old"}
        await cache.wait_revalidations()
        clock.now = 5.5
        assert cache.get("/jobs", ttl_s=100) == {"v": "old"}

    run_async(scenario())


def test_clear_by_pattern_and_invalidate():
    cache = ResponseCache()
    cache.set("/datasets/train/jobs", [])
    cache.set("/datasets/train/jobs?status=running", [])
    cache.set("/datasets/models", [])

    cache.clear("/train/jobs")
    assert len(cache) == 1
    cache.invalidate("/datasets/models")
    assert len(cache) == 0


def test_cache_key_sorts_params():
    assert cache_key("/file/files") == "/file/files"
    assert cache_key("/file/files", {"offset": 10, "limit": 5}) == "/file/files?limit=5&offset=10"


def test_retry_recovers_from_transient_server_errors():
    async def scenario() -> None:
        attempts = 0

        async def flaky():
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise RequestError("HTTP 503", status_code=503)
            return "ok"

        assert await call_with_retry(flaky, max_retries=3, delay_s=0) == "ok"
        assert attempts == 3

    run_async(scenario())


def test_retry_never_retries_client_errors():
    async def scenario() -> None:
        attempts = 0

        async def bad_request():
            nonlocal attempts
            attempts += 1
            raise RequestError("invalid", status_code=422)

        with pytest.raises(RequestError, match="invalid"):
            await call_with_retry(bad_request, max_retries=3, delay_s=0)
        assert attempts == 1

    run_async(scenario())


def test_retry_gives_up_after_max_retries():
    async def scenario() -> None:
        attempts = 0

        async def offline():
            nonlocal attempts
            attempts += 1
            raise NetworkError("down")

        with pytest.raises(NetworkError):
            await call_with_retry(offline, max_retries=2, delay_s=0)
        assert attempts == 3

    run_async(scenario())


def test_is_transient_classification():
    assert is_transient(NetworkError("x"))
    assert is_transient(RequestError("x", status_code=500))
    assert not is_transient(RequestError("x", status_code=404))
    assert not is_transient(ValueError("x"))


def test_invalidation_discards_refresh_already_in_flight():
    async def scenario() -> None:
        clock = _FakeClock()
        cache = ResponseCache(ttl_s=1, stale_ttl_s=60, clock=clock)
        cache.set("/datasets/list", {"v": "old"})
        gate = asyncio.Event()

        async def slow_fetch():
            await gate.wait()
            return {"v": "before mutation"}

        clock.now = 5
        assert await cache.get_or_fetch("/datasets/list", slow_fetch) == {"v": "old"}

        cache.clear("/datasets")
        gate.set()
        await cache.wait_revalidations()

        assert cache.get("/datasets/list", ttl_s=100) is None
        assert len(cache) == 0

    run_async(scenario())


def test_foreground_fetch_racing_invalidation_is_not_stored():
    async def scenario() -> None:
        cache = ResponseCache()
        gate = asyncio.Event()

        async def slow_fetch():
            await gate.wait()
            return {"v": 1}

        pending = asyncio.create_task(cache.get_or_fetch("/models", slow_fetch))
        await asyncio.sleep(0)
        cache.invalidate("/models")
        gate.set()

        assert await pending == {"v": 1}
        assert cache.get("/models") is None

    run_async(scenario())


def test_cache_key_encodes_param_values():
    assert cache_key("/f", {"a": "x&b=y"}) != cache_key("/f", {"a": "x", "b": "y"})
    assert cache_key("/f", {"q": "a b"}) == "/f?q=a+b"
