from __future__ import annotations

import pytest

from trainwatch.jobs import PollingConfig
from trainwatch.metrics import NoOpClientMetrics, PrometheusClientMetrics
from trainwatch.settings import ClientSettings


def test_settings_defaults():
    settings = ClientSettings()
    assert settings.dedupe_ttl_s == 5.0
    assert settings.max_cache_size == 100
    assert settings.realtime_backend == "none"
    assert PollingConfig.from_settings(settings) == PollingConfig(3.0, 10.0, 30.0)


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("TRAINWATCH_API_BASE_URL", "https://ml.example.com")
    monkeypatch.setenv("TRAINWATCH_API_TOKEN", "secret")
    monkeypatch.setenv("TRAINWATCH_DEDUPE_TTL_S", "2.5")
    monkeypatch.setenv("TRAINWATCH_MAX_CACHE_SIZE", "10")
    monkeypatch.setenv("TRAINWATCH_FAST_POLL_S", "1")
    monkeypatch.setenv("TRAINWATCH_REALTIME_BACKEND", " Redis ")
    monkeypatch.setenv("TRAINWATCH_REALTIME_REDIS_URL", "redis://localhost:6379/0")

    settings = ClientSettings.from_env()

    assert settings.api_base_url == "https://ml.example.com"
    assert settings.api_token == "secret"
    assert settings.dedupe_ttl_s == 2.5
    assert settings.max_cache_size == 10
    assert settings.fast_poll_interval_s == 1.0
    assert settings.realtime_backend == "redis"
    assert settings.realtime_redis_url == "redis://localhost:6379/0"


def test_empty_token_env_means_no_token(monkeypatch):
    monkeypatch.setenv("TRAINWATCH_API_TOKEN", "")
    assert ClientSettings.from_env().api_token is None


def test_noop_metrics_accepts_anything():
    NoOpClientMetrics().incr("anything", 3, tags={"a": "b"})


def test_prometheus_metrics_use_private_registry():
    prometheus_client = pytest.importorskip("prometheus_client")
    registry = prometheus_client.CollectorRegistry()
    metrics = PrometheusClientMetrics(registry=registry)

    metrics.incr("dedup_hits_total")
    metrics.incr("dedup_hits_total", 2)
    metrics.incr("reconciler_push_events_total", tags={"kind": "update"})

    assert registry.get_sample_value("trainwatch_dedup_hits_total") == 3.0
    assert (
        registry.get_sample_value(
            "trainwatch_reconciler_push_events_total", {"kind": "update"}
        )
        == 1.0
    )
