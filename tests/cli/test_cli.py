from __future__ import annotations

import asyncio

import httpx
import pytest

from trainwatch.__main__ import build_parser, format_job, watch
from trainwatch.api import ApiClient
from trainwatch.jobs import JobRecord
from trainwatch.settings import ClientSettings


def test_parser_requires_user_id():
    args = build_parser().parse_args(["watch", "--user-id", "7", "--once"])
    assert args.command == "watch"
    assert args.user_id == "7"
    assert args.once

    with pytest.raises(SystemExit):
        build_parser().parse_args(["watch"])


def test_format_job_shows_progress():
    running = JobRecord(job_id="abc", status="running", current_epoch=2, total_epochs=10)
    assert format_job(running).split() == ["abc", "running", "epoch", "2/10"]
    assert format_job(JobRecord(job_id="q")).split() == ["q", "pending", "epoch", "-"]


def test_watch_once_prints_current_jobs(capsys):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"jobs": [{"job_id": "abc", "status": "running", "total_epochs": 4}]},
        )

    settings = ClientSettings(api_base_url="http://api.test")
    api = ApiClient(
        settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )

    assert asyncio.run(watch(settings, "7", once=True, api=api)) == 0

    out = capsys.readouterr().out
    assert "1 job(s)" in out
    assert "abc" in out
    assert "0/4" in out
