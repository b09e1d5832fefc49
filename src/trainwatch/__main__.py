"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Command-line job monitor.

Usage::

    TRAINWATCH_API_TOKEN=... python -m trainwatch watch --user-id 7
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .api import ApiClient
from .jobs import JobReconciler, JobRecord, PollingConfig
from .realtime import create_push_channel
from .settings import ClientSettings

logger = logging.getLogger("trainwatch.cli")


def format_job(job: JobRecord) -> str:
    progress = f"{job.current_epoch}/{job.total_epochs}" if job.total_epochs else "-"
    return f"{job.job_id:<36} {job.status:<10} epoch {progress}"


def _print_jobs(jobs: tuple[JobRecord, ...]) -> None:
    print(f"--- {len(jobs)} job(s)")
    for job in jobs:
        print(format_job(job))


async def watch(
    settings: ClientSettings,
    user_id: str,
    *,
    once: bool,
    api: ApiClient | None = None,
) -> int:
    api = api or ApiClient(settings)
    channel = create_push_channel(settings)
    reconciler = JobReconciler(
        api.get_training_jobs,
        channel=channel,
        api=api,
        config=PollingConfig.from_settings(settings),
        on_change=None if once else _print_jobs,
    )
    try:
        await reconciler.activate(user_id)
        logger.info("Watching jobs for user %s (mode=%s)", user_id, reconciler.state)
        if once:
            _print_jobs(reconciler.jobs)
            return 0
        while True:
            await asyncio.sleep(3600)
    finally:
        await reconciler.deactivate()
        if channel is not None:
            await channel.aclose()
        await api.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="trainwatch")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    watch_cmd = sub.add_parser("watch", help="Follow training jobs for a user")
    watch_cmd.add_argument("--user-id", required=True)
    watch_cmd.add_argument(
        "--once", action="store_true", help="Fetch once, print and exit"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = ClientSettings.from_env()
    try:
        return asyncio.run(watch(settings, args.user_id, once=args.once))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
