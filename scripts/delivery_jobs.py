#!/usr/bin/env python3
"""Operator tool for the delivery queue: inspect, requeue failed jobs, prune."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

from accessgate.core.config import AppConfig
from accessgate.core.database import SqliteDatabase
from accessgate.delivery.handlers import queue_settings_from_config
from accessgate.delivery.jobs import JobStatus
from accessgate.delivery.queue import DeliveryQueue
from web_api import resolve_state_path

DEFAULT_LIMIT = 50


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Inspect and manage delivery jobs.")
    parser.add_argument(
        "--database",
        type=Path,
        default=None,
        help="SQLite state file (defaults to STATE_SQLITE_PATH).",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    list_cmd = commands.add_parser("list", help="List jobs, failed ones by default.")
    list_cmd.add_argument(
        "--status",
        choices=[str(status) for status in JobStatus] + ["all"],
        default=str(JobStatus.FAILED),
    )
    list_cmd.add_argument("--limit", type=int, default=DEFAULT_LIMIT)

    requeue_cmd = commands.add_parser("requeue", help="Give failed jobs a fresh set of attempts.")
    requeue_cmd.add_argument("job_ids", nargs="+")

    commands.add_parser("prune", help="Delete completed jobs past the retention window.")
    commands.add_parser("counts", help="Print number of jobs per status.")
    return parser.parse_args(argv)


def run(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    config = AppConfig.from_env()
    database_path = args.database or resolve_state_path(config)
    db = SqliteDatabase(database_path)
    queue = DeliveryQueue(db, queue_settings_from_config(config.delivery))
    try:
        if args.command == "list":
            status = None if args.status == "all" else JobStatus(args.status)
            for job in queue.list_jobs(status, limit=args.limit):
                print(
                    json.dumps(
                        {
                            "job_id": job.job_id,
                            "idempotency_key": job.idempotency_key,
                            "kind": job.kind,
                            "status": str(job.status),
                            "attempts": job.attempts,
                            "last_error": job.last_error,
                        },
                        ensure_ascii=False,
                    )
                )
            return 0

        if args.command == "requeue":
            missing = [job_id for job_id in args.job_ids if not queue.requeue_failed(job_id)]
            for job_id in missing:
                print(f"not requeued (unknown or not failed): {job_id}", file=sys.stderr)
            return 1 if missing else 0

        if args.command == "prune":
            print(f"pruned {queue.prune_completed()} completed job(s)")
            return 0

        print(json.dumps(queue.counts()))
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    load_dotenv()
    sys.exit(run())
