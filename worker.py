"""Standalone delivery worker process.

Drains the delivery queue until SIGINT/SIGTERM, then stops claiming, lets
in-flight jobs finish within the grace period and exits. Exits with status 1
if the pool stopped because of an infrastructure failure.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

from dotenv import load_dotenv

from accessgate.core.config import AppConfig
from accessgate.core.database import SqliteDatabase
from accessgate.core.logging import setup_logging
from accessgate.delivery.handlers import build_worker_pool, queue_settings_from_config
from accessgate.delivery.mailer import Mailer, build_mailer
from accessgate.delivery.queue import DeliveryQueue
from web_api import resolve_state_path

LOGGER = logging.getLogger(__name__)


async def run_worker(
    config: AppConfig,
    *,
    mailer: Mailer | None = None,
    stop_event: asyncio.Event | None = None,
) -> int:
    """Run a worker pool until ``stop_event`` is set or the pool fails."""
    db = SqliteDatabase(resolve_state_path(config))
    queue = DeliveryQueue(db, queue_settings_from_config(config.delivery))
    pool = build_worker_pool(queue, mailer or build_mailer(config.mail), config.delivery)

    stop = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            LOGGER.warning("signal_handler_unavailable: %s", sig.name)

    await pool.start()
    LOGGER.info("worker_process_started")
    stop_waiter = asyncio.create_task(stop.wait())
    pool_waiter = asyncio.create_task(pool.wait_stopped())
    try:
        await asyncio.wait({stop_waiter, pool_waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stop_waiter.cancel()
        pool_waiter.cancel()
        LOGGER.info("worker_process_shutting_down")
        await pool.stop(config.delivery.shutdown_grace_seconds)
        db.close()

    if pool.fatal_error is not None:
        LOGGER.error("worker_process_exiting_after_failure: %s", pool.fatal_error)
        return 1
    return 0


def main() -> None:
    load_dotenv()
    config = AppConfig.from_env()
    setup_logging(config.logging.level)
    sys.exit(asyncio.run(run_worker(config)))


if __name__ == "__main__":
    main()
