"""Job handlers and worker pool assembly."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from pydantic import BaseModel

from accessgate.core.config import DeliveryConfig
from accessgate.delivery.jobs import EmailPayload, JobKind, PermanentError
from accessgate.delivery.mailer import Mailer
from accessgate.delivery.queue import DeliveryQueue, QueueSettings
from accessgate.delivery.workers import DeliveryObserver, JobHandler, WorkerPool

LOGGER = logging.getLogger(__name__)


def build_email_handler(mailer: Mailer) -> JobHandler:
    """Handler that hands an :class:`EmailPayload` to ``mailer`` off the event loop."""

    async def send_email(payload: BaseModel) -> str:
        if not isinstance(payload, EmailPayload):
            raise PermanentError(f"Expected email payload, got {type(payload).__name__}")
        message_id = await asyncio.to_thread(
            mailer.send, payload.to, payload.subject, payload.html
        )
        LOGGER.info(
            "email_delivered",
            extra={"account_id": getattr(payload, "account_id", "")},
        )
        return message_id

    return send_email


def queue_settings_from_config(config: DeliveryConfig) -> QueueSettings:
    return QueueSettings(
        max_attempts=config.max_attempts,
        backoff_base_seconds=config.backoff_base_seconds,
        lease_seconds=config.lease_seconds,
        completed_retention_seconds=config.completed_retention_seconds,
    )


def build_worker_pool(
    queue: DeliveryQueue,
    mailer: Mailer,
    config: DeliveryConfig,
    *,
    observers: Iterable[DeliveryObserver] | None = None,
    name: str = "delivery",
) -> WorkerPool:
    """Create a pool with every known job kind wired to its handler."""
    pool = WorkerPool(
        queue,
        concurrency=config.concurrency,
        poll_interval_seconds=config.poll_interval_seconds,
        job_timeout_seconds=config.job_timeout_seconds,
        observers=observers,
        name=name,
    )
    pool.on_job(JobKind.VERIFICATION_EMAIL, build_email_handler(mailer))
    return pool
