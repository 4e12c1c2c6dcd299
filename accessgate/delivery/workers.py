"""Bounded pool of asyncio consumers draining the delivery queue."""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from typing import Any, Awaitable, Callable, Iterable

from pydantic import BaseModel

from accessgate.core.logging import correlation_scope
from accessgate.delivery.jobs import (
    Job,
    JobKind,
    JobStatus,
    PermanentError,
    UnknownJobKind,
    parse_job_kind,
    parse_job_payload,
)
from accessgate.delivery.queue import DeliveryQueue

LOGGER = logging.getLogger(__name__)

JobHandler = Callable[[BaseModel], Awaitable[Any]]


class JobOutcome(StrEnum):
    """What a single execution decided for a job."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    RETRYABLE = "retryable"
    PERMANENT = "permanent"


class DeliveryObserver:
    """Receives pool lifecycle events. Override the events you need."""

    def on_active(self, job: Job) -> None:
        pass

    def on_completed(self, job: Job) -> None:
        pass

    def on_failed(self, job: Job, error: str, will_retry: bool) -> None:
        pass

    def on_error(self, error: BaseException) -> None:
        pass

    def on_drained(self) -> None:
        pass


class LoggingObserver(DeliveryObserver):
    """Default observer writing one structured log line per event."""

    def on_active(self, job: Job) -> None:
        LOGGER.info(
            "job_active",
            extra={"job_id": job.job_id, "job_kind": job.kind, "attempt": job.attempts + 1},
        )

    def on_completed(self, job: Job) -> None:
        LOGGER.info("job_completed", extra={"job_id": job.job_id, "job_kind": job.kind})

    def on_failed(self, job: Job, error: str, will_retry: bool) -> None:
        extra = {"job_id": job.job_id, "job_kind": job.kind, "attempt": job.attempts}
        if will_retry:
            LOGGER.warning("job_retry_scheduled: %s", error, extra=extra)
        else:
            LOGGER.error("job_failed: %s", error, extra=extra)

    def on_error(self, error: BaseException) -> None:
        LOGGER.error("worker_error: %s", error)

    def on_drained(self) -> None:
        LOGGER.info("queue_drained")


class WorkerPool:
    """Fixed number of consumers: claim, dispatch by kind, ack or fail.

    Handler exceptions are retryable unless they are ``PermanentError``.
    Errors from the queue itself (claim/ack/fail raising) are infrastructure
    failures: they are reported through ``on_error``, stored as
    :attr:`fatal_error`, and stop the pool.
    """

    def __init__(
        self,
        queue: DeliveryQueue,
        *,
        concurrency: int = 5,
        poll_interval_seconds: float = 0.5,
        job_timeout_seconds: float = 30.0,
        observers: Iterable[DeliveryObserver] | None = None,
        name: str = "delivery",
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._queue = queue
        self._concurrency = concurrency
        self._poll_interval_seconds = poll_interval_seconds
        self._job_timeout_seconds = job_timeout_seconds
        self._name = name
        self._handlers: dict[JobKind, JobHandler] = {}
        self._observers: list[DeliveryObserver] = (
            list(observers) if observers is not None else [LoggingObserver()]
        )
        self._tasks: list[asyncio.Task[None]] = []
        self._stop_event: asyncio.Event | None = None
        self._in_flight = 0
        self._drained = True
        self.fatal_error: BaseException | None = None

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def on_job(self, kind: JobKind | str, handler: JobHandler) -> None:
        """Register the async handler for ``kind``."""
        self._handlers[parse_job_kind(str(kind))] = handler

    def subscribe(self, observer: DeliveryObserver) -> None:
        self._observers.append(observer)

    async def start(self) -> None:
        """Start consumers if not already running."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self.fatal_error = None
        self._tasks = [
            asyncio.create_task(
                self._consume(f"{self._name}-{index}"),
                name=f"{self._name}-{index}",
            )
            for index in range(self._concurrency)
        ]
        LOGGER.info("worker_pool_started")

    async def stop(self, grace_seconds: float = 10.0) -> None:
        """Stop claiming, wait for in-flight jobs up to ``grace_seconds``, then cancel."""
        if self._stop_event is not None:
            self._stop_event.set()
        if not self._tasks:
            return
        _, pending = await asyncio.wait(self._tasks, timeout=grace_seconds)
        if pending:
            LOGGER.warning("worker_pool_grace_expired_cancelling_in_flight_jobs")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks = []
        LOGGER.info("worker_pool_stopped")

    async def wait_stopped(self) -> None:
        """Return once the pool has been asked to stop (by caller or by a fatal error)."""
        if self._stop_event is None:
            return
        await self._stop_event.wait()

    async def run_once(self, worker_id: str) -> bool:
        """Claim and process at most one job. Returns whether a job was found."""
        job = self._queue.claim(worker_id)
        if job is None:
            return False

        self._in_flight += 1
        self._drained = False
        try:
            with correlation_scope(job.idempotency_key):
                self._notify("on_active", job)
                outcome, error = await self._execute(job)
                self._settle(job, worker_id, outcome, error)
        finally:
            self._in_flight -= 1
        return True

    async def _consume(self, worker_id: str) -> None:
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            try:
                processed = await self.run_once(worker_id)
            except Exception as exc:
                LOGGER.exception("worker_infrastructure_failure", extra={"worker_id": worker_id})
                self.fatal_error = exc
                self._notify("on_error", exc)
                self._stop_event.set()
                return

            if processed:
                continue
            if not self._drained and self._in_flight == 0:
                self._drained = True
                self._notify("on_drained")
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self._poll_interval_seconds,
                )
            except asyncio.TimeoutError:
                continue

    async def _execute(self, job: Job) -> tuple[JobOutcome, str]:
        """Run the handler for ``job`` and reduce the result to an outcome."""
        try:
            kind = parse_job_kind(job.kind)
        except UnknownJobKind as exc:
            LOGGER.warning(
                "job_kind_unknown_skipped",
                extra={"job_id": job.job_id, "job_kind": job.kind},
            )
            return JobOutcome.SKIPPED, str(exc)

        handler = self._handlers.get(kind)
        if handler is None:
            LOGGER.warning(
                "job_handler_missing_skipped",
                extra={"job_id": job.job_id, "job_kind": job.kind},
            )
            return JobOutcome.SKIPPED, f"No handler registered for {kind}"

        try:
            payload = parse_job_payload(kind, job.payload)
            await asyncio.wait_for(handler(payload), timeout=self._job_timeout_seconds)
        except PermanentError as exc:
            return JobOutcome.PERMANENT, str(exc) or exc.__class__.__name__
        except asyncio.TimeoutError:
            return JobOutcome.RETRYABLE, f"Job timed out after {self._job_timeout_seconds}s"
        except Exception as exc:
            return JobOutcome.RETRYABLE, str(exc) or exc.__class__.__name__
        return JobOutcome.COMPLETED, ""

    def _settle(self, job: Job, worker_id: str, outcome: JobOutcome, error: str) -> None:
        if outcome in (JobOutcome.COMPLETED, JobOutcome.SKIPPED):
            if self._queue.ack(job.job_id, worker_id):
                self._notify("on_completed", job)
            return

        updated = self._queue.fail(
            job.job_id,
            worker_id,
            error,
            permanent=outcome is JobOutcome.PERMANENT,
        )
        if updated is None:
            return
        will_retry = updated.status is not JobStatus.FAILED
        self._notify("on_failed", updated, error, will_retry)

    def _notify(self, event: str, *args: Any) -> None:
        for observer in self._observers:
            try:
                getattr(observer, event)(*args)
            except Exception:
                LOGGER.exception("delivery_observer_failed")
