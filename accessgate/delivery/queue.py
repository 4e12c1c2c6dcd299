"""Durable delivery queue with idempotent enqueue, leases, backoff and parking."""

from __future__ import annotations

import json
import logging
import sqlite3
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel

from accessgate.core.database import SqliteDatabase
from accessgate.delivery.jobs import EnqueueResult, Job, JobKind, JobStatus

LOGGER = logging.getLogger(__name__)

LEASE_EXPIRED_ERROR = "lease expired"
# Rows examined per claim before giving up on racing workers or parked jobs.
CLAIM_ROUNDS = 5


@dataclass(frozen=True)
class QueueSettings:
    """Queue retry, lease and retention policy."""

    max_attempts: int = 3
    backoff_base_seconds: float = 5.0
    lease_seconds: float = 60.0
    completed_retention_seconds: float = 60 * 60


def _row_to_job(row: sqlite3.Row) -> Job:
    try:
        decoded = json.loads(str(row["payload_json"]))
        payload = decoded if isinstance(decoded, dict) else {}
    except json.JSONDecodeError:
        payload = {}
    return Job(
        job_id=str(row["job_id"]),
        idempotency_key=str(row["idempotency_key"]),
        kind=str(row["kind"]),
        payload=payload,
        status=JobStatus(str(row["status"])),
        attempts=int(row["attempts"]),
        max_attempts=int(row["max_attempts"]),
        available_at=float(row["available_at"]),
        lease_owner=str(row["lease_owner"] or ""),
        lease_expires_at=float(row["lease_expires_at"] or 0),
        created_at=float(row["created_at"]),
        updated_at=float(row["updated_at"]),
        completed_at=(
            float(row["completed_at"]) if row["completed_at"] is not None else None
        ),
        last_error=str(row["last_error"] or ""),
    )


class DeliveryQueue:
    """SQLite-backed job store shared by producers and worker pools.

    Claims are conditional row updates, so several pools (or processes)
    can drain the same table. A claimed job carries a lease; if it is neither
    acked nor failed before the lease expires it becomes claimable again,
    which makes delivery at-least-once. Each expired lease costs an attempt.
    """

    def __init__(
        self,
        db: SqliteDatabase,
        settings: QueueSettings | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db
        self._settings = settings or QueueSettings()
        self._clock = clock

    @property
    def settings(self) -> QueueSettings:
        return self._settings

    def backoff_delay(self, attempts: int) -> float:
        """Delay before the next try after ``attempts`` failed attempts."""
        return self._settings.backoff_base_seconds * (2 ** max(0, attempts - 1))

    def enqueue(
        self,
        kind: JobKind | str,
        payload: dict[str, Any] | BaseModel,
        idempotency_key: str,
    ) -> EnqueueResult:
        """Create a job unless one with ``idempotency_key`` already exists."""
        job_kind = str(kind).strip().lower()
        if not job_kind:
            raise ValueError("kind is required")
        key = idempotency_key.strip()
        if not key:
            raise ValueError("idempotency_key is required")
        body = payload.model_dump() if isinstance(payload, BaseModel) else payload

        now = self._clock()
        job_id = uuid.uuid4().hex
        with self._db.transaction() as cursor:
            self._prune_completed(cursor, now)
            cursor.execute(
                """
                INSERT INTO delivery_jobs(
                  job_id,
                  idempotency_key,
                  kind,
                  payload_json,
                  status,
                  attempts,
                  max_attempts,
                  available_at,
                  created_at,
                  updated_at
                )
                VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?, ?)
                ON CONFLICT(idempotency_key) DO NOTHING
                """,
                (
                    job_id,
                    key,
                    job_kind,
                    json.dumps(body, ensure_ascii=False),
                    JobStatus.PENDING,
                    self._settings.max_attempts,
                    now,
                    now,
                    now,
                ),
            )
            if cursor.rowcount == 1:
                created = True
            else:
                existing = cursor.execute(
                    "SELECT job_id FROM delivery_jobs WHERE idempotency_key = ?",
                    (key,),
                ).fetchone()
                job_id = str(existing["job_id"])
                created = False

        if created:
            LOGGER.info("job_enqueued", extra={"job_id": job_id, "job_kind": job_kind})
        else:
            LOGGER.info(
                "job_enqueue_deduplicated",
                extra={"job_id": job_id, "job_kind": job_kind},
            )
        return EnqueueResult(job_id=job_id, created=created)

    def claim(self, worker_id: str) -> Job | None:
        """Lease one due pending job, or one whose lease has expired.

        An expired lease means the execution stalled (worker crashed or
        hung), which counts as a failed attempt. A stalled job that has used
        up its attempts is parked as failed instead of being handed out.
        """
        now = self._clock()
        lease_until = now + self._settings.lease_seconds
        claimed = None
        reclaimed = False
        parked: list[str] = []
        with self._db.transaction() as cursor:
            self._prune_completed(cursor, now)
            for _ in range(CLAIM_ROUNDS):
                row = cursor.execute(
                    """
                    SELECT job_id, status, attempts, max_attempts, lease_owner, lease_expires_at
                    FROM delivery_jobs
                    WHERE (status = ? AND available_at <= ?)
                       OR (status = ? AND lease_expires_at <= ?)
                    ORDER BY available_at ASC, created_at ASC
                    LIMIT 1
                    """,
                    (JobStatus.PENDING, now, JobStatus.ACTIVE, now),
                ).fetchone()
                if row is None:
                    break

                job_id = str(row["job_id"])
                stalled = str(row["status"]) == JobStatus.ACTIVE
                attempts = int(row["attempts"]) + (1 if stalled else 0)
                if stalled and attempts >= int(row["max_attempts"]):
                    next_status, next_owner, next_lease = JobStatus.FAILED, "", 0.0
                else:
                    next_status, next_owner, next_lease = JobStatus.ACTIVE, worker_id, lease_until
                cursor.execute(
                    """
                    UPDATE delivery_jobs
                    SET status = ?,
                        attempts = ?,
                        lease_owner = ?,
                        lease_expires_at = ?,
                        updated_at = ?,
                        last_error = CASE WHEN ? THEN ? ELSE last_error END
                    WHERE job_id = ?
                      AND status = ?
                      AND lease_owner = ?
                      AND lease_expires_at = ?
                    """,
                    (
                        next_status,
                        attempts,
                        next_owner,
                        next_lease,
                        now,
                        stalled,
                        LEASE_EXPIRED_ERROR,
                        job_id,
                        str(row["status"]),
                        str(row["lease_owner"] or ""),
                        row["lease_expires_at"],
                    ),
                )
                if cursor.rowcount != 1:
                    continue
                if next_status is JobStatus.FAILED:
                    parked.append(job_id)
                    continue
                reclaimed = stalled
                claimed = cursor.execute(
                    "SELECT * FROM delivery_jobs WHERE job_id = ?", (job_id,)
                ).fetchone()
                break

        for job_id in parked:
            LOGGER.error("job_failed: %s", LEASE_EXPIRED_ERROR, extra={"job_id": job_id})
        if claimed is None:
            return None
        job = _row_to_job(claimed)
        if reclaimed:
            LOGGER.warning(
                "job_lease_expired_reclaimed",
                extra={
                    "job_id": job.job_id,
                    "job_kind": job.kind,
                    "worker_id": worker_id,
                    "attempt": job.attempts + 1,
                },
            )
        return job

    def ack(self, job_id: str, worker_id: str) -> bool:
        """Mark a leased job completed. Returns ``False`` if the lease was lost."""
        now = self._clock()
        with self._db.transaction() as cursor:
            cursor.execute(
                """
                UPDATE delivery_jobs
                SET status = ?,
                    completed_at = ?,
                    updated_at = ?,
                    lease_owner = '',
                    lease_expires_at = 0,
                    last_error = ''
                WHERE job_id = ? AND status = ? AND lease_owner = ?
                """,
                (JobStatus.COMPLETED, now, now, job_id, JobStatus.ACTIVE, worker_id),
            )
            acked = cursor.rowcount == 1
        if not acked:
            LOGGER.warning(
                "job_ack_lease_lost", extra={"job_id": job_id, "worker_id": worker_id}
            )
        return acked

    def fail(
        self,
        job_id: str,
        worker_id: str,
        error: str,
        *,
        permanent: bool = False,
    ) -> Job | None:
        """Record a failed attempt and reschedule or park the job.

        Returns the updated job, or ``None`` if the caller no longer holds the
        lease.
        """
        now = self._clock()
        with self._db.transaction() as cursor:
            row = cursor.execute(
                """
                SELECT attempts, max_attempts
                FROM delivery_jobs
                WHERE job_id = ? AND status = ? AND lease_owner = ?
                """,
                (job_id, JobStatus.ACTIVE, worker_id),
            ).fetchone()
            if row is None:
                LOGGER.warning(
                    "job_fail_lease_lost",
                    extra={"job_id": job_id, "worker_id": worker_id},
                )
                return None

            attempts = int(row["attempts"]) + 1
            if not permanent and attempts < int(row["max_attempts"]):
                next_status = JobStatus.PENDING
                available_at = now + self.backoff_delay(attempts)
            else:
                next_status = JobStatus.FAILED
                available_at = None
            # Guarded on the lease so a reclaim between the read and the
            # write is not overwritten.
            cursor.execute(
                """
                UPDATE delivery_jobs
                SET status = ?,
                    attempts = ?,
                    available_at = COALESCE(?, available_at),
                    updated_at = ?,
                    lease_owner = '',
                    lease_expires_at = 0,
                    last_error = ?
                WHERE job_id = ? AND status = ? AND lease_owner = ?
                """,
                (
                    next_status,
                    attempts,
                    available_at,
                    now,
                    error,
                    job_id,
                    JobStatus.ACTIVE,
                    worker_id,
                ),
            )
            if cursor.rowcount != 1:
                LOGGER.warning(
                    "job_fail_lease_lost",
                    extra={"job_id": job_id, "worker_id": worker_id},
                )
                return None
            updated = cursor.execute(
                "SELECT * FROM delivery_jobs WHERE job_id = ?", (job_id,)
            ).fetchone()
        return _row_to_job(updated)

    def get(self, job_id: str) -> Job | None:
        with self._db.transaction() as cursor:
            row = cursor.execute(
                "SELECT * FROM delivery_jobs WHERE job_id = ?", (job_id,)
            ).fetchone()
        return _row_to_job(row) if row else None

    def get_by_key(self, idempotency_key: str) -> Job | None:
        with self._db.transaction() as cursor:
            row = cursor.execute(
                "SELECT * FROM delivery_jobs WHERE idempotency_key = ?",
                (idempotency_key.strip(),),
            ).fetchone()
        return _row_to_job(row) if row else None

    def list_jobs(self, status: JobStatus | None = None, *, limit: int = 100) -> list[Job]:
        """List jobs, newest first, optionally filtered by status."""
        with self._db.transaction() as cursor:
            if status is None:
                rows = cursor.execute(
                    "SELECT * FROM delivery_jobs ORDER BY created_at DESC LIMIT ?",
                    (limit,),
                ).fetchall()
            else:
                rows = cursor.execute(
                    """
                    SELECT * FROM delivery_jobs
                    WHERE status = ?
                    ORDER BY created_at DESC
                    LIMIT ?
                    """,
                    (str(status), limit),
                ).fetchall()
        return [_row_to_job(row) for row in rows]

    def counts(self) -> dict[str, int]:
        """Return number of jobs per status."""
        with self._db.transaction() as cursor:
            rows = cursor.execute(
                "SELECT status, COUNT(*) AS total FROM delivery_jobs GROUP BY status"
            ).fetchall()
        totals = {str(status): 0 for status in JobStatus}
        for row in rows:
            totals[str(row["status"])] = int(row["total"])
        return totals

    def requeue_failed(self, job_id: str) -> bool:
        """Operator action: give a failed job a fresh set of attempts."""
        now = self._clock()
        with self._db.transaction() as cursor:
            cursor.execute(
                """
                UPDATE delivery_jobs
                SET status = ?, attempts = 0, available_at = ?, updated_at = ?
                WHERE job_id = ? AND status = ?
                """,
                (JobStatus.PENDING, now, now, job_id, JobStatus.FAILED),
            )
            requeued = cursor.rowcount == 1
        if requeued:
            LOGGER.info("job_requeued", extra={"job_id": job_id})
        return requeued

    def prune_completed(self) -> int:
        """Delete completed jobs older than the retention window."""
        with self._db.transaction() as cursor:
            return self._prune_completed(cursor, self._clock())

    def _prune_completed(self, cursor: sqlite3.Cursor, now: float) -> int:
        cursor.execute(
            """
            DELETE FROM delivery_jobs
            WHERE status = ? AND completed_at <= ?
            """,
            (JobStatus.COMPLETED, now - self._settings.completed_retention_seconds),
        )
        return cursor.rowcount
