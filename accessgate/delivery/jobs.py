"""Job records, job kinds with typed payloads, and delivery errors."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PayloadValidationError


class JobStatus(StrEnum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class JobKind(StrEnum):
    """Known job kinds. Each kind has exactly one payload model."""

    VERIFICATION_EMAIL = "verification_email"


class DeliveryError(Exception):
    """Base class for errors raised while processing a job."""


class TransientDeliveryError(DeliveryError):
    """Downstream mail/network failure; the job is retried per policy."""


class PermanentError(DeliveryError):
    """Retrying is futile; the job is parked as failed immediately."""


class UnknownJobKind(DeliveryError):
    """Job kind is not one of :class:`JobKind`."""


class EmailPayload(BaseModel):
    """Rendered email ready to hand to the mailer."""

    model_config = ConfigDict(extra="forbid")

    to: str = Field(min_length=3)
    subject: str = Field(min_length=1)
    html: str = Field(min_length=1)


class VerificationEmailPayload(EmailPayload):
    account_id: str = Field(min_length=1)


PAYLOAD_MODELS: dict[JobKind, type[BaseModel]] = {
    JobKind.VERIFICATION_EMAIL: VerificationEmailPayload,
}


def parse_job_kind(kind: str) -> JobKind:
    """Map a stored kind tag to :class:`JobKind`, raising ``UnknownJobKind``."""
    try:
        return JobKind(kind.strip().lower())
    except ValueError as exc:
        raise UnknownJobKind(f"Unknown job kind: {kind!r}") from exc


def parse_job_payload(kind: JobKind, payload: dict[str, Any]) -> BaseModel:
    """Validate a raw payload against the model for ``kind``.

    A payload that does not match is a ``PermanentError``: no retry can fix it.
    """
    model = PAYLOAD_MODELS[kind]
    try:
        return model.model_validate(payload)
    except PayloadValidationError as exc:
        raise PermanentError(f"Invalid payload for {kind}: {exc.error_count()} error(s)") from exc


class Job(BaseModel):
    """Persisted delivery job."""

    job_id: str
    idempotency_key: str
    kind: str
    payload: dict[str, Any]
    status: JobStatus
    attempts: int
    max_attempts: int
    available_at: float
    lease_owner: str = ""
    lease_expires_at: float = 0.0
    created_at: float
    updated_at: float
    completed_at: float | None = None
    last_error: str = ""


class EnqueueResult(BaseModel):
    """Outcome of an enqueue: the job id, and whether a new job was created."""

    job_id: str
    created: bool
