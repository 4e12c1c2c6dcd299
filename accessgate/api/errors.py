"""Shared API error types and helpers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi import HTTPException


class ApiErrorCode(StrEnum):
    """Machine-readable API error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_MISSING_TOKEN = "AUTH_MISSING_TOKEN"
    AUTH_INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"
    AUTH_TOKEN_INVALID = "AUTH_TOKEN_INVALID"
    AUTH_TOKEN_EXPIRED = "AUTH_TOKEN_EXPIRED"
    AUTH_REFRESH_REJECTED = "AUTH_REFRESH_REJECTED"
    ACCOUNT_CONFLICT = "ACCOUNT_CONFLICT"
    VERIFICATION_INVALID_TOKEN = "VERIFICATION_INVALID_TOKEN"
    VERIFICATION_TOKEN_EXPIRED = "VERIFICATION_TOKEN_EXPIRED"
    VERIFICATION_ALREADY_VERIFIED = "VERIFICATION_ALREADY_VERIFIED"
    VERIFICATION_TOKEN_MISMATCH = "VERIFICATION_TOKEN_MISMATCH"
    REQUEST_TOO_LARGE = "REQUEST_TOO_LARGE"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ApiError(HTTPException):
    """HTTP exception carrying stable API error envelope."""

    def __init__(
        self, *, status_code: int, error_code: ApiErrorCode, message: str
    ) -> None:
        """Build an HTTP exception with standard detail structure."""
        super().__init__(
            status_code=status_code,
            detail={"error_code": str(error_code), "message": message},
        )
        self.error_code = error_code
        self.message = message


class ValidationError(ApiError):
    """Caller input is malformed (400). Never retried."""

    def __init__(
        self,
        message: str,
        *,
        error_code: ApiErrorCode = ApiErrorCode.VALIDATION_ERROR,
    ) -> None:
        super().__init__(status_code=400, error_code=error_code, message=message)


class AuthError(ApiError):
    """Bad credentials or rejected token (401/403) with a generic message."""

    def __init__(
        self,
        message: str = "Unauthorized",
        *,
        status_code: int = 401,
        error_code: ApiErrorCode = ApiErrorCode.AUTH_INVALID_CREDENTIALS,
    ) -> None:
        super().__init__(status_code=status_code, error_code=error_code, message=message)


class ConflictError(ApiError):
    """Duplicate resource (409)."""

    def __init__(
        self,
        message: str,
        *,
        error_code: ApiErrorCode = ApiErrorCode.ACCOUNT_CONFLICT,
    ) -> None:
        super().__init__(status_code=409, error_code=error_code, message=message)


def to_error_payload(detail: Any, status_code: int) -> dict[str, str]:
    """Normalize HTTP exception detail into stable error payload."""
    if isinstance(detail, dict):
        error_code = str(detail.get("error_code") or f"HTTP_{status_code}")
        message = str(detail.get("message") or detail.get("detail") or "HTTP error")
        return {"error_code": error_code, "message": message}
    return {
        "error_code": f"HTTP_{status_code}",
        "message": str(detail or "HTTP error"),
    }
