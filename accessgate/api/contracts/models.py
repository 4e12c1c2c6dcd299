"""Pydantic API response models used in OpenAPI contracts."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from accessgate.auth.models import AccountSummary


class ApiErrorResponse(BaseModel):
    """Stable error envelope for API responses."""

    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")


class HealthResponse(BaseModel):
    """Health check response payload."""

    status: Literal["ok"]


class SignupResponse(BaseModel):
    """Signup response payload."""

    message: str
    user: AccountSummary


class LoginResponse(BaseModel):
    """Login response; the refresh token travels in an HttpOnly cookie."""

    message: str
    user: AccountSummary
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class AccessTokenResponse(BaseModel):
    """Refresh response payload."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class AuthMeResponse(BaseModel):
    """Current account endpoint response payload."""

    user: AccountSummary


class StatusMessageResponse(BaseModel):
    """Generic acknowledgement payload."""

    status: Literal["ok", "accepted"]
    message: str


class LogoutResponse(BaseModel):
    """Logout response payload."""

    status: Literal["ok"]
