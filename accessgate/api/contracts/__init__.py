"""Public API response contracts."""

from accessgate.api.contracts.models import (
    AccessTokenResponse,
    ApiErrorResponse,
    AuthMeResponse,
    HealthResponse,
    LoginResponse,
    LogoutResponse,
    SignupResponse,
    StatusMessageResponse,
)

__all__ = [
    "AccessTokenResponse",
    "ApiErrorResponse",
    "AuthMeResponse",
    "HealthResponse",
    "LoginResponse",
    "LogoutResponse",
    "SignupResponse",
    "StatusMessageResponse",
]
