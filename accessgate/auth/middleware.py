"""HTTP middleware that enforces bearer access tokens on protected API routes."""

from __future__ import annotations

from typing import Callable

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

from accessgate.api.contracts import ApiErrorResponse
from accessgate.api.errors import ApiErrorCode, to_error_payload
from accessgate.auth.service import AuthService

PUBLIC_PATHS = {
    "/api/health",
    "/api/auth/signup",
    "/api/auth/login",
    "/api/auth/logout",
    "/api/auth/refresh-token",
}
PUBLIC_PREFIXES = ("/api/auth/verify-email/",)


def extract_bearer_token(authorization: str) -> str:
    """Extract bearer token from authorization header value."""
    parts = (authorization or "").strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


def is_public_path(path: str) -> bool:
    if not path.startswith("/api/"):
        return True
    return path in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES)


def create_auth_middleware(service: AuthService) -> Callable:
    """Create middleware function that validates access tokens."""

    async def auth_middleware(request: Request, call_next: Callable):
        """Validate bearer token for protected paths and attach the account to request state."""
        if is_public_path(request.url.path):
            return await call_next(request)

        token = extract_bearer_token(request.headers.get("authorization", ""))
        if not token:
            return JSONResponse(
                status_code=401,
                content=ApiErrorResponse(
                    error_code=ApiErrorCode.AUTH_MISSING_TOKEN,
                    message="Unauthorized: missing token",
                ).model_dump(),
            )

        try:
            user = service.current_account(token)
        except HTTPException as exc:
            return JSONResponse(
                status_code=exc.status_code,
                content=to_error_payload(exc.detail, exc.status_code),
            )

        request.state.user = user
        return await call_next(request)

    return auth_middleware
