"""Authentication API router."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

from accessgate.api.contracts import (
    AccessTokenResponse,
    ApiErrorResponse,
    AuthMeResponse,
    LoginResponse,
    LogoutResponse,
    SignupResponse,
    StatusMessageResponse,
)
from accessgate.auth.models import LoginRequest, ResendVerificationRequest, SignupRequest
from accessgate.auth.service import AuthService
from accessgate.core.config import AuthConfig


def create_auth_router(service: AuthService, config: AuthConfig) -> APIRouter:
    """Build authentication router."""
    router = APIRouter(prefix="/api/auth", tags=["auth"])

    def set_refresh_cookie(response: Response, token: str) -> None:
        response.set_cookie(
            key=config.refresh_cookie_name,
            value=token,
            max_age=config.refresh_token_ttl_seconds,
            path=config.refresh_cookie_path,
            secure=config.cookie_secure,
            httponly=True,
            samesite="strict",
        )

    def clear_refresh_cookie(response: Response) -> None:
        response.delete_cookie(
            key=config.refresh_cookie_name,
            path=config.refresh_cookie_path,
            secure=config.cookie_secure,
            httponly=True,
            samesite="strict",
        )

    @router.post(
        "/signup",
        status_code=201,
        response_model=SignupResponse,
        responses={400: {"model": ApiErrorResponse}, 409: {"model": ApiErrorResponse}},
    )
    def signup(req: SignupRequest) -> SignupResponse:
        """Register a new account and queue its verification email."""
        user = service.signup(req.name, req.email, req.password)
        return SignupResponse(
            message="Signup successful. Please check your email to verify your account.",
            user=user,
        )

    @router.post(
        "/login",
        response_model=LoginResponse,
        responses={400: {"model": ApiErrorResponse}, 401: {"model": ApiErrorResponse}},
    )
    def login(req: LoginRequest, response: Response) -> LoginResponse:
        """Authenticate and set the refresh cookie."""
        session = service.login(req.email, req.password)
        set_refresh_cookie(response, session.refresh_token)
        return LoginResponse(
            message="Login successful",
            user=session.user,
            access_token=session.access_token,
            token_type=session.token_type,
            expires_in=session.expires_in,
        )

    @router.post("/logout", response_model=LogoutResponse)
    def logout(request: Request, response: Response) -> LogoutResponse:
        """Revoke the current session and clear the refresh cookie."""
        service.logout(request.cookies.get(config.refresh_cookie_name))
        clear_refresh_cookie(response)
        return LogoutResponse(status="ok")

    @router.post(
        "/refresh-token",
        response_model=AccessTokenResponse,
        responses={401: {"model": ApiErrorResponse}, 403: {"model": ApiErrorResponse}},
    )
    def refresh(request: Request, response: Response) -> AccessTokenResponse:
        """Rotate the refresh cookie and return a new access token."""
        session = service.refresh(request.cookies.get(config.refresh_cookie_name))
        set_refresh_cookie(response, session.refresh_token)
        return AccessTokenResponse(
            access_token=session.access_token,
            token_type=session.token_type,
            expires_in=session.expires_in,
        )

    @router.get(
        "/verify-email/{token}",
        response_model=StatusMessageResponse,
        responses={400: {"model": ApiErrorResponse}},
    )
    def verify_email(token: str) -> StatusMessageResponse:
        """Consume an email verification token."""
        service.verify_email(token)
        return StatusMessageResponse(status="ok", message="Email verified successfully")

    @router.post(
        "/verify-email/resend",
        status_code=202,
        response_model=StatusMessageResponse,
        responses={400: {"model": ApiErrorResponse}},
    )
    def resend_verification(req: ResendVerificationRequest) -> StatusMessageResponse:
        """Queue a fresh verification email if the account is pending verification."""
        service.resend_verification(req.email)
        return StatusMessageResponse(
            status="accepted",
            message="If the account exists and is not verified, a new email is on its way.",
        )

    @router.get(
        "/me",
        response_model=AuthMeResponse,
        responses={401: {"model": ApiErrorResponse}},
    )
    def me(request: Request) -> AuthMeResponse:
        """Return the account resolved by the auth middleware."""
        return AuthMeResponse(user=request.state.user)

    return router
