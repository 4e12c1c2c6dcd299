"""Authentication service: signup, login, refresh, logout and email verification."""

from __future__ import annotations

import logging
import sqlite3

from accessgate.api.errors import (
    ApiErrorCode,
    AuthError,
    ConflictError,
    ValidationError,
)
from accessgate.auth.models import Account, AccountSummary, AuthSession
from accessgate.auth.repository import AccountRepository
from accessgate.auth.sessions import SessionLedger
from accessgate.auth.tokens import CredentialCodec, TokenClass, TokenError
from accessgate.auth.verification import VerificationLedger, VerificationOutcome
from accessgate.core.security import hash_password, verify_password
from accessgate.delivery.jobs import JobKind, VerificationEmailPayload
from accessgate.delivery.queue import DeliveryQueue
from accessgate.delivery.templates import (
    VERIFY_EMAIL_SUBJECT,
    render_verify_email,
    verification_link,
)

LOGGER = logging.getLogger(__name__)

_VERIFICATION_ERRORS = {
    VerificationOutcome.INVALID_TOKEN: (
        ApiErrorCode.VERIFICATION_INVALID_TOKEN,
        "Invalid token",
    ),
    VerificationOutcome.ALREADY_VERIFIED: (
        ApiErrorCode.VERIFICATION_ALREADY_VERIFIED,
        "Email already verified",
    ),
    VerificationOutcome.TOKEN_MISMATCH: (
        ApiErrorCode.VERIFICATION_TOKEN_MISMATCH,
        "Invalid or expired token",
    ),
}


class AuthService:
    """Composes the codec, ledgers and delivery queue into request operations."""

    def __init__(
        self,
        *,
        accounts: AccountRepository,
        codec: CredentialCodec,
        sessions: SessionLedger,
        verifications: VerificationLedger,
        queue: DeliveryQueue,
        frontend_url: str,
    ) -> None:
        """Initialize service dependencies."""
        self._accounts = accounts
        self._codec = codec
        self._sessions = sessions
        self._verifications = verifications
        self._queue = queue
        self._frontend_url = frontend_url

    @property
    def access_token_ttl_seconds(self) -> int:
        return self._codec.ttl_seconds(TokenClass.ACCESS)

    @property
    def refresh_token_ttl_seconds(self) -> int:
        return self._codec.ttl_seconds(TokenClass.REFRESH)

    def signup(self, name: str, email: str, password: str) -> AccountSummary:
        """Create an unverified account and enqueue its verification email."""
        normalized_email = email.strip().lower()
        if self._accounts.get_by_email(normalized_email) is not None:
            raise ConflictError("Email already in use")

        account = self._accounts.create(
            name=name,
            email=normalized_email,
            password_hash=hash_password(password),
        )
        token = self._verifications.issue(account.account_id, account.email)
        self._enqueue_verification_email(
            account, token, idempotency_key=f"verify:{account.account_id}"
        )
        LOGGER.info("signup_completed", extra={"account_id": account.account_id})
        return account.summary()

    def login(self, email: str, password: str) -> AuthSession:
        """Authenticate credentials and open a fresh refresh session.

        Email verification is not a login gate.
        """
        account = self._accounts.get_by_email(email)
        if account is None or not verify_password(password, account.password_hash):
            LOGGER.info("login_rejected")
            raise AuthError("Invalid credentials")

        access_token = self._codec.issue_access(account.account_id)
        refresh_token = self._sessions.open_session(account.account_id)
        LOGGER.info("login_succeeded", extra={"account_id": account.account_id})
        return AuthSession(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.access_token_ttl_seconds,
            user=account.summary(),
        )

    def refresh(self, refresh_token: str | None) -> AuthSession:
        """Rotate the refresh token and issue a new access token."""
        if not refresh_token:
            raise AuthError(
                "Missing refresh token",
                error_code=ApiErrorCode.AUTH_MISSING_TOKEN,
            )

        check = self._codec.verify(refresh_token, TokenClass.REFRESH)
        if check.claims is None:
            LOGGER.info("refresh_rejected_%s", check.error)
            raise self._refresh_rejected()

        account_id = check.claims.account_id
        account = self._accounts.get_by_id(account_id)
        if account is None:
            LOGGER.info("refresh_rejected_unknown_account", extra={"account_id": account_id})
            raise self._refresh_rejected()

        rotation = self._sessions.rotate(account_id, refresh_token)
        if not rotation.ok:
            LOGGER.warning("refresh_rejected_mismatch", extra={"account_id": account_id})
            raise self._refresh_rejected()

        LOGGER.info("refresh_rotated", extra={"account_id": account_id})
        return AuthSession(
            access_token=self._codec.issue_access(account_id),
            refresh_token=rotation.token,
            expires_in=self.access_token_ttl_seconds,
            user=account.summary(),
        )

    def logout(self, refresh_token: str | None) -> None:
        """Revoke the session of the presented refresh token, if decodable."""
        if not refresh_token:
            return
        check = self._codec.verify(refresh_token, TokenClass.REFRESH)
        if check.claims is None:
            LOGGER.info("logout_token_undecodable_%s", check.error)
            return
        account_id = check.claims.account_id
        try:
            self._sessions.revoke(account_id)
        except sqlite3.Error:
            # Logout never fails; the refresh token still expires on its own.
            LOGGER.exception("logout_revoke_failed", extra={"account_id": account_id})
            return
        LOGGER.info("logout_completed", extra={"account_id": account_id})

    def verify_email(self, token: str) -> None:
        """Consume a verification token and mark the account verified."""
        check = self._codec.verify(token, TokenClass.VERIFICATION)
        if check.claims is None:
            if check.error is TokenError.EXPIRED:
                raise ValidationError(
                    "Verification token expired",
                    error_code=ApiErrorCode.VERIFICATION_TOKEN_EXPIRED,
                )
            raise ValidationError(
                "Invalid verification token",
                error_code=ApiErrorCode.VERIFICATION_INVALID_TOKEN,
            )

        account_id = check.claims.account_id
        outcome = self._verifications.consume(account_id, token)
        if outcome is not VerificationOutcome.VERIFIED:
            LOGGER.info("email_verification_%s", outcome, extra={"account_id": account_id})
            error_code, message = _VERIFICATION_ERRORS[outcome]
            raise ValidationError(message, error_code=error_code)
        LOGGER.info("email_verified", extra={"account_id": account_id})

    def resend_verification(self, email: str) -> None:
        """Send a fresh verification email to an unverified account.

        Unknown and already verified addresses are ignored silently so the
        caller cannot tell which emails are registered.
        """
        account = self._accounts.get_by_email(email)
        if account is None or account.is_verified:
            return
        token = self._verifications.issue(account.account_id, account.email)
        check = self._codec.verify(token, TokenClass.VERIFICATION)
        jti = check.claims.jti if check.claims is not None else ""
        self._enqueue_verification_email(
            account, token, idempotency_key=f"verify:{account.account_id}:{jti}"
        )
        LOGGER.info("verification_resent", extra={"account_id": account.account_id})

    def current_account(self, access_token: str) -> AccountSummary:
        """Resolve the account behind a bearer access token."""
        check = self._codec.verify(access_token, TokenClass.ACCESS)
        if check.claims is None:
            if check.error is TokenError.EXPIRED:
                raise AuthError(
                    "Access token expired",
                    error_code=ApiErrorCode.AUTH_TOKEN_EXPIRED,
                )
            raise AuthError(
                "Invalid access token",
                error_code=ApiErrorCode.AUTH_TOKEN_INVALID,
            )
        account = self._accounts.get_by_id(check.claims.account_id)
        if account is None:
            raise AuthError(
                "Invalid access token",
                error_code=ApiErrorCode.AUTH_TOKEN_INVALID,
            )
        return account.summary()

    def _enqueue_verification_email(
        self, account: Account, token: str, *, idempotency_key: str
    ) -> None:
        payload = VerificationEmailPayload(
            account_id=account.account_id,
            to=account.email,
            subject=VERIFY_EMAIL_SUBJECT,
            html=render_verify_email(
                name=account.name,
                link=verification_link(self._frontend_url, token),
            ),
        )
        self._queue.enqueue(JobKind.VERIFICATION_EMAIL, payload, idempotency_key)

    @staticmethod
    def _refresh_rejected() -> AuthError:
        return AuthError(
            "Invalid refresh token",
            status_code=403,
            error_code=ApiErrorCode.AUTH_REFRESH_REJECTED,
        )
