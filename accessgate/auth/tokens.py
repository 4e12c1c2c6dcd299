"""Signing and verification of access, refresh and verification tokens."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable

from accessgate.core.config import AuthConfig
from accessgate.core.security import (
    TokenSignatureError,
    build_signed_token,
    decode_signed_token,
)


class TokenClass(StrEnum):
    """Token classes, each signed with its own secret."""

    ACCESS = "access"
    REFRESH = "refresh"
    VERIFICATION = "verification"


class TokenError(StrEnum):
    """Reasons a presented token is rejected."""

    EXPIRED = "expired"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims of a token."""

    account_id: str
    token_class: TokenClass
    issued_at: int
    expires_at: int
    jti: str
    email: str = ""


@dataclass(frozen=True)
class TokenCheck:
    """Outcome of :meth:`CredentialCodec.verify`: claims or an error kind."""

    claims: TokenClaims | None = None
    error: TokenError | None = None

    @property
    def ok(self) -> bool:
        return self.claims is not None


class CredentialCodec:
    """Stateless codec for the three token classes.

    Each class has a distinct secret so that a leaked secret cannot be used to
    forge tokens of another class. The codec performs no I/O; its output only
    depends on the secrets and the injected clock.
    """

    def __init__(
        self,
        config: AuthConfig,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._issuer = config.issuer
        self._clock = clock
        self._secrets = {
            TokenClass.ACCESS: config.access_secret,
            TokenClass.REFRESH: config.refresh_secret,
            TokenClass.VERIFICATION: config.verification_secret,
        }
        self._ttls = {
            TokenClass.ACCESS: config.access_token_ttl_seconds,
            TokenClass.REFRESH: config.refresh_token_ttl_seconds,
            TokenClass.VERIFICATION: config.verification_token_ttl_seconds,
        }

    def ttl_seconds(self, token_class: TokenClass) -> int:
        return self._ttls[token_class]

    def issue_access(self, account_id: str) -> str:
        """Mint a short-lived access token."""
        return self._issue(TokenClass.ACCESS, account_id)

    def issue_refresh(self, account_id: str) -> str:
        """Mint a refresh token."""
        return self._issue(TokenClass.REFRESH, account_id)

    def issue_verification(self, account_id: str, email: str) -> str:
        """Mint an email verification token bound to ``email``."""
        return self._issue(TokenClass.VERIFICATION, account_id, email=email)

    def verify(self, token: str, token_class: TokenClass) -> TokenCheck:
        """Check signature, class and expiry of ``token``."""
        if not token:
            return TokenCheck(error=TokenError.MALFORMED)
        try:
            payload = decode_signed_token(token, self._secrets[token_class])
        except TokenSignatureError:
            return TokenCheck(error=TokenError.MALFORMED)

        if str(payload.get("iss") or "") != self._issuer:
            return TokenCheck(error=TokenError.MALFORMED)
        if str(payload.get("type") or "") != token_class:
            return TokenCheck(error=TokenError.MALFORMED)

        account_id = str(payload.get("sub") or "")
        try:
            issued_at = int(payload.get("iat") or 0)
            expires_at = int(payload.get("exp") or 0)
        except (TypeError, ValueError):
            return TokenCheck(error=TokenError.MALFORMED)
        if not account_id or not expires_at:
            return TokenCheck(error=TokenError.MALFORMED)

        if expires_at <= int(self._clock()):
            return TokenCheck(error=TokenError.EXPIRED)

        return TokenCheck(
            claims=TokenClaims(
                account_id=account_id,
                token_class=token_class,
                issued_at=issued_at,
                expires_at=expires_at,
                jti=str(payload.get("jti") or ""),
                email=str(payload.get("email") or ""),
            )
        )

    def _issue(self, token_class: TokenClass, account_id: str, *, email: str = "") -> str:
        now_ts = int(self._clock())
        payload: dict[str, object] = {
            "iss": self._issuer,
            "sub": account_id,
            "type": str(token_class),
            "iat": now_ts,
            "exp": now_ts + self._ttls[token_class],
            "jti": uuid.uuid4().hex,
        }
        if email:
            payload["email"] = email
        return build_signed_token(payload, self._secrets[token_class])
