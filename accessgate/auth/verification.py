"""Single-use email verification ledger."""

from __future__ import annotations

import time
from enum import StrEnum
from typing import Callable

from accessgate.auth.tokens import CredentialCodec, TokenClass
from accessgate.core.database import SqliteDatabase
from accessgate.core.security import hash_token


class VerificationOutcome(StrEnum):
    VERIFIED = "verified"
    INVALID_TOKEN = "invalid_token"
    ALREADY_VERIFIED = "already_verified"
    TOKEN_MISMATCH = "token_mismatch"


class VerificationLedger:
    """Stores the pending verification token per account and consumes it once."""

    def __init__(
        self,
        db: SqliteDatabase,
        codec: CredentialCodec,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db
        self._codec = codec
        self._clock = clock

    def issue(self, account_id: str, email: str) -> str:
        """Mint a verification token, replacing any pending one."""
        token = self._codec.issue_verification(account_id, email)
        now = self._clock()
        expires_at = now + self._codec.ttl_seconds(TokenClass.VERIFICATION)
        with self._db.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO email_verifications(account_id, token_hash, expires_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(account_id) DO UPDATE SET
                  token_hash = excluded.token_hash,
                  expires_at = excluded.expires_at,
                  updated_at = excluded.updated_at
                """,
                (account_id, hash_token(token), expires_at, now),
            )
        return token

    def consume(self, account_id: str, token: str) -> VerificationOutcome:
        """Mark the account verified if ``token`` is the pending one.

        Flag flip and token clearing happen in one transaction; the
        conditional update on the stored hash makes a racing consume observe
        the cleared slot.
        """
        now = self._clock()
        with self._db.transaction() as cursor:
            account = cursor.execute(
                "SELECT is_verified FROM accounts WHERE account_id = ?",
                (account_id,),
            ).fetchone()
            if account is None:
                return VerificationOutcome.INVALID_TOKEN
            if bool(account["is_verified"]):
                return VerificationOutcome.ALREADY_VERIFIED

            cursor.execute(
                """
                UPDATE email_verifications
                SET token_hash = NULL, updated_at = ?
                WHERE account_id = ? AND token_hash = ?
                """,
                (now, account_id, hash_token(token)),
            )
            if cursor.rowcount != 1:
                return VerificationOutcome.TOKEN_MISMATCH

            cursor.execute(
                "UPDATE accounts SET is_verified = 1 WHERE account_id = ?",
                (account_id,),
            )
        return VerificationOutcome.VERIFIED

    def pending_hash(self, account_id: str) -> str | None:
        with self._db.transaction() as cursor:
            row = cursor.execute(
                "SELECT token_hash FROM email_verifications WHERE account_id = ?",
                (account_id,),
            ).fetchone()
        if row is None or row["token_hash"] is None:
            return None
        return str(row["token_hash"])
