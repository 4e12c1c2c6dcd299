"""Refresh-token ledger: one live refresh token per account.

Per-account states are ``Absent -> Active -> {Rotated, Revoked}``. Only the
SHA-256 hash of the live token is stored. Rotation is a compare-and-swap on
that hash, so of two concurrent refreshes presenting the same token exactly
one replaces the slot; the other sees a mismatch.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable

from accessgate.auth.tokens import CredentialCodec
from accessgate.core.database import SqliteDatabase
from accessgate.core.security import hash_token

LOGGER = logging.getLogger(__name__)


class RotationOutcome(StrEnum):
    ROTATED = "rotated"
    MISMATCH = "mismatch"


@dataclass(frozen=True)
class Rotation:
    """Result of :meth:`SessionLedger.rotate`."""

    outcome: RotationOutcome
    token: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is RotationOutcome.ROTATED


class SessionLedger:
    """Sole owner of refresh-token state."""

    def __init__(
        self,
        db: SqliteDatabase,
        codec: CredentialCodec,
        *,
        revoke_on_reuse: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = db
        self._codec = codec
        self._revoke_on_reuse = revoke_on_reuse
        self._clock = clock

    def open_session(self, account_id: str) -> str:
        """Mint a refresh token and make it the only live one for the account."""
        token = self._codec.issue_refresh(account_id)
        now = self._clock()
        with self._db.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO refresh_sessions(account_id, token_hash, issued_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(account_id) DO UPDATE SET
                  token_hash = excluded.token_hash,
                  issued_at = excluded.issued_at,
                  updated_at = excluded.updated_at
                """,
                (account_id, hash_token(token), now, now),
            )
        return token

    def rotate(self, account_id: str, presented: str) -> Rotation:
        """Swap ``presented`` for a fresh token if it is the live one."""
        replacement = self._codec.issue_refresh(account_id)
        now = self._clock()
        with self._db.transaction() as cursor:
            cursor.execute(
                """
                UPDATE refresh_sessions
                SET token_hash = ?, issued_at = ?, updated_at = ?
                WHERE account_id = ? AND token_hash = ?
                """,
                (hash_token(replacement), now, now, account_id, hash_token(presented)),
            )
            if cursor.rowcount == 1:
                return Rotation(outcome=RotationOutcome.ROTATED, token=replacement)

            if self._revoke_on_reuse:
                cursor.execute(
                    """
                    UPDATE refresh_sessions
                    SET token_hash = NULL, updated_at = ?
                    WHERE account_id = ? AND token_hash IS NOT NULL
                    """,
                    (now, account_id),
                )
                revoked = cursor.rowcount == 1
            else:
                revoked = False

        LOGGER.warning(
            "refresh_token_reuse_detected",
            extra={"account_id": account_id},
        )
        if revoked:
            LOGGER.warning("refresh_session_revoked", extra={"account_id": account_id})
        return Rotation(outcome=RotationOutcome.MISMATCH)

    def revoke(self, account_id: str) -> None:
        """Clear the slot. Idempotent."""
        with self._db.transaction() as cursor:
            cursor.execute(
                """
                UPDATE refresh_sessions
                SET token_hash = NULL, updated_at = ?
                WHERE account_id = ?
                """,
                (self._clock(), account_id),
            )

    def current_hash(self, account_id: str) -> str | None:
        with self._db.transaction() as cursor:
            row = cursor.execute(
                "SELECT token_hash FROM refresh_sessions WHERE account_id = ?",
                (account_id,),
            ).fetchone()
        if row is None or row["token_hash"] is None:
            return None
        return str(row["token_hash"])
