"""Repository for account persistence."""

from __future__ import annotations

import sqlite3
import time
import uuid
from typing import Callable

from accessgate.api.errors import ConflictError
from accessgate.auth.models import Account
from accessgate.core.database import SqliteDatabase


def _row_to_account(row: sqlite3.Row) -> Account:
    return Account(
        account_id=str(row["account_id"]),
        name=str(row["name"]),
        email=str(row["email"]),
        password_hash=str(row["password_hash"]),
        role=str(row["role"]),
        is_verified=bool(row["is_verified"]),
        created_at=float(row["created_at"]),
    )


class AccountRepository:
    """Account CRUD by id and email over the shared SQLite handle."""

    def __init__(
        self, db: SqliteDatabase, *, clock: Callable[[], float] = time.time
    ) -> None:
        self._db = db
        self._clock = clock

    def get_by_email(self, email: str) -> Account | None:
        """Get account by case-insensitive email."""
        key = email.strip().lower()
        with self._db.transaction() as cursor:
            row = cursor.execute(
                "SELECT * FROM accounts WHERE email = ?", (key,)
            ).fetchone()
        return _row_to_account(row) if row else None

    def get_by_id(self, account_id: str) -> Account | None:
        with self._db.transaction() as cursor:
            row = cursor.execute(
                "SELECT * FROM accounts WHERE account_id = ?", (account_id,)
            ).fetchone()
        return _row_to_account(row) if row else None

    def create(
        self,
        *,
        name: str,
        email: str,
        password_hash: str,
        role: str = "user",
    ) -> Account:
        """Insert a new unverified account, raising ``ConflictError`` on duplicate email."""
        account = Account(
            account_id=uuid.uuid4().hex,
            name=name,
            email=email.strip().lower(),
            password_hash=password_hash,
            role=role,
            is_verified=False,
            created_at=self._clock(),
        )
        try:
            with self._db.transaction() as cursor:
                cursor.execute(
                    """
                    INSERT INTO accounts(
                      account_id, name, email, password_hash, role, is_verified, created_at
                    ) VALUES (?, ?, ?, ?, ?, 0, ?)
                    """,
                    (
                        account.account_id,
                        account.name,
                        account.email,
                        account.password_hash,
                        account.role,
                        account.created_at,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise ConflictError("Email already in use") from exc
        return account
