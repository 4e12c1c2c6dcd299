"""Shared SQLite handle for runtime state (accounts, ledgers, delivery jobs)."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Iterator

from accessgate.core.migrations import apply_migrations


class SqliteDatabase:
    """Single-connection SQLite handle with serialized, transactional access.

    One instance is built by the process entry point and injected into every
    repository, ledger and the delivery queue. All statements go through
    :meth:`transaction`, which holds the instance lock for the duration of the
    block and commits or rolls back as a unit. Cross-process writers are
    coordinated by SQLite itself (WAL journal, busy timeout).
    """

    def __init__(self, database_path: Path, *, busy_timeout_seconds: float = 5.0) -> None:
        """Open the shared connection and bring the schema up to date."""
        self._path = database_path
        database_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = sqlite3.connect(
            str(database_path),
            timeout=busy_timeout_seconds,
            check_same_thread=False,
        )
        self._connection.row_factory = sqlite3.Row
        self._connection.execute("PRAGMA journal_mode=WAL")
        self._connection.execute("PRAGMA foreign_keys=ON")
        apply_migrations(self._connection)
        self._lock = Lock()

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """Yield a cursor inside one locked transaction."""
        with self._lock:
            cursor = self._connection.cursor()
            try:
                yield cursor
            except BaseException:
                self._connection.rollback()
                raise
            else:
                self._connection.commit()
            finally:
                cursor.close()

    def close(self) -> None:
        """Close SQLite connection resources."""
        with self._lock:
            self._connection.close()
