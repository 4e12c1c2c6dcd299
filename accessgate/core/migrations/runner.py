"""Ordered SQL migrations for the state database."""

from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path

LOGGER = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "sql"


def pending_migrations(
    connection: sqlite3.Connection, migrations_dir: Path = MIGRATIONS_DIR
) -> list[Path]:
    """Return migration files not yet recorded in ``schema_migrations``."""
    connection.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
          migration_id TEXT PRIMARY KEY,
          applied_at REAL NOT NULL
        )
        """
    )
    applied = {
        row[0]
        for row in connection.execute("SELECT migration_id FROM schema_migrations")
    }
    return [
        path for path in sorted(migrations_dir.glob("*.sql")) if path.name not in applied
    ]


def apply_migrations(
    connection: sqlite3.Connection, migrations_dir: Path = MIGRATIONS_DIR
) -> list[str]:
    """Apply pending migrations in file-name order; return the ids applied.

    Each file runs as one script and is recorded right after it succeeds, so
    a failing migration leaves the earlier ones in place and is retried on
    the next start.
    """
    applied: list[str] = []
    for migration_file in pending_migrations(connection, migrations_dir):
        connection.executescript(migration_file.read_text(encoding="utf-8"))
        connection.execute(
            "INSERT OR IGNORE INTO schema_migrations(migration_id, applied_at) VALUES (?, ?)",
            (migration_file.name, time.time()),
        )
        connection.commit()
        LOGGER.info("schema_migration_applied: %s", migration_file.name)
        applied.append(migration_file.name)
    return applied
