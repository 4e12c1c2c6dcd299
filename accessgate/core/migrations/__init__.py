"""Schema migrations for the runtime state database."""

from accessgate.core.migrations.runner import apply_migrations, pending_migrations

__all__ = ["apply_migrations", "pending_migrations"]
