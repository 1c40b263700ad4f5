"""Forward-only SQLite migrations shared by the task queue and the CEAC state store."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

LOGGER = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "sql"

_LEDGER_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
  migration_id TEXT PRIMARY KEY,
  applied_at INTEGER NOT NULL
)
"""


def _pending(connection: sqlite3.Connection) -> list[Path]:
    applied = {
        str(row[0])
        for row in connection.execute("SELECT migration_id FROM schema_migrations")
    }
    return [path for path in sorted(MIGRATIONS_DIR.glob("*.sql")) if path.name not in applied]


def apply_migrations(database_path: Path) -> list[str]:
    """Apply pending migrations in file-name order and return their ids.

    Each file runs in its own transaction together with its ledger row, so a
    failing migration leaves earlier ones applied and itself absent.
    """
    database_path.parent.mkdir(parents=True, exist_ok=True)
    connection = sqlite3.connect(str(database_path))
    applied: list[str] = []
    try:
        connection.execute(_LEDGER_DDL)
        connection.commit()
        for migration_file in _pending(connection):
            script = migration_file.read_text(encoding="utf-8")
            connection.executescript(
                "BEGIN;\n"
                f"{script}\n"
                "INSERT INTO schema_migrations(migration_id, applied_at) "
                f"VALUES ('{migration_file.name}', strftime('%s','now'));\n"
                "COMMIT;"
            )
            applied.append(migration_file.name)
            LOGGER.info("Applied migration %s to %s", migration_file.name, database_path)
    except sqlite3.Error:
        if connection.in_transaction:
            connection.rollback()
        raise
    finally:
        connection.close()
    return applied
