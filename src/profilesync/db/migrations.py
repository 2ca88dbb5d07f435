"""
Database migrations for the profiles table.

The profiles table predates the sync engine: older databases lack the
Firebase bookkeeping columns. Uses SQLite ALTER TABLE ADD COLUMN for
incremental schema evolution; each migration is idempotent.

Called automatically from get_engine() after create_all() so both
fresh installs and existing DBs are handled without manual steps.
"""
from sqlalchemy import text

PROFILE_SYNC_COLUMNS = (
    ("firebase_created_at", "DATETIME"),
    ("firebase_last_sign_in", "DATETIME"),
    ("last_sync_at", "DATETIME"),
    ("sync_status", "VARCHAR NOT NULL DEFAULT 'pending'"),
)


def run_migrations(engine) -> None:
    """Apply all pending schema migrations.

    Safe to call multiple times: checks column existence before altering.
    Non-SQLite databases are managed outside this module and are skipped.

    Args:
        engine: SQLAlchemy engine (SQLModel create_engine result).
    """
    if engine.dialect.name != "sqlite":
        return

    with engine.connect() as conn:
        for column, col_type in PROFILE_SYNC_COLUMNS:
            _add_column_if_missing(conn, "profiles", column, col_type)
        conn.commit()


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> None:
    """Add a column to a table if it doesn't already exist.

    Args:
        conn: SQLAlchemy connection.
        table: Table name (lowercase, as SQLite stores it).
        column: Column name to add.
        col_type: SQLite column definition, e.g. "DATETIME".
    """
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    existing_columns = {row[1] for row in result}
    if existing_columns and column not in existing_columns:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))
