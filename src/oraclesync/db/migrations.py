"""
In-place column additions for existing SQLite databases.

create_all() only creates missing tables, never missing columns. The
nullable columns listed in run_migrations() are ones the pipeline can run
without; they are checked on every start so a database file whose tables
were created without them is brought up to date with ALTER TABLE ADD
COLUMN. Each step checks PRAGMA table_info first and is a no-op when the
column exists. New nullable columns go here as well as on the model.

Called from get_engine() after create_all(). SQLite only; other backends
are expected to be created fresh by create_all().
"""
from sqlalchemy import text


def run_migrations(engine) -> None:
    """Add any missing optional columns. Safe to call repeatedly."""
    if engine.dialect.name != "sqlite":
        return

    with engine.connect() as conn:
        # SyncError: traceback captured alongside the message
        _add_column_if_missing(conn, "syncerror", "stack_trace", "TEXT")

        # SyncRun: which bulk file type the run imported
        _add_column_if_missing(conn, "syncrun", "dataset_type", "VARCHAR(50)")

        conn.commit()


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> None:
    """Add `column` to `table` unless PRAGMA table_info already lists it."""
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    existing_columns = {row[1] for row in result}
    if column not in existing_columns:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))
