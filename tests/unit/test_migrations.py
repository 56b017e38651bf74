"""Tests for database migration helpers."""
import pytest
from sqlalchemy import text
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from oraclesync.db.migrations import run_migrations
from oraclesync.models.sync import SyncError, SyncRun


def _columns(engine, table):
    with engine.connect() as conn:
        return {row[1] for row in conn.execute(text(f"PRAGMA table_info({table})"))}


@pytest.fixture(name="migration_engine")
def migration_engine_fixture():
    """In-memory SQLite engine with full schema, for testing migrations."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="partial_engine")
def partial_engine_fixture():
    """SQLite engine whose run/error tables were created without the optional columns."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    with engine.connect() as conn:
        conn.execute(text(
            "CREATE TABLE syncrun (id INTEGER PRIMARY KEY, started_at DATETIME, status VARCHAR)"
        ))
        conn.execute(text(
            "CREATE TABLE syncerror (id INTEGER PRIMARY KEY, run_id INTEGER, error_message VARCHAR)"
        ))
        conn.commit()
    yield engine


class TestRunMigrations:
    def test_run_migrations_does_not_raise(self, migration_engine):
        run_migrations(migration_engine)

    def test_run_migrations_is_idempotent(self, migration_engine):
        run_migrations(migration_engine)
        run_migrations(migration_engine)

    def test_adds_missing_columns(self, partial_engine):
        run_migrations(partial_engine)
        assert "dataset_type" in _columns(partial_engine, "syncrun")
        assert "stack_trace" in _columns(partial_engine, "syncerror")

    def test_existing_rows_survive(self, partial_engine):
        with partial_engine.connect() as conn:
            conn.execute(text("INSERT INTO syncrun (id, status) VALUES (1, 'COMPLETED')"))
            conn.commit()
        run_migrations(partial_engine)
        with partial_engine.connect() as conn:
            row = conn.execute(text("SELECT id, dataset_type FROM syncrun")).one()
        assert row == (1, None)

    def test_migrated_columns_usable(self, migration_engine):
        run_migrations(migration_engine)
        with Session(migration_engine) as s:
            run = SyncRun(dataset_type="oracle_cards")
            s.add(run)
            s.commit()
            s.refresh(run)
            s.add(SyncError(run_id=run.id, error_message="bad", stack_trace="Traceback..."))
            s.commit()

            error = s.exec(select(SyncError)).one()
            assert error.stack_trace == "Traceback..."
            assert s.get(SyncRun, run.id).dataset_type == "oracle_cards"
