"""Tests for run history queries and stale-run recovery."""
from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import Session

from oraclesync.models.sync import SyncError, SyncRun, SyncStatus
from oraclesync.sync import history

T0 = datetime(2025, 6, 1, 3, 0, tzinfo=timezone.utc)


def _run(status, started_at, minutes=None, **fields):
    run = SyncRun(status=status, started_at=started_at, **fields)
    if status.is_terminal:
        run.active_slot = None
        run.completed_at = started_at + timedelta(minutes=minutes or 0)
    return run


@pytest.fixture(name="seeded_runs")
def seeded_runs_fixture(test_session: Session):
    runs = [
        _run(SyncStatus.COMPLETED, T0, minutes=10, added=100, updated=0),
        _run(SyncStatus.FAILED, T0 + timedelta(days=1), minutes=1, error_message="boom"),
        _run(SyncStatus.COMPLETED, T0 + timedelta(days=2), minutes=20, added=5, updated=95),
        _run(SyncStatus.CANCELLED, T0 + timedelta(days=3), minutes=2, added=1),
    ]
    test_session.add_all(runs)
    test_session.commit()
    for run in runs:
        test_session.refresh(run)
    return runs


class TestQueries:
    def test_is_run_active(self, test_session, seeded_runs):
        assert history.is_run_active(test_session) is False
        test_session.add(SyncRun(status=SyncStatus.PROCESSING, started_at=T0 + timedelta(days=4)))
        test_session.commit()
        assert history.is_run_active(test_session) is True

    def test_list_runs_newest_first(self, test_session, seeded_runs):
        runs, total = history.list_runs(test_session, page=1, page_size=2)
        assert total == 4
        assert [r.status for r in runs] == [SyncStatus.CANCELLED, SyncStatus.COMPLETED]

    def test_list_runs_second_page(self, test_session, seeded_runs):
        runs, total = history.list_runs(test_session, page=2, page_size=3)
        assert total == 4
        assert [r.id for r in runs] == [seeded_runs[0].id]

    def test_latest_run(self, test_session, seeded_runs):
        assert history.latest_run(test_session).id == seeded_runs[3].id

    def test_latest_run_none(self, test_session):
        assert history.latest_run(test_session) is None

    def test_run_errors(self, test_session, seeded_runs):
        run_id = seeded_runs[1].id
        test_session.add(SyncError(run_id=run_id, error_message="first"))
        test_session.add(SyncError(run_id=run_id, error_message="second"))
        test_session.commit()
        errors = history.list_run_errors(test_session, run_id)
        assert [e.error_message for e in errors] == ["first", "second"]
        assert history.list_run_errors(test_session, seeded_runs[0].id) == []


class TestStats:
    def test_run_stats(self, test_session, seeded_runs):
        stats = history.run_stats(test_session)
        assert stats.total_runs == 4
        assert stats.successful_runs == 2
        assert stats.failed_runs == 1
        assert stats.total_added == 106
        assert stats.total_updated == 95
        assert stats.last_run_at == T0 + timedelta(days=3)
        # Completed runs only: 10 and 20 minutes
        assert stats.average_duration_seconds == pytest.approx(900.0)

    def test_run_stats_empty(self, test_session):
        stats = history.run_stats(test_session)
        assert stats.total_runs == 0
        assert stats.last_run_at is None
        assert stats.average_duration_seconds is None

    def test_duration_open_run(self):
        assert history.duration_seconds(SyncRun(status=SyncStatus.PROCESSING)) is None


class TestAbandonStaleRuns:
    def test_abandons_old_open_run(self, engine):
        started = datetime.now(timezone.utc) - timedelta(hours=10)
        with Session(engine) as s:
            s.add(SyncRun(status=SyncStatus.PROCESSING, started_at=started))
            s.commit()

        assert history.abandon_stale_runs(engine, timedelta(hours=6)) == 1

        with Session(engine) as s:
            run = history.latest_run(s)
            assert run.status == SyncStatus.FAILED
            assert run.completed_at is not None
            assert run.active_slot is None
            assert "abandoned" in run.error_message
            assert history.is_run_active(s) is False

    def test_leaves_recent_open_run(self, engine):
        with Session(engine) as s:
            s.add(SyncRun(status=SyncStatus.DOWNLOADING))
            s.commit()

        assert history.abandon_stale_runs(engine, timedelta(hours=6)) == 0
        with Session(engine) as s:
            assert history.is_run_active(s) is True

    def test_ignores_terminal_runs(self, engine):
        old = datetime.now(timezone.utc) - timedelta(days=30)
        with Session(engine) as s:
            s.add(_run(SyncStatus.COMPLETED, old, minutes=5))
            s.commit()
        assert history.abandon_stale_runs(engine, timedelta(hours=6)) == 0
