"""Unit tests for the data layer (database, repository, models)."""

import sqlite3
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from streakseed.data.database import SCHEMA_SQL, Database
from streakseed.data.repository import Repository
from streakseed.data.models import (
    DailyStat, Goal, InterventionResult, Session, StreakFreezeState, StreakRecovery,
)

APP = "com.instagram.android"
DAY_MS = 24 * 60 * 60 * 1000
BASE_MS = 1_710_331_200_000  # 2024-03-13 12:00 UTC


@pytest.fixture
def repo():
    """Create an in-memory database for testing."""
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    conn.executescript(SCHEMA_SQL)
    conn.commit()
    return Repository(conn)


def make_session(start=BASE_MS, minutes=5, date="2024-03-13", app=APP) -> Session:
    duration = minutes * 60 * 1000
    return Session(
        target_app=app, start_timestamp=start, end_timestamp=start + duration,
        duration=duration, date=date,
    )


def make_result(session_id, timestamp=BASE_MS, app=APP, final=None) -> InterventionResult:
    return InterventionResult(
        session_id=session_id, target_app=app, content_type="ReflectionQuestion",
        hour_of_day=12, day_of_week=4, session_count=1,
        current_session_duration_ms=300_000, user_choice="PROCEED",
        time_to_show_decision_ms=1500, final_session_duration_ms=final,
        timestamp=timestamp,
    )


class TestDatabase:
    def test_connect_creates_schema(self):
        db = Database(db_path=Path(":memory:"))
        conn = db.connect()
        tables = {
            r["name"] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        assert {"goals", "usage_sessions", "daily_stats", "intervention_results"} <= tables
        assert db.connect() is conn
        db.close()
        assert db.conn is None


class TestGoal:
    def test_upsert_and_get(self, repo: Repository):
        repo.upsert_goal(Goal(target_app=APP, daily_limit_minutes=60, start_date="2024-03-01"))
        goal = repo.get_goal(APP)
        assert goal.daily_limit_minutes == 60
        assert goal.current_streak == 0
        assert goal.last_evaluated_date is None

    def test_upsert_replaces(self, repo: Repository):
        repo.upsert_goal(Goal(target_app=APP, daily_limit_minutes=60, start_date="2024-03-01"))
        repo.upsert_goal(Goal(target_app=APP, daily_limit_minutes=45, start_date="2024-03-01",
                              current_streak=3, longest_streak=3))
        goals = repo.list_goals()
        assert len(goals) == 1
        assert goals[0].daily_limit_minutes == 45
        assert goals[0].current_streak == 3

    def test_missing_goal(self, repo: Repository):
        assert repo.get_goal("nope") is None

    def test_stale_goals(self, repo: Repository):
        repo.upsert_goal(Goal(target_app="a", daily_limit_minutes=60, start_date="2024-03-01",
                              last_evaluated_date="2024-03-12"))
        repo.upsert_goal(Goal(target_app="b", daily_limit_minutes=60, start_date="2024-03-01",
                              last_evaluated_date="2024-03-10"))
        repo.upsert_goal(Goal(target_app="c", daily_limit_minutes=60, start_date="2024-03-01"))
        stale = [g.target_app for g in repo.stale_goals("2024-03-12")]
        assert stale == ["b", "c"]


class TestSession:
    def test_insert_assigns_id(self, repo: Repository):
        s = make_session()
        sid = repo.insert_session(s)
        assert sid is not None
        assert s.id == sid

    def test_insert_is_idempotent(self, repo: Repository):
        first = repo.insert_session(make_session())
        second = repo.insert_session(make_session())
        assert first == second
        assert repo.count_sessions() == 1

    def test_range_query_filters_and_orders(self, repo: Repository):
        repo.insert_session(make_session(start=BASE_MS + 1000))
        repo.insert_session(make_session(start=BASE_MS))
        repo.insert_session(make_session(start=BASE_MS, app="other"))
        repo.insert_session(make_session(start=BASE_MS - DAY_MS, date="2024-03-12"))

        today = repo.get_sessions_in_range(APP, "2024-03-13", "2024-03-13")
        assert [s.start_timestamp for s in today] == [BASE_MS, BASE_MS + 1000]
        assert len(repo.get_sessions_in_range(None, "2024-03-12", "2024-03-13")) == 4


class TestDailyStats:
    def test_bulk_upsert(self, repo: Repository):
        stat = DailyStat(date="2024-03-13", target_app=APP, total_duration=600_000,
                         session_count=2, longest_session=400_000, average_session=300_000,
                         alerts_shown=1, is_estimated=True)
        assert repo.bulk_insert_stats([stat]) == 1
        stat.alerts_shown = 2
        stat.is_estimated = False
        repo.bulk_insert_stats([stat])

        stats = repo.get_daily_stats(date="2024-03-13")
        assert len(stats) == 1
        assert stats[0].alerts_shown == 2
        assert stats[0].is_estimated is False

    def test_filter_by_app(self, repo: Repository):
        repo.bulk_insert_stats([
            DailyStat(date="2024-03-13", target_app="a", total_duration=1, session_count=1,
                      longest_session=1, average_session=1),
            DailyStat(date="2024-03-13", target_app="b", total_duration=1, session_count=1,
                      longest_session=1, average_session=1),
        ])
        assert [s.target_app for s in repo.get_daily_stats(target_app="b")] == ["b"]


class TestInterventionResult:
    def test_requires_session_id(self, repo: Repository):
        with pytest.raises(ValueError, match="session id"):
            repo.bulk_insert_intervention_results([make_result(None)])

    def test_foreign_key_enforced(self, repo: Repository):
        with pytest.raises(sqlite3.IntegrityError):
            repo.bulk_insert_intervention_results([make_result(999)])

    def test_outcome_recorded_once(self, repo: Repository):
        sid = repo.insert_session(make_session())
        repo.bulk_insert_intervention_results([make_result(sid)])
        assert repo.list_intervention_results()[0].outcome_pending

        assert repo.update_intervention_outcome(sid, 420_000, True) is True
        assert repo.update_intervention_outcome(sid, 999_000, False) is False

        result = repo.list_intervention_results()[0]
        assert result.final_session_duration_ms == 420_000
        assert result.session_ended_normally is True

    def test_list_by_time_window(self, repo: Repository):
        a = repo.insert_session(make_session(start=BASE_MS))
        b = repo.insert_session(make_session(start=BASE_MS - DAY_MS, date="2024-03-12"))
        repo.bulk_insert_intervention_results([
            make_result(a, timestamp=BASE_MS),
            make_result(b, timestamp=BASE_MS - DAY_MS),
        ])
        window = repo.list_intervention_results(BASE_MS - 1000, BASE_MS + 1000)
        assert [r.session_id for r in window] == [a]


class TestTransaction:
    def test_rollback_on_error(self, repo: Repository):
        with pytest.raises(RuntimeError):
            with repo.transaction():
                repo.insert_session(make_session())
                raise RuntimeError("boom")
        assert repo.count_sessions() == 0

    def test_nested_blocks_commit_once(self, repo: Repository):
        with repo.transaction():
            with repo.transaction():
                repo.insert_session(make_session())
            repo.insert_session(make_session(start=BASE_MS + 60_000))
        repo.conn.rollback()
        assert repo.count_sessions() == 2


class TestRecovery:
    def test_upsert_and_active_list(self, repo: Repository):
        repo.upsert_recovery(StreakRecovery(target_app=APP, previous_streak=6,
                                            recovery_start_date="2024-03-13", timestamp=BASE_MS))
        active = repo.list_active_recoveries()
        assert len(active) == 1
        assert active[0].recovery_target() == 3

    def test_delete_completed(self, repo: Repository):
        repo.upsert_recovery(StreakRecovery(target_app="done", previous_streak=2,
                                            recovery_start_date="2024-01-01",
                                            is_recovery_complete=True, timestamp=0))
        repo.upsert_recovery(StreakRecovery(target_app="open", previous_streak=2,
                                            recovery_start_date="2024-01-01", timestamp=0))
        assert repo.delete_completed_recoveries_older_than(BASE_MS) == 1
        assert repo.get_recovery("done") is None
        assert repo.get_recovery("open") is not None


class TestRecoveryModel:
    def test_target_rule(self):
        assert StreakRecovery(previous_streak=1).recovery_target() == 1
        assert StreakRecovery(previous_streak=9).recovery_target() == 4
        assert StreakRecovery(previous_streak=40).recovery_target() == 7

    def test_progress_is_clamped(self):
        r = StreakRecovery(previous_streak=4, current_recovery_days=5)
        assert r.progress() == 1.0


class TestFreezes:
    def test_inventory_created_full(self, repo: Repository):
        state = repo.get_freeze_state(3)
        assert state.freezes_available == 3
        assert state.last_reset_month == ""
        assert state.active_freezes == {}

    def test_activate_and_deactivate(self, repo: Repository):
        repo.activate_freeze(APP, "2024-03-12")
        state = repo.get_freeze_state()
        assert state.covers(APP, "2024-03-12")
        assert not state.covers(APP, "2024-03-13")
        repo.deactivate_freeze(APP)
        assert not repo.get_freeze_state().has_active_freeze(APP)

    def test_save_inventory(self, repo: Repository):
        repo.save_freeze_inventory(StreakFreezeState(freezes_available=1,
                                                     last_reset_month="2024-03"))
        state = repo.get_freeze_state()
        assert state.freezes_available == 1
        assert state.last_reset_month == "2024-03"


class TestRetention:
    def test_cleanup_older_than(self, repo: Repository):
        old = repo.insert_session(make_session(start=BASE_MS - 100 * DAY_MS, date="2023-12-04"))
        new = repo.insert_session(make_session())
        repo.bulk_insert_intervention_results([
            make_result(old, timestamp=BASE_MS - 100 * DAY_MS),
            make_result(new),
        ])
        repo.bulk_insert_stats([
            DailyStat(date="2023-12-04", target_app=APP, total_duration=1, session_count=1,
                      longest_session=1, average_session=1),
        ])

        counts = repo.cleanup_older_than("2023-12-14", BASE_MS - 90 * DAY_MS)
        assert counts == {"intervention_results": 1, "usage_sessions": 1, "daily_stats": 1}
        assert repo.count_sessions() == 1
        assert [r.session_id for r in repo.list_intervention_results()] == [new]
