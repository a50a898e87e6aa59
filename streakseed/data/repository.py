"""
Repository: the single place where SQL lives.

Every other module talks to Repository, never to raw SQL. This is the "store"
the seed orchestrator writes into and the nightly rollover reads from.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional

from .models import DailyStat, Goal, InterventionResult, Session, StreakFreezeState, StreakRecovery

logger = logging.getLogger(__name__)


class Repository:
    """Data-access layer wrapping a sqlite3 connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self._tx_depth = 0

    # ── Transactions ────────────────────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator["Repository"]:
        """
        Group several writes into one commit.

        Nested calls join the outer transaction; only the outermost block
        commits or rolls back.
        """
        self._tx_depth += 1
        try:
            yield self
        except Exception:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                self.conn.rollback()
                logger.warning("Transaction rolled back.")
            raise
        else:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                self.conn.commit()

    def _commit(self) -> None:
        if self._tx_depth == 0:
            self.conn.commit()

    # ── Goals ───────────────────────────────────────────────────────────────

    def upsert_goal(self, goal: Goal) -> Goal:
        self.conn.execute(
            """INSERT INTO goals (target_app, daily_limit_minutes, start_date,
                   current_streak, longest_streak, last_updated, last_evaluated_date)
               VALUES (?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(target_app) DO UPDATE SET
                   daily_limit_minutes = excluded.daily_limit_minutes,
                   start_date = excluded.start_date,
                   current_streak = excluded.current_streak,
                   longest_streak = excluded.longest_streak,
                   last_updated = excluded.last_updated,
                   last_evaluated_date = excluded.last_evaluated_date""",
            (
                goal.target_app, goal.daily_limit_minutes, goal.start_date,
                goal.current_streak, goal.longest_streak, goal.last_updated,
                goal.last_evaluated_date,
            ),
        )
        self._commit()
        return goal

    def get_goal(self, target_app: str) -> Optional[Goal]:
        row = self.conn.execute(
            "SELECT * FROM goals WHERE target_app = ?", (target_app,)
        ).fetchone()
        return self._row_to_goal(row) if row else None

    def list_goals(self) -> List[Goal]:
        rows = self.conn.execute("SELECT * FROM goals ORDER BY target_app").fetchall()
        return [self._row_to_goal(r) for r in rows]

    def stale_goals(self, expected_date: str) -> List[Goal]:
        """Goals whose last rollover is older than expected_date (missed runs)."""
        rows = self.conn.execute(
            "SELECT * FROM goals WHERE last_evaluated_date IS NULL "
            "OR last_evaluated_date < ? ORDER BY target_app",
            (expected_date,),
        ).fetchall()
        return [self._row_to_goal(r) for r in rows]

    # ── Sessions ────────────────────────────────────────────────────────────

    def insert_session(self, session: Session) -> int:
        """
        Insert a session, or return the id of the identical row already there.

        Sessions are keyed by (app, start, end), so re-running a seed never
        duplicates them.
        """
        self.conn.execute(
            """INSERT INTO usage_sessions (target_app, start_timestamp, end_timestamp,
                   duration, was_interrupted, interruption_type, date)
               VALUES (?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(target_app, start_timestamp, end_timestamp) DO NOTHING""",
            (
                session.target_app, session.start_timestamp, session.end_timestamp,
                session.duration, int(session.was_interrupted),
                session.interruption_type, session.date,
            ),
        )
        row = self.conn.execute(
            "SELECT id FROM usage_sessions WHERE target_app = ? "
            "AND start_timestamp = ? AND end_timestamp = ?",
            session.natural_key,
        ).fetchone()
        self._commit()
        session.id = row["id"]
        return session.id

    def get_sessions_in_range(
        self, target_app: Optional[str], start_date: str, end_date: str
    ) -> List[Session]:
        """Sessions whose date is within [start_date, end_date], oldest first."""
        query = "SELECT * FROM usage_sessions WHERE date >= ? AND date <= ?"
        params: list = [start_date, end_date]
        if target_app is not None:
            query += " AND target_app = ?"
            params.append(target_app)
        query += " ORDER BY start_timestamp, id"
        rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_session(r) for r in rows]

    def count_sessions(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) FROM usage_sessions").fetchone()
        return row[0]

    # ── Daily stats ─────────────────────────────────────────────────────────

    def bulk_insert_stats(self, stats: Iterable[DailyStat]) -> int:
        """Upsert stats keyed by (date, app). Returns the number written."""
        rows = [
            (
                s.date, s.target_app, s.total_duration, s.session_count,
                s.longest_session, s.average_session, s.alerts_shown,
                s.alerts_proceeded, int(s.is_estimated), s.last_updated,
            )
            for s in stats
        ]
        self.conn.executemany(
            """INSERT INTO daily_stats (date, target_app, total_duration, session_count,
                   longest_session, average_session, alerts_shown, alerts_proceeded,
                   is_estimated, last_updated)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(date, target_app) DO UPDATE SET
                   total_duration = excluded.total_duration,
                   session_count = excluded.session_count,
                   longest_session = excluded.longest_session,
                   average_session = excluded.average_session,
                   alerts_shown = excluded.alerts_shown,
                   alerts_proceeded = excluded.alerts_proceeded,
                   is_estimated = excluded.is_estimated,
                   last_updated = excluded.last_updated""",
            rows,
        )
        self._commit()
        return len(rows)

    def get_daily_stats(
        self, date: Optional[str] = None, target_app: Optional[str] = None
    ) -> List[DailyStat]:
        query = "SELECT * FROM daily_stats"
        conditions: List[str] = []
        params: list = []
        if date is not None:
            conditions.append("date = ?")
            params.append(date)
        if target_app is not None:
            conditions.append("target_app = ?")
            params.append(target_app)
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY date, target_app"
        rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_stat(r) for r in rows]

    # ── Intervention results ────────────────────────────────────────────────

    def bulk_insert_intervention_results(self, results: Iterable[InterventionResult]) -> int:
        """Upsert results keyed by session id. Returns the number written."""
        rows = []
        for r in results:
            if r.session_id is None:
                raise ValueError("Intervention result has no session id.")
            rows.append((
                r.session_id, r.target_app, r.intervention_type, r.content_type,
                r.hour_of_day, r.day_of_week, int(r.is_weekend), int(r.is_late_night),
                r.session_count, int(r.quick_reopen), r.current_session_duration_ms,
                r.user_choice, r.time_to_show_decision_ms, r.final_session_duration_ms,
                None if r.session_ended_normally is None else int(r.session_ended_normally),
                r.timestamp,
            ))
        self.conn.executemany(
            """INSERT INTO intervention_results (session_id, target_app, intervention_type,
                   content_type, hour_of_day, day_of_week, is_weekend, is_late_night,
                   session_count, quick_reopen, current_session_duration_ms, user_choice,
                   time_to_show_decision_ms, final_session_duration_ms,
                   session_ended_normally, timestamp)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(session_id) DO UPDATE SET
                   intervention_type = excluded.intervention_type,
                   content_type = excluded.content_type,
                   user_choice = excluded.user_choice,
                   time_to_show_decision_ms = excluded.time_to_show_decision_ms,
                   final_session_duration_ms = excluded.final_session_duration_ms,
                   session_ended_normally = excluded.session_ended_normally""",
            rows,
        )
        self._commit()
        return len(rows)

    def list_intervention_results(
        self,
        start_ms: Optional[int] = None,
        end_ms: Optional[int] = None,
        target_app: Optional[str] = None,
    ) -> List[InterventionResult]:
        query = "SELECT * FROM intervention_results"
        conditions: List[str] = []
        params: list = []
        if start_ms is not None:
            conditions.append("timestamp >= ?")
            params.append(start_ms)
        if end_ms is not None:
            conditions.append("timestamp <= ?")
            params.append(end_ms)
        if target_app is not None:
            conditions.append("target_app = ?")
            params.append(target_app)
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY timestamp, id"
        rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_result(r) for r in rows]

    def update_intervention_outcome(
        self, session_id: int, final_duration_ms: int, ended_normally: bool
    ) -> bool:
        """
        Fill in the outcome of a live intervention once the session ends.

        Only a pending row is updated; returns False if the outcome was
        already recorded (or no row exists).
        """
        cur = self.conn.execute(
            "UPDATE intervention_results SET final_session_duration_ms = ?, "
            "session_ended_normally = ? "
            "WHERE session_id = ? AND final_session_duration_ms IS NULL",
            (final_duration_ms, int(ended_normally), session_id),
        )
        self._commit()
        return cur.rowcount == 1

    # ── Streak recovery ─────────────────────────────────────────────────────

    def get_recovery(self, target_app: str) -> Optional[StreakRecovery]:
        row = self.conn.execute(
            "SELECT * FROM streak_recovery WHERE target_app = ?", (target_app,)
        ).fetchone()
        return self._row_to_recovery(row) if row else None

    def upsert_recovery(self, recovery: StreakRecovery) -> StreakRecovery:
        self.conn.execute(
            """INSERT INTO streak_recovery (target_app, previous_streak, recovery_start_date,
                   current_recovery_days, is_recovery_complete, recovery_completed_date,
                   notification_shown, timestamp)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(target_app) DO UPDATE SET
                   previous_streak = excluded.previous_streak,
                   recovery_start_date = excluded.recovery_start_date,
                   current_recovery_days = excluded.current_recovery_days,
                   is_recovery_complete = excluded.is_recovery_complete,
                   recovery_completed_date = excluded.recovery_completed_date,
                   notification_shown = excluded.notification_shown,
                   timestamp = excluded.timestamp""",
            (
                recovery.target_app, recovery.previous_streak, recovery.recovery_start_date,
                recovery.current_recovery_days, int(recovery.is_recovery_complete),
                recovery.recovery_completed_date, int(recovery.notification_shown),
                recovery.timestamp,
            ),
        )
        self._commit()
        return recovery

    def list_active_recoveries(self) -> List[StreakRecovery]:
        rows = self.conn.execute(
            "SELECT * FROM streak_recovery WHERE is_recovery_complete = 0 ORDER BY target_app"
        ).fetchall()
        return [self._row_to_recovery(r) for r in rows]

    def delete_completed_recoveries_older_than(self, before_ms: int) -> int:
        cur = self.conn.execute(
            "DELETE FROM streak_recovery WHERE is_recovery_complete = 1 AND timestamp < ?",
            (before_ms,),
        )
        self._commit()
        return cur.rowcount

    # ── Streak freezes ──────────────────────────────────────────────────────

    def get_freeze_state(self, default_max: int = 3) -> StreakFreezeState:
        """Load the freeze inventory, creating it with a full allowance on first use."""
        row = self.conn.execute("SELECT * FROM freeze_inventory WHERE id = 1").fetchone()
        if row is None:
            self.conn.execute(
                "INSERT INTO freeze_inventory (id, freezes_available, max_monthly_freezes, "
                "last_reset_month) VALUES (1, ?, ?, '')",
                (default_max, default_max),
            )
            self._commit()
            row = self.conn.execute("SELECT * FROM freeze_inventory WHERE id = 1").fetchone()
        active = {
            r["target_app"]: r["freeze_date"]
            for r in self.conn.execute("SELECT * FROM active_freezes").fetchall()
        }
        return StreakFreezeState(
            freezes_available=row["freezes_available"],
            max_monthly_freezes=row["max_monthly_freezes"],
            last_reset_month=row["last_reset_month"],
            active_freezes=active,
        )

    def save_freeze_inventory(self, state: StreakFreezeState) -> None:
        self.conn.execute(
            """INSERT INTO freeze_inventory (id, freezes_available, max_monthly_freezes,
                   last_reset_month)
               VALUES (1, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   freezes_available = excluded.freezes_available,
                   max_monthly_freezes = excluded.max_monthly_freezes,
                   last_reset_month = excluded.last_reset_month""",
            (state.freezes_available, state.max_monthly_freezes, state.last_reset_month),
        )
        self._commit()

    def activate_freeze(self, target_app: str, date: str) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO active_freezes (target_app, freeze_date) VALUES (?, ?)",
            (target_app, date),
        )
        self._commit()

    def deactivate_freeze(self, target_app: str) -> None:
        self.conn.execute("DELETE FROM active_freezes WHERE target_app = ?", (target_app,))
        self._commit()

    # ── Retention ───────────────────────────────────────────────────────────

    def cleanup_older_than(self, cutoff_date: str, cutoff_ms: int) -> Dict[str, int]:
        """
        Delete sessions and stats dated before cutoff_date and intervention
        results stamped before cutoff_ms. Returns deleted counts per table.
        """
        with self.transaction():
            results = self.conn.execute(
                "DELETE FROM intervention_results WHERE timestamp < ? "
                "OR session_id IN (SELECT id FROM usage_sessions WHERE date < ?)",
                (cutoff_ms, cutoff_date),
            ).rowcount
            sessions = self.conn.execute(
                "DELETE FROM usage_sessions WHERE date < ?", (cutoff_date,)
            ).rowcount
            stats = self.conn.execute(
                "DELETE FROM daily_stats WHERE date < ?", (cutoff_date,)
            ).rowcount
        counts = {"intervention_results": results, "usage_sessions": sessions, "daily_stats": stats}
        logger.info("Retention cleanup before %s: %s", cutoff_date, counts)
        return counts

    # ── Row mappers ─────────────────────────────────────────────────────────

    @staticmethod
    def _row_to_goal(row: sqlite3.Row) -> Goal:
        return Goal(
            target_app=row["target_app"],
            daily_limit_minutes=row["daily_limit_minutes"],
            start_date=row["start_date"],
            current_streak=row["current_streak"],
            longest_streak=row["longest_streak"],
            last_updated=row["last_updated"],
            last_evaluated_date=row["last_evaluated_date"],
        )

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> Session:
        return Session(
            id=row["id"], target_app=row["target_app"],
            start_timestamp=row["start_timestamp"],
            end_timestamp=row["end_timestamp"],
            duration=row["duration"],
            was_interrupted=bool(row["was_interrupted"]),
            interruption_type=row["interruption_type"],
            date=row["date"],
        )

    @staticmethod
    def _row_to_stat(row: sqlite3.Row) -> DailyStat:
        return DailyStat(
            date=row["date"], target_app=row["target_app"],
            total_duration=row["total_duration"],
            session_count=row["session_count"],
            longest_session=row["longest_session"],
            average_session=row["average_session"],
            alerts_shown=row["alerts_shown"],
            alerts_proceeded=row["alerts_proceeded"],
            is_estimated=bool(row["is_estimated"]),
            last_updated=row["last_updated"],
        )

    @staticmethod
    def _row_to_recovery(row: sqlite3.Row) -> StreakRecovery:
        return StreakRecovery(
            target_app=row["target_app"],
            previous_streak=row["previous_streak"],
            recovery_start_date=row["recovery_start_date"],
            current_recovery_days=row["current_recovery_days"],
            is_recovery_complete=bool(row["is_recovery_complete"]),
            recovery_completed_date=row["recovery_completed_date"],
            notification_shown=bool(row["notification_shown"]),
            timestamp=row["timestamp"],
        )

    @staticmethod
    def _row_to_result(row: sqlite3.Row) -> InterventionResult:
        ended = row["session_ended_normally"]
        return InterventionResult(
            id=row["id"], session_id=row["session_id"],
            target_app=row["target_app"],
            intervention_type=row["intervention_type"],
            content_type=row["content_type"],
            hour_of_day=row["hour_of_day"],
            day_of_week=row["day_of_week"],
            is_weekend=bool(row["is_weekend"]),
            is_late_night=bool(row["is_late_night"]),
            session_count=row["session_count"],
            quick_reopen=bool(row["quick_reopen"]),
            current_session_duration_ms=row["current_session_duration_ms"],
            user_choice=row["user_choice"],
            time_to_show_decision_ms=row["time_to_show_decision_ms"],
            final_session_duration_ms=row["final_session_duration_ms"],
            session_ended_normally=None if ended is None else bool(ended),
            timestamp=row["timestamp"],
        )


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   The Repository is the ONLY place raw SQL queries live. The seed
#   orchestrator, the streak service and the rollover job call methods like
#   repo.upsert_goal() instead of writing SQL strings.
#
# Key methods:
#   - transaction(): groups writes into one commit (nested blocks join the
#     outer one). Seeding and each goal's rollover step run inside one, so a
#     crash never leaves half a streak update behind.
#   - insert_session / bulk_insert_stats / bulk_insert_intervention_results:
#     all upserts on natural keys, which is what makes seeding re-runnable.
#   - update_intervention_outcome(): the "exactly once" outcome write, done
#     with a WHERE ... IS NULL guard instead of read-then-write.
#   - stale_goals(): lets operators spot goals a failed rollover skipped.
#
# Interviewer-friendly talking points:
#   1. Repository pattern isolates SQL: swapping SQLite for Postgres only
#      touches this file.
#   2. ON CONFLICT DO UPDATE is SQLite's upsert (3.24+). Idempotent writes
#      without a separate "check then insert" round-trip.
#   3. Guarded UPDATEs (WHERE col IS NULL) are a cheap way to get
#      exactly-once semantics under at-least-once delivery.
