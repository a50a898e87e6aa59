"""
Daily rollover job — the nightly pass over "yesterday".

Steps, in order:
  1. Aggregate yesterday's sessions into daily stats (exact alert counts).
  2. Refill the monthly freeze allowance if the month changed.
  3. Update every goal's streak (StreakService).
  4. Retention cleanup of old rows and completed recoveries.

Each run is a RolloverTask with an attempt counter. Transient store errors
are retried up to the budget; after that the task is FAILED and the goals
left behind are reported via Repository.stale_goals().
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from streakseed.config import DEFAULT_SETTINGS, STREAK_LOOKBACK_DAYS, EngineSettings
from streakseed.data.repository import Repository
from streakseed.errors import RolloverRetryableError
from streakseed.seed.time_distribution import (
    MS_PER_DAY,
    Clock,
    date_range,
    date_to_timestamp,
    shift_date,
)
from streakseed.services.aggregator import DailyAggregator
from streakseed.services.streak_service import StreakService

logger = logging.getLogger(__name__)


class TaskStatus:
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class RolloverTask:
    """One scheduled invocation for one logical day."""
    date: str
    year_month: str
    attempts: int = 0
    status: str = TaskStatus.PENDING
    last_error: Optional[str] = None
    stats_written: int = 0
    outcomes: Dict[str, str] = field(default_factory=dict)
    stale_apps: List[str] = field(default_factory=list)


class DailyRolloverJob:
    """Runs the nightly steps with a fixed retry budget."""

    def __init__(
        self,
        repo: Repository,
        clock: Clock,
        settings: EngineSettings = DEFAULT_SETTINGS,
    ) -> None:
        self.repo = repo
        self.clock = clock
        self.settings = settings
        self.aggregator = DailyAggregator(clock, settings)
        self.streaks = StreakService(repo, clock, settings)

    def create_task(self, date: Optional[str] = None) -> RolloverTask:
        return RolloverTask(
            date=date or self.clock.date_days_ago(1),
            year_month=self.clock.current_month(),
        )

    def run(self, date: Optional[str] = None) -> RolloverTask:
        """Run (and retry) the rollover for `date` (default: yesterday)."""
        task = self.create_task(date)
        return self.execute(task)

    def execute(self, task: RolloverTask) -> RolloverTask:
        max_attempts = self.settings.max_rollover_attempts
        while task.attempts < max_attempts:
            task.attempts += 1
            task.status = TaskStatus.RUNNING
            logger.info("Rollover for %s: attempt %d/%d", task.date, task.attempts, max_attempts)
            try:
                self._attempt(task)
            except RolloverRetryableError as exc:
                task.last_error = str(exc)
                if task.attempts >= max_attempts:
                    task.status = TaskStatus.FAILED
                    logger.exception("Rollover for %s failed after %d attempts", task.date, task.attempts)
                    task.stale_apps = self._stale_apps(task.date)
                    return task
                logger.warning("Rollover for %s failed, retrying: %s", task.date, exc)
                continue
            task.status = TaskStatus.SUCCEEDED
            logger.info("Rollover for %s complete: %s", task.date, task.outcomes)
            return task
        return task

    def catch_up(self, through_date: Optional[str] = None) -> List[RolloverTask]:
        """
        Re-run every day a failed or skipped rollover left unevaluated, oldest
        first, up to through_date (default: yesterday). Stops at the first
        failed day so later days are never evaluated out of order.
        """
        through_date = through_date or self.clock.date_days_ago(1)
        stale = self.repo.stale_goals(through_date)
        if not stale:
            return []

        evaluated = [g.last_evaluated_date for g in stale if g.last_evaluated_date]
        start = shift_date(min(evaluated), 1) if evaluated else through_date
        earliest = shift_date(through_date, -(STREAK_LOOKBACK_DAYS - 1))
        start = max(start, earliest)

        tasks: List[RolloverTask] = []
        for day in date_range(start, through_date):
            task = self.run(day)
            tasks.append(task)
            if task.status == TaskStatus.FAILED:
                break
        return tasks

    # -- internal ------------------------------------------------------------

    def _attempt(self, task: RolloverTask) -> None:
        try:
            task.stats_written = self._aggregate(task.date)
            self.streaks.reset_monthly_freezes(task.year_month)
            task.outcomes = self.streaks.update_streaks(task.date)
            self._cleanup()
        except sqlite3.Error as exc:
            raise RolloverRetryableError(task.date, exc) from exc

    def _aggregate(self, date: str) -> int:
        start_ms = date_to_timestamp(date, self.clock.tz)
        end_ms = date_to_timestamp(shift_date(date, 1), self.clock.tz) - 1
        sessions = self.repo.get_sessions_in_range(None, date, date)
        results = self.repo.list_intervention_results(start_ms, end_ms)
        stats = self.aggregator.aggregate_day(date, sessions, results)
        return self.repo.bulk_insert_stats(stats)

    def _cleanup(self) -> None:
        now = self.clock.now_ms()
        removed = self.repo.delete_completed_recoveries_older_than(
            now - self.settings.recovery_retention_days * MS_PER_DAY
        )
        if removed:
            logger.info("Removed %d completed recoveries", removed)
        self.repo.cleanup_older_than(
            self.clock.date_days_ago(self.settings.data_retention_days),
            now - self.settings.data_retention_days * MS_PER_DAY,
        )

    def _stale_apps(self, date: str) -> List[str]:
        try:
            stale = [g.target_app for g in self.repo.stale_goals(date)]
        except sqlite3.Error:
            logger.exception("Could not list stale goals for %s", date)
            return []
        if stale:
            logger.warning("Goals not evaluated for %s: %s", date, ", ".join(stale))
        return stale


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   The "midnight job". It turns yesterday's raw sessions into stats,
#   refills freezes on a new month, advances or breaks streaks, and prunes
#   old data.
#
# Key points:
#   - RolloverTask makes the retry state explicit: date, attempts, status,
#     last error. No hidden scheduler state.
#   - Every step is idempotent: stats are upserts, the freeze reset is keyed
#     by month, streak updates are keyed by last_evaluated_date. A retry after
#     a partial failure simply redoes the work that did not commit.
#   - sqlite3 errors become RolloverRetryableError. After the budget the task
#     is FAILED, logged with a traceback, and the un-evaluated goals are
#     listed so catch_up() (or an operator) can fix them.
#
# Data flow:
#   main.py -> DailyRolloverJob.run() -> DailyAggregator + StreakService ->
#   Repository
#
# Interviewer-friendly talking points:
#   1. At-least-once delivery + idempotent handlers = effectively-once.
#   2. catch_up() stops at the first failed day: streaks must be evaluated in
#      date order or a later "met" could be counted before an earlier "missed".
