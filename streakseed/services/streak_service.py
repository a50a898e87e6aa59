"""
Streak Service — the live goal/streak state machine.

Runs once a day against "yesterday": compares usage to each goal, advances
or breaks the streak, consumes armed freezes and tracks streak recovery.
Every per-goal update is keyed on Goal.last_evaluated_date, so running the
same day twice is a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Union

from streakseed.config import DEFAULT_SETTINGS, RECOVERY_MILESTONES, EngineSettings
from streakseed.data.models import Goal, StreakRecovery
from streakseed.data.repository import Repository
from streakseed.seed.time_distribution import MS_PER_MINUTE, Clock, shift_date

logger = logging.getLogger(__name__)


class StreakOutcome:
    MET = "met"
    MISSED = "missed"
    FROZEN = "frozen"
    ALREADY_EVALUATED = "already_evaluated"
    NO_GOAL = "no_goal"


@dataclass(frozen=True)
class FreezeSuccess:
    target_app: str
    date: str
    freezes_remaining: int


@dataclass(frozen=True)
class FreezeError:
    reason: str


FreezeResult = Union[FreezeSuccess, FreezeError]


class StreakService:
    """Applies one day of usage to every goal."""

    def __init__(
        self,
        repo: Repository,
        clock: Clock,
        settings: EngineSettings = DEFAULT_SETTINGS,
    ) -> None:
        self.repo = repo
        self.clock = clock
        self.settings = settings

    # ── Daily update ────────────────────────────────────────────────────────

    def update_streaks(self, date: Optional[str] = None) -> Dict[str, str]:
        """
        Evaluate `date` (default: yesterday) for every goal.

        Returns {app: StreakOutcome}. Store errors propagate; goals already
        processed keep their committed state.
        """
        date = date or self.clock.date_days_ago(1)
        goals = self.repo.list_goals()
        logger.info("Updating streaks for %d goals for %s", len(goals), date)
        outcomes = {}
        for goal in goals:
            outcomes[goal.target_app] = self.update_streak_for_goal(goal.target_app, date)
        return outcomes

    def update_streak_for_goal(self, target_app: str, date: str) -> str:
        """One goal, one day, one transaction."""
        with self.repo.transaction():
            frozen = self._consume_freeze(target_app, date)
            goal = self.repo.get_goal(target_app)
            if goal is None:
                return StreakOutcome.NO_GOAL
            if goal.last_evaluated_date is not None and goal.last_evaluated_date >= date:
                logger.debug("%s already evaluated through %s; skipping %s",
                             target_app, goal.last_evaluated_date, date)
                return StreakOutcome.ALREADY_EVALUATED

            usage_minutes = self.usage_minutes(target_app, date)
            goal_met = usage_minutes <= goal.daily_limit_minutes
            logger.info(
                "%s on %s: usage=%d min, limit=%d min, met=%s, streak=%d, freeze=%s",
                target_app, date, usage_minutes, goal.daily_limit_minutes,
                goal_met, goal.current_streak, frozen,
            )

            if goal_met:
                outcome = StreakOutcome.MET
                self._on_goal_met(goal, date)
            elif frozen:
                outcome = StreakOutcome.FROZEN
                logger.info("Freeze used for %s on %s; streak kept at %d",
                            target_app, date, goal.current_streak)
            else:
                outcome = StreakOutcome.MISSED
                self._on_goal_missed(goal, date)

            goal.last_evaluated_date = date
            goal.last_updated = self.clock.now_ms()
            self.repo.upsert_goal(goal)
        return outcome

    def usage_minutes(self, target_app: str, date: str) -> int:
        sessions = self.repo.get_sessions_in_range(target_app, date, date)
        return sum(s.duration for s in sessions) // MS_PER_MINUTE

    def _consume_freeze(self, target_app: str, date: str) -> bool:
        """
        Disarm any freeze dated on or before `date`. Returns True when the
        disarmed freeze was for `date` itself.

        Inventory was charged at activation, so nothing is refunded here.
        """
        freezes = self.repo.get_freeze_state(self.settings.max_monthly_freezes)
        armed_for = freezes.active_freezes.get(target_app)
        if armed_for is None or armed_for > date:
            return False
        self.repo.deactivate_freeze(target_app)
        if armed_for < date:
            logger.warning("Stale freeze for %s on %s disarmed", target_app, armed_for)
        return armed_for == date

    def _on_goal_met(self, goal: Goal, date: str) -> None:
        goal.current_streak += 1
        goal.longest_streak = max(goal.longest_streak, goal.current_streak)

        recovery = self.repo.get_recovery(goal.target_app)
        if recovery is None or recovery.is_recovery_complete:
            return

        recovery.current_recovery_days += 1
        target = recovery.recovery_target(self.settings.recovery_target_max_days)
        if recovery.current_recovery_days >= target:
            recovery.is_recovery_complete = True
            # The day the rollover for `date` runs, not wall-clock today.
            recovery.recovery_completed_date = shift_date(date, 1)
            recovery.notification_shown = False
            logger.info("%s recovery complete: %d/%d days",
                        goal.target_app, recovery.current_recovery_days, target)
        elif recovery.current_recovery_days in RECOVERY_MILESTONES:
            recovery.notification_shown = False
            logger.info("%s recovery milestone: %d/%d days",
                        goal.target_app, recovery.current_recovery_days, target)
        recovery.timestamp = self.clock.now_ms()
        self.repo.upsert_recovery(recovery)

    def _on_goal_missed(self, goal: Goal, date: str) -> None:
        previous = goal.current_streak
        if previous >= self.settings.min_streak_for_recovery:
            self.repo.upsert_recovery(StreakRecovery(
                target_app=goal.target_app,
                previous_streak=previous,
                recovery_start_date=shift_date(date, 1),
                timestamp=self.clock.now_ms(),
            ))
            logger.info("%s streak broken at %d days; recovery started", goal.target_app, previous)
        else:
            logger.debug("%s missed its goal with no streak to lose", goal.target_app)
        goal.current_streak = 0

    # ── Freezes ─────────────────────────────────────────────────────────────

    def reset_monthly_freezes(self, year_month: Optional[str] = None) -> bool:
        """Refill the freeze allowance once per month. Returns True if it reset."""
        year_month = year_month or self.clock.current_month()
        with self.repo.transaction():
            state = self.repo.get_freeze_state(self.settings.max_monthly_freezes)
            if state.last_reset_month == year_month:
                logger.debug("No freeze reset needed; still in %s", year_month)
                return False
            previous_month = state.last_reset_month
            state.freezes_available = state.max_monthly_freezes
            state.last_reset_month = year_month
            self.repo.save_freeze_inventory(state)
        logger.info("Monthly freezes reset to %d for %s (last reset: %s)",
                    state.freezes_available, year_month, previous_month or "never")
        return True

    def activate_freeze(self, target_app: str, date: Optional[str] = None) -> FreezeResult:
        """
        Spend one freeze to protect (app, date). Expected refusals come back
        as FreezeError rather than exceptions.

        Only a goal's unevaluated days can be frozen; a freeze for a day the
        rollover has already passed would never be consumed.
        """
        date = date or self.clock.today()
        with self.repo.transaction():
            goal = self.repo.get_goal(target_app)
            if goal is None:
                logger.warning("Freeze requested for %s but it has no goal", target_app)
                return FreezeError("No goal set for this app")
            if goal.last_evaluated_date is not None and date <= goal.last_evaluated_date:
                logger.warning("Freeze requested for %s on %s but it is evaluated through %s",
                               target_app, date, goal.last_evaluated_date)
                return FreezeError("Day already evaluated")
            state = self.repo.get_freeze_state(self.settings.max_monthly_freezes)
            if state.freezes_available <= 0:
                logger.warning("Freeze requested for %s but none available", target_app)
                return FreezeError("No freezes available this month")
            if state.has_active_freeze(target_app):
                logger.warning("Freeze requested for %s but one is already active", target_app)
                return FreezeError("Freeze already active for this app")
            state.freezes_available -= 1
            self.repo.save_freeze_inventory(state)
            self.repo.activate_freeze(target_app, date)
        logger.info("Freeze activated for %s on %s; %d left",
                    target_app, date, state.freezes_available)
        return FreezeSuccess(target_app, date, state.freezes_available)

    # ── Queries ─────────────────────────────────────────────────────────────

    def check_today_progress(self, target_app: str) -> bool:
        """True while today's usage is still within the goal."""
        goal = self.repo.get_goal(target_app)
        if goal is None:
            return False
        return self.usage_minutes(target_app, self.clock.today()) <= goal.daily_limit_minutes

    def get_recovery_progress(self, target_app: str) -> Optional[StreakRecovery]:
        return self.repo.get_recovery(target_app)

    def acknowledge_recovery(self, target_app: str) -> None:
        """Record that the user has seen the latest recovery update."""
        recovery = self.repo.get_recovery(target_app)
        if recovery is None:
            raise ValueError(f"No recovery for {target_app}")
        recovery.notification_shown = True
        self.repo.upsert_recovery(recovery)


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   Decides, for each goal, what yesterday did to the streak:
#     met     -> streak + 1, longest = max, recovery (if any) + 1 day
#     missed  -> streak reset to 0, recovery opened if there was a streak
#     frozen  -> missed, but an armed freeze covers the day: streak kept
#
# Key points:
#   - Idempotency: the goal row carries last_evaluated_date. A retried job
#     sees the date already evaluated and returns without touching anything.
#   - Atomicity: goal update, recovery change and freeze disarm for one goal
#     happen inside one repository transaction.
#   - Freezes are charged when activated, not when used, so the rollover
#     never touches the inventory count. It does disarm any freeze dated on
#     or before the day it processes, even a day it skips as already done.
#   - A freeze can only be armed for a day the goal has not been evaluated
#     for yet; otherwise it could never be consumed.
#   - Recovery start/completion dates are the day after the processed date,
#     so a catch-up replay stamps the same days a live run would have.
#   - Recovery target = half the broken streak, at least 1, at most 7 days.
#   - activate_freeze returns FreezeSuccess / FreezeError instead of raising:
#     "no freezes left" is a normal answer, not an exceptional one.
#
# Interviewer-friendly talking points:
#   1. At-least-once schedulers make "set to, keyed by date" safer than
#      "increment blindly".
#   2. Date strings in ISO format compare correctly as strings, which keeps
#      the dedup check a one-liner.
