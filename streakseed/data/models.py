"""
Data models for streakseed.

These are plain dataclasses that represent database rows. They decouple the
rest of the engine from raw SQL rows so every layer speaks the same "language."
All timestamps are epoch milliseconds; dates are local 'YYYY-MM-DD' strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass
class Session:
    """One continuous usage interval of a target app."""
    target_app: str = ""
    start_timestamp: int = 0
    end_timestamp: int = 0
    duration: int = 0
    date: str = ""
    was_interrupted: bool = False
    interruption_type: Optional[str] = None
    id: Optional[int] = None  # assigned by the store on insert

    @property
    def natural_key(self) -> tuple:
        return (self.target_app, self.start_timestamp, self.end_timestamp)


@dataclass
class Goal:
    """Daily limit and streak state for one app."""
    target_app: str = ""
    daily_limit_minutes: int = 0
    start_date: str = ""
    current_streak: int = 0
    longest_streak: int = 0
    last_updated: Optional[int] = None
    last_evaluated_date: Optional[str] = None  # rollover dedup key


@dataclass
class DailyStat:
    """Per (date, app) rollup. Always derivable from sessions."""
    date: str = ""
    target_app: str = ""
    total_duration: int = 0
    session_count: int = 0
    longest_session: int = 0
    average_session: int = 0
    alerts_shown: int = 0
    alerts_proceeded: int = 0
    is_estimated: bool = False
    last_updated: Optional[int] = None


@dataclass
class StreakRecovery:
    """
    Tracks the comeback after a broken streak.

    Lifecycle: none -> active -> complete. One row per app.
    """
    target_app: str = ""
    previous_streak: int = 0
    recovery_start_date: str = ""
    current_recovery_days: int = 0
    is_recovery_complete: bool = False
    recovery_completed_date: Optional[str] = None
    notification_shown: bool = False
    timestamp: int = 0

    def recovery_target(self, max_days: int = 7) -> int:
        """Half the broken streak, at least 1 day, capped at max_days."""
        return min(max(self.previous_streak // 2, 1), max_days)

    def progress(self, max_days: int = 7) -> float:
        target = self.recovery_target(max_days)
        return max(0.0, min(1.0, self.current_recovery_days / target))

    @property
    def is_active(self) -> bool:
        return not self.is_recovery_complete


@dataclass
class StreakFreezeState:
    """Freeze inventory plus the freezes currently armed per app."""
    freezes_available: int = 0
    max_monthly_freezes: int = 3
    last_reset_month: str = ""
    active_freezes: Dict[str, str] = field(default_factory=dict)  # app -> date

    def has_active_freeze(self, target_app: str) -> bool:
        return target_app in self.active_freezes

    def covers(self, target_app: str, date: str) -> bool:
        return self.active_freezes.get(target_app) == date


@dataclass
class InterventionResult:
    """
    One intervention shown for a session and what the user did.

    user_choice is one of 'PROCEED', 'GO_BACK', 'DISMISSED'.
    The outcome fields stay None until the session ends (live path).
    """
    session_id: Optional[int] = None
    target_app: str = ""
    intervention_type: str = "REMINDER"  # 'REMINDER' or 'TIMER'
    content_type: str = ""
    hour_of_day: int = 0
    day_of_week: int = 1  # 1=Sunday .. 7=Saturday
    is_weekend: bool = False
    is_late_night: bool = False
    session_count: int = 0
    quick_reopen: bool = False
    current_session_duration_ms: int = 0
    user_choice: str = ""
    time_to_show_decision_ms: int = 0
    final_session_duration_ms: Optional[int] = None
    session_ended_normally: Optional[bool] = None
    timestamp: int = 0
    id: Optional[int] = None

    @property
    def outcome_pending(self) -> bool:
        return self.final_session_duration_ms is None


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   Defines the "shape" of every entity the engine produces or reads:
#   sessions, goals, daily stats, streak recoveries, the freeze inventory and
#   intervention results.
#
# Key classes and why they exist:
#   - Session: the primary timeline. Everything else is derived from it.
#   - Goal: carries last_evaluated_date so the nightly rollover can tell
#     "already processed yesterday" apart from "new day", which is what makes
#     retries safe.
#   - DailyStat: a cache of sums over sessions. is_estimated marks rows whose
#     alert counts are synthetic placeholders, so analytics can tell them
#     apart from real telemetry.
#   - StreakRecovery: small state machine (active -> complete) with its
#     target rule on the model itself.
#   - InterventionResult: written at decision time; the outcome fields are
#     filled exactly once when the session ends.
#
# Interviewer-friendly talking points:
#   1. Integer milliseconds instead of datetime objects: arithmetic on
#      durations and gaps stays exact and serializes trivially.
#   2. Natural keys (app + start + end) let re-runs upsert instead of
#      duplicating rows.
