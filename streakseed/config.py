"""
Tunable constants for the engine.

Defaults live here as module-level constants; services receive an
EngineSettings instance so tests (or a caller) can override any of them
without touching globals.
"""

from __future__ import annotations

from dataclasses import dataclass

# Quick reopen: a session starting within this gap of the previous end
QUICK_REOPEN_THRESHOLD_MS = 2 * 60 * 1000
QUICK_REOPEN_MIN_DELAY_MS = 10 * 1000

# Placeholder alert estimates for synthesized daily stats (no telemetry)
ALERT_SHOWN_FRACTION = 0.6
ALERT_PROCEED_FRACTION = 0.5

# Late-night window used for intervention context tagging (inclusive hours)
LATE_NIGHT_START_HOUR = 22
LATE_NIGHT_END_HOUR = 5

# Streaks, freezes and recovery
DEFAULT_MONTHLY_FREEZES = 3
MIN_STREAK_FOR_RECOVERY = 1
RECOVERY_TARGET_MAX_DAYS = 7
RECOVERY_MILESTONES = (1, 3, 7, 14)

# Rollover job
MAX_ROLLOVER_ATTEMPTS = 3

# Retention (days)
DATA_RETENTION_DAYS = 90
RECOVERY_RETENTION_DAYS = 30

# Real-usage seeding
MIN_REAL_USAGE_MS = 10 * 60 * 1000
REAL_USAGE_GOAL_FACTOR = 0.8
REAL_USAGE_GOAL_MIN = 30
REAL_USAGE_GOAL_MAX = 90
STREAK_LOOKBACK_DAYS = 30

# Persona detection cache
PERSONA_CACHE_TTL_MS = 6 * 60 * 60 * 1000

DEFAULT_TARGET_APPS = ("com.facebook.katana", "com.instagram.android")


@dataclass(frozen=True)
class EngineSettings:
    """Snapshot of every tunable the services read at runtime."""
    quick_reopen_threshold_ms: int = QUICK_REOPEN_THRESHOLD_MS
    alert_shown_fraction: float = ALERT_SHOWN_FRACTION
    alert_proceed_fraction: float = ALERT_PROCEED_FRACTION
    max_monthly_freezes: int = DEFAULT_MONTHLY_FREEZES
    min_streak_for_recovery: int = MIN_STREAK_FOR_RECOVERY
    recovery_target_max_days: int = RECOVERY_TARGET_MAX_DAYS
    max_rollover_attempts: int = MAX_ROLLOVER_ATTEMPTS
    data_retention_days: int = DATA_RETENTION_DAYS
    recovery_retention_days: int = RECOVERY_RETENTION_DAYS
    min_real_usage_ms: int = MIN_REAL_USAGE_MS
    persona_cache_ttl_ms: int = PERSONA_CACHE_TTL_MS


DEFAULT_SETTINGS = EngineSettings()


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   Central home for every "magic number" in the engine: quick-reopen gap,
#   the 60%/50% alert placeholders, freeze allowance, recovery caps, retry
#   budget and retention windows.
#
# Key points:
#   - Constants first, then a frozen EngineSettings dataclass that bundles
#     them. Services take settings in their constructor (dependency injection)
#     instead of importing globals, so a test can shrink the retry budget.
#   - DEFAULT_SETTINGS is immutable, so sharing it is safe.
#
# Interviewer-friendly talking points:
#   1. Keeping tunables in one file makes policy changes reviewable: a diff
#      here is a product decision, not a code change.
#   2. Frozen dataclass = value object. No one can mutate settings mid-run.
