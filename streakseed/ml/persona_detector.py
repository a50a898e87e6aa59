"""
Persona Detector — classifies a live user into a behavioral persona.

Design philosophy:
  - Works with tiny datasets; below 3 days the trend is simply "stable".
  - Plain least-squares slope on sessions per day, no heavy frameworks.
  - Result is cached for a few hours in an explicit PersonaCache owned by
    this instance. clear_cache() forces a fresh analysis.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from streakseed.config import DEFAULT_SETTINGS, EngineSettings
from streakseed.data.models import InterventionResult, Session
from streakseed.data.repository import Repository
from streakseed.seed.quick_reopen import detect
from streakseed.seed.time_distribution import MS_PER_DAY, Clock, date_to_timestamp, shift_date

logger = logging.getLogger(__name__)

MIN_DAYS_FOR_ANALYSIS = 3
OPTIMAL_DAYS_FOR_ANALYSIS = 14


class UserPersona:
    NEW_USER = "NEW_USER"
    PROBLEMATIC_PATTERN = "PROBLEMATIC_PATTERN"
    HEAVY_COMPULSIVE = "HEAVY_COMPULSIVE"
    HEAVY_BINGE = "HEAVY_BINGE"
    MODERATE_BALANCED = "MODERATE_BALANCED"
    CASUAL_USER = "CASUAL_USER"


class UsageTrend:
    ESCALATING = "ESCALATING"
    INCREASING = "INCREASING"
    STABLE = "STABLE"
    DECREASING = "DECREASING"
    DECLINING = "DECLINING"


class Confidence:
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass(frozen=True)
class PersonaAnalytics:
    days_since_install: int
    total_sessions: int
    avg_daily_sessions: float
    avg_session_length_min: float
    quick_reopen_rate: float
    usage_trend: str
    last_analysis_date: str


@dataclass(frozen=True)
class DetectedPersona:
    persona: str
    confidence: str
    analytics: PersonaAnalytics
    detected_at: int


@dataclass(frozen=True)
class PersonaCache:
    """A detection result and when it was computed."""
    value: DetectedPersona
    computed_at: int

    def is_fresh(self, now_ms: int, ttl_ms: int) -> bool:
        return 0 <= now_ms - self.computed_at < ttl_ms


def classify(
    days_since_install: int,
    avg_daily_sessions: float,
    avg_session_length_min: float,
    quick_reopen_rate: float,
    usage_trend: str,
) -> str:
    """First matching rule wins."""
    if days_since_install < 14:
        return UserPersona.NEW_USER
    if usage_trend == UsageTrend.ESCALATING and quick_reopen_rate > 0.40:
        return UserPersona.PROBLEMATIC_PATTERN
    if avg_daily_sessions >= 15 and quick_reopen_rate >= 0.35 and avg_session_length_min < 5:
        return UserPersona.HEAVY_COMPULSIVE
    if avg_daily_sessions >= 6 and avg_session_length_min >= 20:
        return UserPersona.HEAVY_BINGE
    if 8 <= avg_daily_sessions <= 13:
        return UserPersona.MODERATE_BALANCED
    if avg_daily_sessions < 8:
        return UserPersona.CASUAL_USER
    return UserPersona.MODERATE_BALANCED


def usage_trend(sessions: List[Session], analysis_days: int) -> str:
    """
    Fit y = m*x + b to sessions-per-day (x = day index, days with no
    sessions are left out) and classify the slope.
    """
    if len(sessions) < 3 or analysis_days < 3:
        return UsageTrend.STABLE

    per_day: Dict[str, int] = {}
    for s in sessions:
        per_day[s.date] = per_day.get(s.date, 0) + 1
    if len(per_day) < 3:
        return UsageTrend.STABLE

    y = np.array([per_day[d] for d in sorted(per_day)], dtype=float)
    x = np.arange(len(y), dtype=float)
    A = np.vstack([x, np.ones(len(x))]).T
    slope, _ = np.linalg.lstsq(A, y, rcond=None)[0]
    avg_daily = float(np.mean(y))

    if slope > 0.5 and avg_daily > 10:
        return UsageTrend.ESCALATING
    if slope > 0.2:
        return UsageTrend.INCREASING
    if slope < -0.5:
        return UsageTrend.DECLINING
    if slope < -0.2:
        return UsageTrend.DECREASING
    return UsageTrend.STABLE


def confidence_for(days_since_install: int) -> str:
    if days_since_install < 7:
        return Confidence.LOW
    if days_since_install < 14:
        return Confidence.MEDIUM
    return Confidence.HIGH


class PersonaDetector:
    """
    Detects the persona from the last few days of stored sessions and
    intervention results.
    """

    def __init__(
        self,
        repo: Repository,
        clock: Clock,
        install_ms: int,
        settings: EngineSettings = DEFAULT_SETTINGS,
    ) -> None:
        self.repo = repo
        self.clock = clock
        self.install_ms = install_ms
        self.settings = settings
        self.cache: Optional[PersonaCache] = None

    # ── Public API ──────────────────────────────────────────────────────────

    def detect_persona(self, force_refresh: bool = False) -> DetectedPersona:
        now = self.clock.now_ms()
        if (
            not force_refresh
            and self.cache is not None
            and self.cache.is_fresh(now, self.settings.persona_cache_ttl_ms)
        ):
            logger.debug("Using cached persona: %s", self.cache.value.persona)
            return self.cache.value

        analytics = self.gather_analytics()
        detected = DetectedPersona(
            persona=classify(
                analytics.days_since_install,
                analytics.avg_daily_sessions,
                analytics.avg_session_length_min,
                analytics.quick_reopen_rate,
                analytics.usage_trend,
            ),
            confidence=confidence_for(analytics.days_since_install),
            analytics=analytics,
            detected_at=now,
        )
        self.cache = PersonaCache(value=detected, computed_at=now)
        logger.info("Detected persona: %s (%s)", detected.persona, detected.confidence)
        return detected

    def clear_cache(self) -> None:
        self.cache = None
        logger.debug("Persona detection cache cleared")

    # ── Internal ────────────────────────────────────────────────────────────

    def gather_analytics(self) -> PersonaAnalytics:
        now = self.clock.now_ms()
        days_since_install = max(0, (now - self.install_ms) // MS_PER_DAY)
        analysis_days = min(OPTIMAL_DAYS_FOR_ANALYSIS, max(MIN_DAYS_FOR_ANALYSIS, days_since_install))

        end_date = self.clock.today()
        start_date = shift_date(end_date, -analysis_days)
        start_ms = date_to_timestamp(start_date, self.clock.tz)
        end_ms = date_to_timestamp(shift_date(end_date, 1), self.clock.tz) - 1

        sessions = self.repo.get_sessions_in_range(None, start_date, end_date)
        results = self.repo.list_intervention_results(start_ms, end_ms)

        lengths = [s.duration / 60000.0 for s in sessions if s.duration > 0]
        return PersonaAnalytics(
            days_since_install=int(days_since_install),
            total_sessions=len(sessions),
            avg_daily_sessions=len(sessions) / analysis_days,
            avg_session_length_min=float(np.mean(lengths)) if lengths else 0.0,
            quick_reopen_rate=self._quick_reopen_rate(sessions, results),
            usage_trend=usage_trend(sessions, analysis_days),
            last_analysis_date=end_date,
        )

    def _quick_reopen_rate(
        self, sessions: List[Session], results: List[InterventionResult]
    ) -> float:
        """Share of interventions flagged quick reopen; sessions if there are none."""
        if results:
            return sum(1 for r in results if r.quick_reopen) / len(results)
        if not sessions:
            return 0.0
        flags = detect(sessions, self.settings.quick_reopen_threshold_ms)
        return sum(1 for v in flags.values() if v) / len(sessions)


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   Looks at the last 3-14 days of usage and labels the user: new user,
#   compulsive checker, binge user, balanced, casual, or "problematic"
#   (escalating usage plus lots of quick reopens). The label feeds content
#   selection elsewhere.
#
# Key design decisions:
#   - Rule list, first match wins. Easy to explain, easy to test, and
#     robust on two weeks of data where a trained model would overfit.
#   - Trend = least-squares slope of sessions per day (numpy lstsq). Days are
#     indexed in order, so the slope reads as "sessions per day, per day".
#   - Confidence grows with days since install: LOW < 7, MEDIUM < 14, HIGH.
#
# Cache:
#   PersonaCache(value, computed_at) lives on the detector instance. No
#   module-level globals: two detectors never see each other's results, and
#   tests can inspect or clear the cache directly.
#
# Interviewer-friendly talking points:
#   1. A stale cache is only a cost, never a correctness bug: the result is
#      always recomputable from stored rows.
#   2. Falling back to detect() on sessions when there are no intervention
#      results keeps the quick-reopen rate meaningful for brand-new users.
