"""Unit tests for persona detection."""

import sqlite3
import pytest
from datetime import timezone
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from streakseed.data.database import SCHEMA_SQL
from streakseed.data.models import InterventionResult, Session
from streakseed.data.repository import Repository
from streakseed.ml.persona_detector import (
    Confidence, PersonaCache, PersonaDetector, UsageTrend, UserPersona,
    classify, confidence_for, usage_trend,
)
from streakseed.seed.time_distribution import MS_PER_DAY, FixedClock, date_to_timestamp, shift_date

UTC = timezone.utc
APP = "com.instagram.android"
NOW_MS = date_to_timestamp("2024-03-13", UTC, 12, 0)
SIX_HOURS_MS = 6 * 60 * 60 * 1000


@pytest.fixture
def repo():
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    conn.executescript(SCHEMA_SQL)
    conn.commit()
    return Repository(conn)


@pytest.fixture
def clock():
    return FixedClock(NOW_MS, UTC)


@pytest.fixture
def detector(repo, clock):
    return PersonaDetector(repo, clock, install_ms=NOW_MS - 30 * MS_PER_DAY)


def sessions_per_day(counts, start_date="2024-03-01", minutes=5):
    """One list of sessions with counts[i] sessions on day i."""
    sessions = []
    for i, count in enumerate(counts):
        date = shift_date(start_date, i)
        for n in range(count):
            start = date_to_timestamp(date, UTC, 8, 0) + n * 30 * 60_000
            duration = minutes * 60_000
            sessions.append(Session(target_app=APP, start_timestamp=start,
                                    end_timestamp=start + duration, duration=duration, date=date))
    return sessions


class TestClassify:
    def test_new_user_first(self):
        assert classify(5, 20, 2, 0.9, UsageTrend.ESCALATING) == UserPersona.NEW_USER

    def test_problematic(self):
        assert classify(20, 10, 3, 0.5, UsageTrend.ESCALATING) == UserPersona.PROBLEMATIC_PATTERN
        assert classify(20, 10, 3, 0.4, UsageTrend.ESCALATING) != UserPersona.PROBLEMATIC_PATTERN

    def test_heavy_compulsive(self):
        assert classify(20, 16, 3, 0.35, UsageTrend.STABLE) == UserPersona.HEAVY_COMPULSIVE

    def test_heavy_binge(self):
        assert classify(20, 7, 25, 0.1, UsageTrend.STABLE) == UserPersona.HEAVY_BINGE

    def test_moderate_and_casual(self):
        assert classify(20, 10, 6, 0.1, UsageTrend.STABLE) == UserPersona.MODERATE_BALANCED
        assert classify(20, 3, 6, 0.1, UsageTrend.STABLE) == UserPersona.CASUAL_USER
        assert classify(20, 14, 6, 0.1, UsageTrend.STABLE) == UserPersona.MODERATE_BALANCED


class TestTrend:
    def test_too_little_data_is_stable(self):
        assert usage_trend(sessions_per_day([1, 1]), 14) == UsageTrend.STABLE
        assert usage_trend(sessions_per_day([5, 5, 5]), 2) == UsageTrend.STABLE

    def test_increasing(self):
        assert usage_trend(sessions_per_day([1, 2, 3, 4, 5, 6]), 14) == UsageTrend.INCREASING

    def test_escalating_needs_volume(self):
        assert usage_trend(sessions_per_day([11, 12, 13, 14, 15, 16]), 14) == UsageTrend.ESCALATING

    def test_declining(self):
        assert usage_trend(sessions_per_day([6, 5, 4, 3, 2, 1]), 14) == UsageTrend.DECLINING

    def test_flat(self):
        assert usage_trend(sessions_per_day([4, 4, 4, 4]), 14) == UsageTrend.STABLE

    def test_confidence(self):
        assert confidence_for(3) == Confidence.LOW
        assert confidence_for(10) == Confidence.MEDIUM
        assert confidence_for(14) == Confidence.HIGH


class TestPersonaDetector:
    def test_new_install(self, repo, clock):
        detector = PersonaDetector(repo, clock, install_ms=NOW_MS - 2 * MS_PER_DAY)
        detected = detector.detect_persona()
        assert detected.persona == UserPersona.NEW_USER
        assert detected.confidence == Confidence.LOW
        assert detected.analytics.total_sessions == 0

    def test_casual_user(self, repo, detector):
        for s in sessions_per_day([3] * 7):
            repo.insert_session(s)
        detected = detector.detect_persona()
        analytics = detected.analytics
        assert analytics.days_since_install == 30
        assert analytics.total_sessions == 21
        assert analytics.avg_daily_sessions == pytest.approx(21 / 14)
        assert analytics.avg_session_length_min == pytest.approx(5.0)
        assert detected.persona == UserPersona.CASUAL_USER
        assert detected.confidence == Confidence.HIGH

    def test_quick_reopen_rate_from_results(self, repo, detector):
        ids = [repo.insert_session(s) for s in sessions_per_day([4], start_date="2024-03-12")]
        repo.bulk_insert_intervention_results([
            InterventionResult(session_id=sid, target_app=APP, content_type="ReflectionQuestion",
                               user_choice="PROCEED", quick_reopen=(i % 2 == 0),
                               timestamp=date_to_timestamp("2024-03-12", UTC, 8) + i)
            for i, sid in enumerate(ids)
        ])
        assert detector.gather_analytics().quick_reopen_rate == pytest.approx(0.5)

    def test_quick_reopen_rate_from_sessions(self, repo, detector):
        start = date_to_timestamp("2024-03-12", UTC, 8)
        for offset in (0, 6 * 60_000, 60 * 60_000):
            repo.insert_session(Session(target_app=APP, start_timestamp=start + offset,
                                        end_timestamp=start + offset + 5 * 60_000,
                                        duration=5 * 60_000, date="2024-03-12"))
        assert detector.gather_analytics().quick_reopen_rate == pytest.approx(1 / 3)


class TestPersonaCache:
    def test_cached_until_ttl(self, repo, clock, detector):
        first = detector.detect_persona()
        for s in sessions_per_day([20] * 3, start_date="2024-03-10"):
            repo.insert_session(s)
        assert detector.detect_persona() is first

        clock.advance(SIX_HOURS_MS)
        second = detector.detect_persona()
        assert second is not first
        assert second.analytics.total_sessions == 60

    def test_clear_cache(self, detector):
        first = detector.detect_persona()
        detector.clear_cache()
        assert detector.cache is None
        assert detector.detect_persona() is not first

    def test_force_refresh(self, detector):
        first = detector.detect_persona()
        assert detector.detect_persona(force_refresh=True) is not first

    def test_freshness_window(self):
        cache = PersonaCache(value=None, computed_at=1000)
        assert cache.is_fresh(1000, 10)
        assert not cache.is_fresh(1010, 10)
        assert not cache.is_fresh(999, 10)
