"""Unit tests for the synthetic data pipeline (personas, sessions, reopens, goals, interventions)."""

import random
import sqlite3
import pytest
from dataclasses import replace
from datetime import timezone
from zoneinfo import ZoneInfo

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from streakseed.data.database import SCHEMA_SQL
from streakseed.data.models import Session
from streakseed.data.repository import Repository
from streakseed.errors import ConfigurationError, StoreWriteError
from streakseed.seed.goals import daily_limit_for, generate_goals
from streakseed.seed.interventions import (
    LATENCY_BUCKETS, InterventionType, UserChoice, content_weights,
)
from streakseed.seed.orchestrator import PersonaSeedOrchestrator, SeedSource
from streakseed.seed.personas import (
    BASELINE, GOAL_SKIPPER, PERSONAS, REALISTIC_MIXED, STREAK_ACHIEVER,
    DecisionTimeDistribution, IntRange, InterventionResponse, TimeDistribution, get_persona,
)
from streakseed.seed.quick_reopen import QuickReopenAdjuster, detect
from streakseed.seed.sessions import SessionSynthesizer
from streakseed.seed import time_distribution
from streakseed.seed.time_distribution import (
    Clock, FixedClock, date_to_timestamp, day_of_week, hour_of_day, is_late_night, is_weekend,
    local_zone, sample_hour, timestamp_to_date, weighted_choice,
)

UTC = timezone.utc
APPS = ["com.facebook.katana", "com.instagram.android"]
NOW_MS = date_to_timestamp("2024-03-13", UTC, 12, 0)  # a Wednesday


@pytest.fixture
def clock():
    return FixedClock(NOW_MS, UTC)


@pytest.fixture
def repo():
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    conn.executescript(SCHEMA_SQL)
    conn.commit()
    return Repository(conn)


def make_session(date, hour, minute, minutes, app=APPS[0]) -> Session:
    start = date_to_timestamp(date, UTC, hour, minute)
    duration = minutes * 60_000
    return Session(target_app=app, start_timestamp=start, end_timestamp=start + duration,
                   duration=duration, date=date)


class TestTimeDistribution:
    def test_single_bucket(self):
        rng = random.Random(1)
        hours = {sample_hour((1, 0, 0, 0, 0), rng) for _ in range(200)}
        assert hours <= set(range(6, 10))

    def test_very_late_bucket(self):
        rng = random.Random(2)
        hours = {sample_hour((0, 0, 0, 0, 3), rng) for _ in range(200)}
        assert hours <= set(range(0, 6))

    def test_zero_weights_fall_back_to_whole_day(self):
        rng = random.Random(3)
        hours = [sample_hour((0, 0, 0, 0, 0), rng) for _ in range(500)]
        assert all(0 <= h <= 23 for h in hours)
        assert len(set(hours)) > 12

    def test_weighted_choice_needs_a_positive_weight(self):
        with pytest.raises(ValueError, match="positive"):
            weighted_choice(["a", "b"], [0, 0], random.Random(0))

    def test_weighted_choice_skips_zero_weights(self):
        rng = random.Random(4)
        assert {weighted_choice(["a", "b"], [0, 1], rng) for _ in range(50)} == {"b"}

    def test_day_of_week_sunday_first(self):
        assert day_of_week(date_to_timestamp("2024-03-10", UTC, 12), UTC) == 1  # Sunday
        assert day_of_week(date_to_timestamp("2024-03-16", UTC, 12), UTC) == 7  # Saturday
        assert is_weekend(date_to_timestamp("2024-03-16", UTC), UTC)
        assert not is_weekend(date_to_timestamp("2024-03-13", UTC), UTC)

    def test_late_night_window(self):
        assert is_late_night(22) and is_late_night(0) and is_late_night(5)
        assert not is_late_night(6)
        assert not is_late_night(21)

    def test_clock_dates(self, clock):
        assert clock.today() == "2024-03-13"
        assert clock.date_days_ago(13) == "2024-02-29"
        assert clock.current_month() == "2024-03"

    def test_dst_zone_day_boundaries(self):
        ny = ZoneInfo("America/New_York")
        # 2024-01-01 23:30 EST; an EDT fixed offset would put it on Jan 2.
        assert timestamp_to_date(1704169800000, ny) == "2024-01-01"
        assert hour_of_day(1704169800000, ny) == 23
        # Spring-forward day is 23 hours long.
        day = date_to_timestamp("2024-03-11", ny) - date_to_timestamp("2024-03-10", ny)
        assert day == 23 * 60 * 60 * 1000

    def test_default_clock_follows_dst(self, monkeypatch):
        monkeypatch.setenv("TZ", "America/New_York")
        tz = Clock().tz
        assert tz.key == "America/New_York"
        assert timestamp_to_date(1704169800000, tz) == "2024-01-01"
        assert hour_of_day(1704169800000, tz) == 23
        july = date_to_timestamp("2024-07-01", tz, 23, 30)
        assert timestamp_to_date(july, tz) == "2024-07-01"
        assert hour_of_day(july, tz) == 23

    def test_local_zone_falls_back_to_fixed_offset(self, monkeypatch, tmp_path):
        monkeypatch.setenv("TZ", "Not/AZone")
        monkeypatch.setattr(time_distribution, "LOCALTIME_PATH", str(tmp_path / "missing"))
        tz = local_zone()
        assert not isinstance(tz, ZoneInfo)
        assert tz.utcoffset(None) is not None


class TestPersonas:
    def test_registry_profiles_are_valid(self):
        assert len(PERSONAS) == 12
        for profile in PERSONAS.values():
            profile.validate()
        BASELINE.validate()

    def test_inverted_range_rejected(self):
        bad = replace(REALISTIC_MIXED, sessions_per_day=IntRange(5, 3))
        with pytest.raises(ConfigurationError, match="lo 5 > hi 3"):
            bad.validate()

    def test_negative_rate_rejected(self):
        bad = replace(REALISTIC_MIXED, quick_reopen_rate=-0.1)
        with pytest.raises(ConfigurationError, match="quick_reopen_rate"):
            bad.validate()

    def test_all_zero_response_rejected(self):
        bad = replace(REALISTIC_MIXED, intervention_response=InterventionResponse(0, 0, 0))
        with pytest.raises(ConfigurationError, match="all zero"):
            bad.validate()

    def test_lookup(self):
        assert get_persona("realistic_mixed") is REALISTIC_MIXED
        assert get_persona("BASELINE") is BASELINE
        with pytest.raises(ConfigurationError, match="Unknown persona"):
            get_persona("doomscroller")


class TestSessionSynthesizer:
    def test_no_apps_or_days(self, clock):
        synth = SessionSynthesizer(random.Random(0), clock)
        assert synth.generate(REALISTIC_MIXED, 5, []) == []
        assert synth.generate(REALISTIC_MIXED, 0, APPS) == []

    def test_sessions_are_well_formed(self, clock):
        sessions = SessionSynthesizer(random.Random(5), clock).generate(REALISTIC_MIXED, 7, APPS)
        assert sessions
        starts = [s.start_timestamp for s in sessions]
        assert starts == sorted(starts)
        for s in sessions:
            assert s.end_timestamp > s.start_timestamp
            assert s.duration == s.end_timestamp - s.start_timestamp
            assert s.date == timestamp_to_date(s.start_timestamp, UTC)
            assert "2024-03-07" <= s.date <= "2024-03-13"
            assert s.target_app in APPS

    def test_weekend_multiplier_zero_empties_weekends(self, clock):
        profile = replace(REALISTIC_MIXED, weekend_usage_multiplier=0.0)
        sessions = SessionSynthesizer(random.Random(6), clock).generate(profile, 7, APPS)
        assert not any(s.date in ("2024-03-09", "2024-03-10") for s in sessions)
        assert any(s.date == "2024-03-13" for s in sessions)

    def test_time_distribution_respected(self, clock):
        profile = replace(REALISTIC_MIXED, time_distribution=TimeDistribution(0, 0, 1, 0, 0))
        sessions = SessionSynthesizer(random.Random(7), clock).generate(profile, 3, APPS)
        hours = {int((s.start_timestamp // 3_600_000) % 24) for s in sessions}
        assert hours <= set(range(15, 20))


class TestQuickReopen:
    def test_detect(self):
        sessions = [
            make_session("2024-03-12", 10, 0, 5),
            make_session("2024-03-12", 10, 6, 5),    # 1 min gap
            make_session("2024-03-12", 10, 13, 5),   # exactly 2 min gap
            make_session("2024-03-12", 23, 58, 2),
            make_session("2024-03-13", 0, 1, 5),     # 1 min gap, next day
        ]
        assert detect(sessions) == {0: False, 1: True, 2: False, 3: False, 4: False}

    def test_zero_rate_leaves_timeline_alone(self, clock):
        sessions = SessionSynthesizer(random.Random(8), clock).generate(REALISTIC_MIXED, 3, APPS)
        adjuster = QuickReopenAdjuster(random.Random(8), clock)
        adjusted = adjuster.apply_pattern(sessions, 0.0)
        assert adjuster.last_injected == 0
        assert [s.target_app for s in adjusted] == [s.target_app for s in sessions]
        for before, after in zip(sessions, adjusted):
            # only same-minute collisions are nudged, by a millisecond each
            assert 0 <= after.start_timestamp - before.start_timestamp < len(sessions)
            assert after.duration == before.duration

    def test_injected_reopens_are_detected(self, clock):
        rng = random.Random(9)
        sessions = SessionSynthesizer(rng, clock).generate(REALISTIC_MIXED, 10, APPS)
        adjuster = QuickReopenAdjuster(rng, clock)
        adjusted = adjuster.apply_pattern(sessions, 0.4)

        assert len(adjusted) == len(sessions)
        starts = [s.start_timestamp for s in adjusted]
        assert starts == sorted(starts)
        assert len(set(starts)) == len(starts)
        for before, after in zip(sessions, adjusted):
            assert after.duration == before.duration
            assert after.date == before.date
            assert after.date == timestamp_to_date(after.start_timestamp, UTC)
        flagged = sum(adjuster.detect(adjusted).values())
        assert flagged >= adjuster.last_injected > 0

    def test_busy_two_days_reach_the_target(self, clock):
        profile = replace(
            REALISTIC_MIXED,
            sessions_per_day=IntRange(8, 12),
            quick_reopen_rate=0.3,
            weekend_usage_multiplier=1.0,
        )
        data = PersonaSeedOrchestrator(clock, seed=42).build(profile, days=2, apps=APPS)
        assert 16 <= len(data.sessions) <= 24
        assert sum(detect(data.sessions).values()) >= 4
        assert sum(r.quick_reopen for r in data.intervention_results) >= 4


class TestGoals:
    def test_limit_regimes(self):
        rng = random.Random(10)
        low = replace(REALISTIC_MIXED, goal_compliance_rate=0.3)
        high = replace(REALISTIC_MIXED, goal_compliance_rate=1.75)
        for _ in range(50):
            assert 45 <= daily_limit_for(low, rng) <= 74
            assert 30 <= daily_limit_for(high, rng) <= 59
            assert 60 <= daily_limit_for(REALISTIC_MIXED, rng) <= 119

    def test_goal_skipper_has_no_goals(self, clock):
        assert generate_goals(APPS, 10, GOAL_SKIPPER, random.Random(0), clock) == []

    def test_goals_per_app(self, clock):
        goals = generate_goals(APPS, 10, STREAK_ACHIEVER, random.Random(11), clock)
        assert [g.target_app for g in goals] == APPS
        for g in goals:
            assert g.current_streak in STREAK_ACHIEVER.streak_days
            assert g.longest_streak >= g.current_streak
            assert g.start_date == "2024-03-03"
            assert g.last_updated == NOW_MS


class TestInterventions:
    def test_one_result_per_session(self, clock):
        data = PersonaSeedOrchestrator(clock, seed=12).build(REALISTIC_MIXED, days=4, apps=APPS)
        assert len(data.intervention_results) == len(data.sessions)

        seen_days = set()
        per_app_day = {}
        for session, result in zip(data.sessions, data.intervention_results):
            key = (session.target_app, session.date)
            per_app_day[key] = per_app_day.get(key, 0) + 1
            assert result.target_app == session.target_app
            assert result.timestamp == session.start_timestamp
            assert result.session_count == per_app_day[key]
            assert result.final_session_duration_ms == session.duration
            assert result.session_ended_normally is True
            if session.date not in seen_days:
                assert result.intervention_type == InterventionType.REMINDER
                seen_days.add(session.date)

    def test_choice_and_latency_follow_profile(self, clock):
        profile = replace(
            REALISTIC_MIXED,
            intervention_response=InterventionResponse(1.0, 0.0, 0.0),
            decision_time_distribution=DecisionTimeDistribution(0.0, 0.0, 0.0, 1.0),
        )
        data = PersonaSeedOrchestrator(clock, seed=13).build(profile, days=3, apps=APPS)
        low, high = LATENCY_BUCKETS[3]
        for r in data.intervention_results:
            assert r.user_choice == UserChoice.PROCEED
            assert low <= r.time_to_show_decision_ms < high

    def test_content_priority(self):
        assert content_weights(InterventionType.TIMER, True, True, True, 30)[-1] == 0.0
        late = content_weights(InterventionType.REMINDER, True, False, False, 0)
        quick = content_weights(InterventionType.REMINDER, False, True, False, 0)
        streak = content_weights(InterventionType.REMINDER, False, False, False, 7)
        base = content_weights(InterventionType.REMINDER, False, False, False, 6)
        assert late != quick
        assert streak[-1] > base[-1]


class TestOrchestrator:
    def test_same_seed_same_data(self, clock):
        a = PersonaSeedOrchestrator(clock, seed=42).build(REALISTIC_MIXED, days=10, apps=APPS)
        b = PersonaSeedOrchestrator(clock, seed=42).build(REALISTIC_MIXED, days=10, apps=APPS)
        assert a.sessions == b.sessions
        assert a.goals == b.goals
        assert a.intervention_results == b.intervention_results

    def test_default_days(self, clock):
        data = PersonaSeedOrchestrator(clock, seed=1).build(get_persona("FRESH_INSTALL"))
        assert data.metadata.days_of_data == 2
        assert {s.date for s in data.sessions} <= {"2024-03-12", "2024-03-13"}

    def test_stats_estimated(self, clock):
        data = PersonaSeedOrchestrator(clock, seed=2).build(REALISTIC_MIXED, days=3, apps=APPS)
        assert data.daily_stats
        assert all(s.is_estimated for s in data.daily_stats)
        assert sum(s.session_count for s in data.daily_stats) == len(data.sessions)

    def test_goal_skipper(self, clock):
        profile = replace(GOAL_SKIPPER, streak_days=IntRange(10, 20))
        data = PersonaSeedOrchestrator(clock, seed=3).build(profile, days=3, apps=APPS)
        assert data.goals == []
        assert data.current_streak == 0
        assert len(data.intervention_results) == len(data.sessions)

    def test_seed_store(self, clock, repo):
        orchestrator = PersonaSeedOrchestrator(clock, seed=4)
        data = orchestrator.run(repo, "early_adopter", days=3, apps=APPS)

        assert repo.count_sessions() == len(data.sessions)
        assert len(repo.list_goals()) == len(APPS)
        assert len(repo.get_daily_stats()) == len(data.daily_stats)
        assert all(s.id is not None for s in data.sessions)
        assert [r.session_id for r in data.intervention_results] == [s.id for s in data.sessions]
        assert len(repo.list_intervention_results()) == len(data.sessions)

    def test_seed_store_is_rerunnable(self, clock, repo):
        orchestrator = PersonaSeedOrchestrator(clock, seed=5)
        data = orchestrator.build(REALISTIC_MIXED, days=3, apps=APPS)
        orchestrator.seed_store(repo, data)
        orchestrator.seed_store(repo, data)
        assert repo.count_sessions() == len(data.sessions)
        assert len(repo.list_intervention_results()) == len(data.sessions)

    def test_unknown_persona(self, clock, repo):
        with pytest.raises(ConfigurationError):
            PersonaSeedOrchestrator(clock, seed=6).run(repo, "nobody")

    def test_failed_write_rolls_back(self, clock, repo):
        class BrokenStats(Repository):
            def bulk_insert_stats(self, stats):
                raise sqlite3.OperationalError("disk I/O error")

        broken = BrokenStats(repo.conn)
        with pytest.raises(StoreWriteError, match="daily_stats") as exc_info:
            PersonaSeedOrchestrator(clock, seed=7).run(broken, "early_adopter", days=2, apps=APPS)
        assert exc_info.value.step == "daily_stats"
        assert broken.count_sessions() == 0
        assert broken.list_goals() == []

    def test_result_without_session_rolls_back(self, clock, repo):
        orchestrator = PersonaSeedOrchestrator(clock, seed=7)
        data = orchestrator.build(get_persona("early_adopter"), days=2, apps=APPS)
        # One more result than sessions: it never gets a session id.
        data.intervention_results.append(replace(data.intervention_results[0], session_id=None))

        with pytest.raises(StoreWriteError, match="intervention_results") as exc_info:
            orchestrator.seed_store(repo, data)
        assert exc_info.value.step == "intervention_results"
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert repo.count_sessions() == 0
        assert repo.list_goals() == []
        assert repo.get_daily_stats() == []


class TestRealUsage:
    def test_thin_data_falls_back_to_baseline(self, clock):
        sessions = [make_session("2024-03-13", 9, 0, 5)]
        data = PersonaSeedOrchestrator(clock, seed=8).build_from_real_usage(sessions, APPS)
        assert data.metadata.source == SeedSource.BASELINE_FALLBACK
        assert data.metadata.days_of_data == 7
        assert [g.daily_limit_minutes for g in data.goals] == [60, 60]
        assert data.intervention_results == []
        for g in data.goals:
            assert g.longest_streak >= g.current_streak

    def test_goal_and_streak_from_usage(self, clock):
        sessions = [
            make_session("2024-03-12", 20, 0, 20),
            make_session("2024-03-11", 20, 0, 100),
            make_session("2024-03-13", 9, 0, 30),
        ]
        data = PersonaSeedOrchestrator(clock, seed=9).build_from_real_usage(sessions)
        assert data.metadata.source == SeedSource.REAL_USAGE
        assert [s.date for s in data.sessions] == ["2024-03-11", "2024-03-12", "2024-03-13"]
        assert len(data.goals) == 1
        goal = data.goals[0]
        assert goal.daily_limit_minutes == 40
        assert goal.current_streak == 2
        assert goal.start_date == "2024-03-11"
        assert data.intervention_results == []

    def test_goal_limit_is_clamped(self, clock):
        sessions = [make_session("2024-03-13", 9, 0, 11)]
        data = PersonaSeedOrchestrator(clock, seed=10).build_from_real_usage(sessions)
        assert data.goals[0].daily_limit_minutes == 30
