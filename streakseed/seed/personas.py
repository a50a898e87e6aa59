"""
Persona registry — data-only descriptions of behavioral archetypes.

A persona is pure configuration: the same orchestrator runs every one of
them. Values are tuned to resemble real cohorts (fresh installs, compulsive
reopeners, long-streak users...).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from streakseed.errors import ConfigurationError


class PersonaType:
    FRESH_INSTALL = "FRESH_INSTALL"
    EARLY_ADOPTER = "EARLY_ADOPTER"
    TRANSITIONING_USER = "TRANSITIONING_USER"
    ESTABLISHED_USER = "ESTABLISHED_USER"
    LOCKED_MODE_USER = "LOCKED_MODE_USER"
    LATE_NIGHT_SCROLLER = "LATE_NIGHT_SCROLLER"
    WEEKEND_WARRIOR = "WEEKEND_WARRIOR"
    COMPULSIVE_REOPENER = "COMPULSIVE_REOPENER"
    GOAL_SKIPPER = "GOAL_SKIPPER"
    OVER_LIMIT_STRUGGLER = "OVER_LIMIT_STRUGGLER"
    STREAK_ACHIEVER = "STREAK_ACHIEVER"
    REALISTIC_MIXED = "REALISTIC_MIXED"
    BASELINE = "BASELINE"


class FrictionLevel:
    """Intervention intensity. Recorded on the profile only."""
    GENTLE = "GENTLE"
    MODERATE = "MODERATE"
    FIRM = "FIRM"
    LOCKED = "LOCKED"


@dataclass(frozen=True)
class IntRange:
    """Inclusive integer interval."""
    lo: int
    hi: int

    def sample(self, rng) -> int:
        return rng.randint(self.lo, self.hi)

    def __contains__(self, value: int) -> bool:
        return self.lo <= value <= self.hi


@dataclass(frozen=True)
class TimeDistribution:
    morning: float     # 06-09
    midday: float      # 10-14
    evening: float     # 15-19
    late_night: float  # 20-23
    very_late: float   # 00-05

    @property
    def weights(self) -> Tuple[float, float, float, float, float]:
        return (self.morning, self.midday, self.evening, self.late_night, self.very_late)


BALANCED = TimeDistribution(0.20, 0.25, 0.30, 0.20, 0.05)
EVENING_HEAVY = TimeDistribution(0.10, 0.15, 0.15, 0.50, 0.10)
LATE_NIGHT = TimeDistribution(0.05, 0.10, 0.15, 0.30, 0.40)
VERY_LATE_NIGHT = TimeDistribution(0.03, 0.07, 0.10, 0.20, 0.60)
MORNING_EVENING = TimeDistribution(0.30, 0.15, 0.30, 0.20, 0.05)


@dataclass(frozen=True)
class InterventionResponse:
    proceed_rate: float
    go_back_rate: float
    dismissed_rate: float

    @property
    def weights(self) -> Tuple[float, float, float]:
        return (self.proceed_rate, self.go_back_rate, self.dismissed_rate)


@dataclass(frozen=True)
class DecisionTimeDistribution:
    instant_rate: float     # < 2 s
    quick_rate: float       # 2-5 s
    moderate_rate: float    # 5-15 s
    deliberate_rate: float  # 15-30 s

    @property
    def weights(self) -> Tuple[float, float, float, float]:
        return (self.instant_rate, self.quick_rate, self.moderate_rate, self.deliberate_rate)


@dataclass(frozen=True)
class PersonaProfile:
    """
    Immutable configuration for one archetype.

    Every rate is a target for the sampler, not a guarantee about the output.
    default_days is how much history a seed run generates when the caller
    does not say; goal_start_days_ago (None = same as the day count) dates
    the goals.
    """
    persona_type: str
    description: str
    friction_level: str
    days_since_install: IntRange
    daily_usage_minutes: IntRange
    sessions_per_day: IntRange
    average_session_minutes: IntRange
    longest_session_minutes: IntRange
    quick_reopen_rate: float
    has_goals: bool
    goal_compliance_rate: float
    streak_days: IntRange
    time_distribution: TimeDistribution
    weekend_usage_multiplier: float
    intervention_response: InterventionResponse
    decision_time_distribution: DecisionTimeDistribution
    extended_session_rate: float
    default_days: int = 14
    goal_start_days_ago: Optional[int] = None

    def validate(self) -> "PersonaProfile":
        """Raise ConfigurationError on the first malformed field. Returns self."""
        ranges = {
            "days_since_install": self.days_since_install,
            "daily_usage_minutes": self.daily_usage_minutes,
            "sessions_per_day": self.sessions_per_day,
            "average_session_minutes": self.average_session_minutes,
            "longest_session_minutes": self.longest_session_minutes,
            "streak_days": self.streak_days,
        }
        for name, r in ranges.items():
            if r.lo > r.hi:
                raise ConfigurationError(f"{self.persona_type}: {name} has lo {r.lo} > hi {r.hi}")
            if r.lo < 0:
                raise ConfigurationError(f"{self.persona_type}: {name} must not be negative")

        rates = {
            "quick_reopen_rate": self.quick_reopen_rate,
            "goal_compliance_rate": self.goal_compliance_rate,
            "weekend_usage_multiplier": self.weekend_usage_multiplier,
            "extended_session_rate": self.extended_session_rate,
        }
        for name, value in rates.items():
            if value < 0:
                raise ConfigurationError(f"{self.persona_type}: {name} must be >= 0, got {value}")

        if any(w < 0 for w in self.time_distribution.weights):
            raise ConfigurationError(f"{self.persona_type}: time distribution has a negative weight")
        for name, weights in (
            ("intervention_response", self.intervention_response.weights),
            ("decision_time_distribution", self.decision_time_distribution.weights),
        ):
            if any(w < 0 for w in weights):
                raise ConfigurationError(f"{self.persona_type}: {name} has a negative rate")
            if sum(weights) <= 0:
                raise ConfigurationError(f"{self.persona_type}: {name} is all zero")

        if self.default_days < 0:
            raise ConfigurationError(f"{self.persona_type}: default_days must not be negative")
        return self

    def goal_start(self, days: int) -> int:
        return days if self.goal_start_days_ago is None else self.goal_start_days_ago


# ── Registry ────────────────────────────────────────────────────────────────

PERSONAS: Dict[str, PersonaProfile] = {}


def _register(profile: PersonaProfile) -> PersonaProfile:
    PERSONAS[profile.persona_type] = profile
    return profile


FRESH_INSTALL = _register(PersonaProfile(
    persona_type=PersonaType.FRESH_INSTALL,
    description="Brand new user, learning the app, high proceed rate, instant decisions",
    friction_level=FrictionLevel.GENTLE,
    days_since_install=IntRange(1, 2),
    daily_usage_minutes=IntRange(45, 75),
    sessions_per_day=IntRange(8, 12),
    average_session_minutes=IntRange(5, 10),
    longest_session_minutes=IntRange(15, 25),
    quick_reopen_rate=0.30,
    has_goals=True,
    goal_compliance_rate=0.70,
    streak_days=IntRange(0, 1),
    time_distribution=EVENING_HEAVY,
    weekend_usage_multiplier=1.0,
    intervention_response=InterventionResponse(0.60, 0.30, 0.10),
    decision_time_distribution=DecisionTimeDistribution(0.70, 0.20, 0.08, 0.02),
    extended_session_rate=0.15,
    default_days=2,
    goal_start_days_ago=1,
))

EARLY_ADOPTER = _register(PersonaProfile(
    persona_type=PersonaType.EARLY_ADOPTER,
    description="Forming habits, learning to respond to interventions, improving compliance",
    friction_level=FrictionLevel.GENTLE,
    days_since_install=IntRange(7, 10),
    daily_usage_minutes=IntRange(35, 55),
    sessions_per_day=IntRange(6, 10),
    average_session_minutes=IntRange(5, 12),
    longest_session_minutes=IntRange(12, 22),
    quick_reopen_rate=0.20,
    has_goals=True,
    goal_compliance_rate=0.65,
    streak_days=IntRange(3, 5),
    time_distribution=MORNING_EVENING,
    weekend_usage_multiplier=1.2,
    intervention_response=InterventionResponse(0.50, 0.40, 0.10),
    decision_time_distribution=DecisionTimeDistribution(0.30, 0.50, 0.15, 0.05),
    extended_session_rate=0.18,
    default_days=8,
    goal_start_days_ago=7,
))

TRANSITIONING_USER = _register(PersonaProfile(
    persona_type=PersonaType.TRANSITIONING_USER,
    description="Just reached MODERATE friction, adapting to the longer delay",
    friction_level=FrictionLevel.MODERATE,
    days_since_install=IntRange(14, 16),
    daily_usage_minutes=IntRange(30, 45),
    sessions_per_day=IntRange(5, 8),
    average_session_minutes=IntRange(6, 12),
    longest_session_minutes=IntRange(15, 30),
    quick_reopen_rate=0.15,
    has_goals=True,
    goal_compliance_rate=0.70,
    streak_days=IntRange(7, 10),
    time_distribution=BALANCED,
    weekend_usage_multiplier=1.1,
    intervention_response=InterventionResponse(0.40, 0.50, 0.10),
    decision_time_distribution=DecisionTimeDistribution(0.10, 0.35, 0.40, 0.15),
    extended_session_rate=0.20,
    default_days=15,
    goal_start_days_ago=14,
))

ESTABLISHED_USER = _register(PersonaProfile(
    persona_type=PersonaType.ESTABLISHED_USER,
    description="Healthy patterns, FIRM friction, long streaks, good compliance",
    friction_level=FrictionLevel.FIRM,
    days_since_install=IntRange(30, 35),
    daily_usage_minutes=IntRange(20, 35),
    sessions_per_day=IntRange(4, 7),
    average_session_minutes=IntRange(5, 10),
    longest_session_minutes=IntRange(12, 20),
    quick_reopen_rate=0.10,
    has_goals=True,
    goal_compliance_rate=0.60,
    streak_days=IntRange(15, 21),
    time_distribution=BALANCED,
    weekend_usage_multiplier=1.0,
    intervention_response=InterventionResponse(0.30, 0.60, 0.10),
    decision_time_distribution=DecisionTimeDistribution(0.05, 0.25, 0.35, 0.35),
    extended_session_rate=0.12,
    default_days=32,
    goal_start_days_ago=30,
))

LOCKED_MODE_USER = _register(PersonaProfile(
    persona_type=PersonaType.LOCKED_MODE_USER,
    description="Maximum friction mode, excellent compliance, very long streaks, deliberate decisions",
    friction_level=FrictionLevel.LOCKED,
    days_since_install=IntRange(50, 60),
    daily_usage_minutes=IntRange(15, 25),
    sessions_per_day=IntRange(3, 5),
    average_session_minutes=IntRange(5, 8),
    longest_session_minutes=IntRange(10, 15),
    quick_reopen_rate=0.05,
    has_goals=True,
    goal_compliance_rate=0.45,
    streak_days=IntRange(30, 40),
    time_distribution=BALANCED,
    weekend_usage_multiplier=0.9,
    intervention_response=InterventionResponse(0.20, 0.70, 0.10),
    decision_time_distribution=DecisionTimeDistribution(0.02, 0.08, 0.30, 0.60),
    extended_session_rate=0.08,
    default_days=55,
))

LATE_NIGHT_SCROLLER = _register(PersonaProfile(
    persona_type=PersonaType.LATE_NIGHT_SCROLLER,
    description="Most usage after 10pm, over goal, struggling with late night habits",
    friction_level=FrictionLevel.MODERATE,
    days_since_install=IntRange(18, 22),
    daily_usage_minutes=IntRange(60, 90),
    sessions_per_day=IntRange(10, 15),
    average_session_minutes=IntRange(6, 12),
    longest_session_minutes=IntRange(20, 35),
    quick_reopen_rate=0.25,
    has_goals=True,
    goal_compliance_rate=1.35,
    streak_days=IntRange(3, 8),
    time_distribution=VERY_LATE_NIGHT,
    weekend_usage_multiplier=1.4,
    intervention_response=InterventionResponse(0.55, 0.35, 0.10),
    decision_time_distribution=DecisionTimeDistribution(0.25, 0.30, 0.30, 0.15),
    extended_session_rate=0.30,
    default_days=20,
))

WEEKEND_WARRIOR = _register(PersonaProfile(
    persona_type=PersonaType.WEEKEND_WARRIOR,
    description="2.5x usage on weekends, good weekdays, streaks break on weekends",
    friction_level=FrictionLevel.MODERATE,
    days_since_install=IntRange(24, 26),
    daily_usage_minutes=IntRange(30, 40),
    sessions_per_day=IntRange(6, 9),
    average_session_minutes=IntRange(5, 10),
    longest_session_minutes=IntRange(15, 25),
    quick_reopen_rate=0.18,
    has_goals=True,
    goal_compliance_rate=0.75,
    streak_days=IntRange(3, 5),
    time_distribution=MORNING_EVENING,
    weekend_usage_multiplier=2.5,
    intervention_response=InterventionResponse(0.45, 0.45, 0.10),
    decision_time_distribution=DecisionTimeDistribution(0.20, 0.40, 0.30, 0.10),
    extended_session_rate=0.22,
    default_days=25,
))

COMPULSIVE_REOPENER = _register(PersonaProfile(
    persona_type=PersonaType.COMPULSIVE_REOPENER,
    description="60% quick reopen rate, 20-30 sessions/day, compulsive checking, instant dismissals",
    friction_level=FrictionLevel.MODERATE,
    days_since_install=IntRange(17, 19),
    daily_usage_minutes=IntRange(80, 120),
    sessions_per_day=IntRange(20, 30),
    average_session_minutes=IntRange(4, 6),
    longest_session_minutes=IntRange(15, 25),
    quick_reopen_rate=0.60,
    has_goals=True,
    goal_compliance_rate=1.75,
    streak_days=IntRange(1, 2),
    time_distribution=BALANCED,
    weekend_usage_multiplier=1.3,
    intervention_response=InterventionResponse(0.70, 0.25, 0.05),
    decision_time_distribution=DecisionTimeDistribution(0.80, 0.15, 0.04, 0.01),
    extended_session_rate=0.10,
    default_days=18,
))

GOAL_SKIPPER = _register(PersonaProfile(
    persona_type=PersonaType.GOAL_SKIPPER,
    description="No goals set, pure usage tracking, no goal-based interventions or streaks",
    friction_level=FrictionLevel.MODERATE,
    days_since_install=IntRange(20, 24),
    daily_usage_minutes=IntRange(70, 100),
    sessions_per_day=IntRange(12, 18),
    average_session_minutes=IntRange(5, 10),
    longest_session_minutes=IntRange(15, 30),
    quick_reopen_rate=0.20,
    has_goals=False,
    goal_compliance_rate=0.0,
    streak_days=IntRange(0, 0),
    time_distribution=BALANCED,
    weekend_usage_multiplier=1.4,
    intervention_response=InterventionResponse(0.65, 0.25, 0.10),
    decision_time_distribution=DecisionTimeDistribution(0.40, 0.35, 0.20, 0.05),
    extended_session_rate=0.25,
    default_days=22,
))

OVER_LIMIT_STRUGGLER = _register(PersonaProfile(
    persona_type=PersonaType.OVER_LIMIT_STRUGGLER,
    description="Consistently over goal (150-200%), many extended sessions",
    friction_level=FrictionLevel.FIRM,
    days_since_install=IntRange(27, 29),
    daily_usage_minutes=IntRange(90, 120),
    sessions_per_day=IntRange(10, 15),
    average_session_minutes=IntRange(8, 15),
    longest_session_minutes=IntRange(25, 40),
    quick_reopen_rate=0.30,
    has_goals=True,
    goal_compliance_rate=1.75,
    streak_days=IntRange(0, 2),
    time_distribution=EVENING_HEAVY,
    weekend_usage_multiplier=1.6,
    intervention_response=InterventionResponse(0.60, 0.35, 0.05),
    decision_time_distribution=DecisionTimeDistribution(0.40, 0.30, 0.20, 0.10),
    extended_session_rate=0.35,
    default_days=28,
))

STREAK_ACHIEVER = _register(PersonaProfile(
    persona_type=PersonaType.STREAK_ACHIEVER,
    description="25-35 day streak, gamification-heavy content, deliberate decisions",
    friction_level=FrictionLevel.FIRM,
    days_since_install=IntRange(43, 47),
    daily_usage_minutes=IntRange(18, 30),
    sessions_per_day=IntRange(4, 6),
    average_session_minutes=IntRange(4, 8),
    longest_session_minutes=IntRange(10, 18),
    quick_reopen_rate=0.08,
    has_goals=True,
    goal_compliance_rate=0.55,
    streak_days=IntRange(25, 35),
    time_distribution=BALANCED,
    weekend_usage_multiplier=0.9,
    intervention_response=InterventionResponse(0.25, 0.65, 0.10),
    decision_time_distribution=DecisionTimeDistribution(0.05, 0.20, 0.30, 0.45),
    extended_session_rate=0.08,
    default_days=45,
))

REALISTIC_MIXED = _register(PersonaProfile(
    persona_type=PersonaType.REALISTIC_MIXED,
    description="Average user, mixed patterns, balanced distributions, some late nights",
    friction_level=FrictionLevel.MODERATE,
    days_since_install=IntRange(22, 26),
    daily_usage_minutes=IntRange(40, 70),
    sessions_per_day=IntRange(7, 12),
    average_session_minutes=IntRange(5, 12),
    longest_session_minutes=IntRange(15, 30),
    quick_reopen_rate=0.18,
    has_goals=True,
    goal_compliance_rate=0.85,
    streak_days=IntRange(5, 12),
    time_distribution=BALANCED,
    weekend_usage_multiplier=1.3,
    intervention_response=InterventionResponse(0.50, 0.40, 0.10),
    decision_time_distribution=DecisionTimeDistribution(0.25, 0.35, 0.30, 0.10),
    extended_session_rate=0.20,
    default_days=24,
))

# Fallback when real usage is too thin to seed from. Not in PERSONAS.
BASELINE = PersonaProfile(
    persona_type=PersonaType.BASELINE,
    description="Conservative new-user defaults used when real usage is insufficient",
    friction_level=FrictionLevel.GENTLE,
    days_since_install=IntRange(1, 7),
    daily_usage_minutes=IntRange(15, 40),
    sessions_per_day=IntRange(2, 3),
    average_session_minutes=IntRange(5, 15),
    longest_session_minutes=IntRange(15, 25),
    quick_reopen_rate=0.20,
    has_goals=True,
    goal_compliance_rate=0.80,
    streak_days=IntRange(0, 3),
    time_distribution=TimeDistribution(0.10, 0.10, 0.60, 0.15, 0.05),
    weekend_usage_multiplier=1.3,
    intervention_response=InterventionResponse(0.60, 0.30, 0.10),
    decision_time_distribution=DecisionTimeDistribution(0.70, 0.20, 0.08, 0.02),
    extended_session_rate=0.10,
    default_days=7,
)


def get_persona(name: str) -> PersonaProfile:
    """Look up a persona by type tag (case-insensitive)."""
    key = name.strip().upper()
    if key == PersonaType.BASELINE:
        return BASELINE
    try:
        return PERSONAS[key]
    except KeyError:
        known = ", ".join(sorted(PERSONAS))
        raise ConfigurationError(f"Unknown persona '{name}'. Known personas: {known}") from None


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   Holds the twelve personas (plus a fallback baseline) as frozen
#   dataclasses. A persona is just numbers: session counts, durations,
#   quick-reopen rate, how the user answers interventions, how long they
#   hesitate, and whether they set goals at all.
#
# Key points:
#   - validate() fails fast with ConfigurationError before any random draw,
#     so a bad profile never produces half a dataset.
#   - No per-persona classes. Adding a persona = adding one table entry.
#   - Plain string constants for tags (PersonaType, FrictionLevel) keep rows
#     and logs readable without enum conversions at the SQL boundary.
#
# Interviewer-friendly talking points:
#   1. Configuration over inheritance: one generic pipeline + a registry is
#      easier to test than twelve subclasses overriding one method.
#   2. goal_compliance_rate > 1 means "usually over the limit"; it selects a
#      lower goal limit range rather than being used as a probability.
