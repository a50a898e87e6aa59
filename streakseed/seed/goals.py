"""
Synthetic goal generation for seeded personas.
"""

from __future__ import annotations

import random
from typing import List, Sequence

from streakseed.data.models import Goal
from streakseed.seed.personas import PersonaProfile
from streakseed.seed.time_distribution import Clock


def daily_limit_for(profile: PersonaProfile, rng: random.Random) -> int:
    """Pick a daily limit whose range depends on how compliant the persona is."""
    compliance = profile.goal_compliance_rate
    if compliance < 0.5:
        return rng.randint(45, 74)
    if compliance > 1.5:
        # Low limit the persona will mostly blow through
        return rng.randint(30, 59)
    return rng.randint(60, 119)


def generate_goals(
    apps: Sequence[str],
    start_days_ago: int,
    profile: PersonaProfile,
    rng: random.Random,
    clock: Clock,
) -> List[Goal]:
    """One goal per app, or nothing at all if the persona does not set goals."""
    if not profile.has_goals:
        return []

    goals: List[Goal] = []
    start_date = clock.date_days_ago(start_days_ago)
    for app in apps:
        limit = daily_limit_for(profile, rng)
        streak = profile.streak_days.sample(rng)
        longest = max(int(streak * rng.uniform(1.0, 1.5)), streak)
        goals.append(Goal(
            target_app=app,
            daily_limit_minutes=limit,
            start_date=start_date,
            current_streak=streak,
            longest_streak=longest,
            last_updated=clock.now_ms(),
        ))
    return goals


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   Gives a seeded persona its starting goal state: a daily limit per app and
#   a current/longest streak drawn from the persona's streak range.
#
# Key points:
#   - The limit range follows goal_compliance_rate: compliant personas get
#     roomy limits, over-limit personas get tight ones they keep missing.
#   - longest_streak is floored at current_streak; a stored goal never claims
#     a best streak shorter than the one in progress.
#   - has_goals=False returns no goals at all, and the orchestrator then
#     treats the current streak as 0.
#
# Interviewer-friendly talking points:
#   1. Synthetic goals are written once by the seeder; from then on only the
#      nightly rollover (StreakService) changes them.
