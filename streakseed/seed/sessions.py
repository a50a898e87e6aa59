"""
Session synthesis: turns a persona into N days of usage sessions.
"""

from __future__ import annotations

import logging
import random
from typing import List, Sequence

from streakseed.data.models import Session
from streakseed.seed.personas import PersonaProfile
from streakseed.seed.time_distribution import (
    MS_PER_MINUTE,
    Clock,
    date_to_timestamp,
    is_weekend,
    sample_hour,
)

logger = logging.getLogger(__name__)


class SessionSynthesizer:
    """
    Generates a chronologically ordered list of sessions.

    Days run from days-1 back to 0 (today), so the history always ends on the
    clock's current date.
    """

    def __init__(self, rng: random.Random, clock: Clock) -> None:
        self.rng = rng
        self.clock = clock

    def generate(self, profile: PersonaProfile, days: int, apps: Sequence[str]) -> List[Session]:
        sessions: List[Session] = []
        if days <= 0 or not apps:
            return sessions

        for day_offset in range(days - 1, -1, -1):
            date = self.clock.date_days_ago(day_offset)
            weekend = is_weekend(date_to_timestamp(date, self.clock.tz), self.clock.tz)
            sessions.extend(self._generate_day(profile, date, weekend, apps))

        sessions.sort(key=lambda s: s.start_timestamp)
        logger.debug("Synthesized %d sessions over %d days", len(sessions), days)
        return sessions

    def _generate_day(
        self, profile: PersonaProfile, date: str, weekend: bool, apps: Sequence[str]
    ) -> List[Session]:
        rng = self.rng
        count = profile.sessions_per_day.sample(rng)
        if weekend:
            count = int(count * profile.weekend_usage_multiplier)

        # Draw every start time first, then walk them in order
        times = []
        for _ in range(count):
            hour = sample_hour(profile.time_distribution.weights, rng)
            minute = rng.randint(0, 59)
            times.append((hour, minute))
        times.sort()

        day_sessions: List[Session] = []
        for hour, minute in times:
            app = rng.choice(apps)
            start = date_to_timestamp(date, self.clock.tz, hour, minute)
            minutes = profile.average_session_minutes.sample(rng)
            if rng.random() < profile.extended_session_rate:
                minutes = profile.longest_session_minutes.sample(rng)
            # Zero-minute draws still need end > start
            duration = max(minutes, 1) * MS_PER_MINUTE
            day_sessions.append(Session(
                target_app=app,
                start_timestamp=start,
                end_timestamp=start + duration,
                duration=duration,
                date=date,
            ))
        return day_sessions


# ---------------------------------------------------------------------------
# Explanation (for interviews)
# ---------------------------------------------------------------------------
# What this file does:
#   Produces the primary timeline every other dataset is derived from. For
#   each day it draws a session count (weekends scaled by the persona's
#   multiplier), start times from the time-of-day buckets, an app per session
#   and a duration (occasionally an "extended" one).
#
# Key points:
#   - All randomness goes through one injected random.Random. Same seed +
#     same profile + same clock -> identical sessions, which the tests rely on.
#   - Start times are drawn up front and sorted before apps and durations are
#     drawn, so the per-day draw order is stable.
#   - Durations are whole minutes stored as milliseconds.
#
# Interviewer-friendly talking points:
#   1. Why inject the RNG instead of calling random.randint()? The global RNG
#      is shared state; any other caller would change our output.
#   2. The weekend check happens at local midnight of each day, so a session
#      at 00:30 Saturday counts toward Saturday's weekend volume.
