"""
Error taxonomy for streakseed.

Every failure the engine raises on purpose derives from StreakSeedError so
callers can catch the whole family with one clause.
"""

from __future__ import annotations


class StreakSeedError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(StreakSeedError):
    """A persona profile is malformed (bad range, all-zero distribution...)."""


class InsufficientDataError(StreakSeedError):
    """Real usage is below the minimum needed to seed from it."""

    def __init__(self, total_usage_ms: int, threshold_ms: int) -> None:
        super().__init__(
            f"Real usage {total_usage_ms} ms is below the {threshold_ms} ms threshold."
        )
        self.total_usage_ms = total_usage_ms
        self.threshold_ms = threshold_ms


class StoreWriteError(StreakSeedError):
    """A bulk write to the store failed; the seed run was rolled back."""

    def __init__(self, step: str, cause: Exception) -> None:
        super().__init__(f"Seeding failed while writing {step}: {cause}")
        self.step = step
        self.cause = cause


class RolloverRetryableError(StreakSeedError):
    """Transient failure inside the daily rollover (store timeout, lock...)."""

    def __init__(self, date: str, cause: Exception) -> None:
        super().__init__(f"Rollover for {date} failed: {cause}")
        self.date = date
        self.cause = cause
