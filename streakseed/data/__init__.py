from .database import Database
from .models import DailyStat, Goal, InterventionResult, Session, StreakFreezeState, StreakRecovery
from .repository import Repository

__all__ = [
    "Database", "DailyStat", "Goal", "InterventionResult", "Session",
    "StreakFreezeState", "StreakRecovery", "Repository",
]
