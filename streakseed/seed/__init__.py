from .personas import BASELINE, PERSONAS, IntRange, PersonaProfile, PersonaType, get_persona
from .time_distribution import Clock, FixedClock

__all__ = [
    "BASELINE", "PERSONAS", "IntRange", "PersonaProfile", "PersonaType", "get_persona",
    "Clock", "FixedClock",
]
