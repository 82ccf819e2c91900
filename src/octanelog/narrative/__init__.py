"""The narrative engine: drives, recaps, personas and remastering."""

from octanelog.narrative.drive_processor import DriveProcessor
from octanelog.narrative.persona import PersonaAggregator
from octanelog.narrative.recaps import RecapScheduler
from octanelog.narrative.reconciliation import (
    EpisodeNotFoundError,
    NarrativeRegenerator,
    NoMediaFoundError,
    RegenerationError,
)
from octanelog.narrative.themes import SeasonThemeAnalyzer

__all__ = [
    "DriveProcessor",
    "PersonaAggregator",
    "RecapScheduler",
    "NarrativeRegenerator",
    "RegenerationError",
    "EpisodeNotFoundError",
    "NoMediaFoundError",
    "SeasonThemeAnalyzer",
]
