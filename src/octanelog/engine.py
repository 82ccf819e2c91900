"""Wires the narrative components together from an AppConfig.

Every component takes its collaborators through its constructor; this is
the one place that decides which concrete ones to use.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from octanelog.ai.client import AIClient
from octanelog.ai.service import AIService
from octanelog.config import AppConfig
from octanelog.core.models import utc_now
from octanelog.core.store import SeasonStore
from octanelog.media.library import MediaLibrary
from octanelog.narrative.drive_processor import DriveProcessor
from octanelog.narrative.persona import PersonaAggregator
from octanelog.narrative.reconciliation import NarrativeRegenerator
from octanelog.narrative.recaps import RecapScheduler
from octanelog.narrative.themes import SeasonThemeAnalyzer


@dataclass
class Engine:
    store: SeasonStore
    ai: AIService
    library: MediaLibrary
    processor: DriveProcessor
    scheduler: RecapScheduler
    persona: PersonaAggregator
    regenerator: NarrativeRegenerator
    themes: SeasonThemeAnalyzer


def build_engine(
    config: AppConfig,
    ai: AIService | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> Engine:
    """Construct every component against one store and one AI collaborator.

    Args:
        config: Application configuration.
        ai: AI collaborator. Defaults to a Gemini ``AIClient``.
        clock: Current-time source shared by all components.
    """
    ai = ai if ai is not None else AIClient(config=config)
    store = SeasonStore(config.paths.season_file)
    library = MediaLibrary(config.paths.media_dir, config.narrative.clip_extensions)

    persona = PersonaAggregator(store, ai, clock=clock)
    scheduler = RecapScheduler(
        store, ai, persona=persona, clock=clock, recap_window=config.narrative.recap_window
    )
    processor = DriveProcessor(
        store,
        ai,
        recap_scheduler=scheduler,
        config=config.narrative,
        clock=clock,
        video_mime_type=config.ai.video_mime_type,
    )
    regenerator = NarrativeRegenerator(
        store,
        processor,
        library,
        tolerance_seconds=config.narrative.smart_match_tolerance_seconds,
    )
    themes = SeasonThemeAnalyzer(store, ai, window=config.narrative.recap_window)

    return Engine(
        store=store,
        ai=ai,
        library=library,
        processor=processor,
        scheduler=scheduler,
        persona=persona,
        regenerator=regenerator,
        themes=themes,
    )
