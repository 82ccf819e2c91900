"""Turns a completed drive into an Episode.

The pipeline follows a save-first pattern:

1. A placeholder Episode is appended and persisted before any network call,
   so a crash mid-generation leaves a recoverable "stuck" record instead of
   losing the drive.
2. The narrative is generated (text-only, or grounded in uploaded clips).
   Every AI failure degrades to a fallback and never reaches the caller.
3. The season is reloaded, the placeholder finalized in place, and the recap
   scheduler runs against the fresh document.

Example:
    >>> processor = DriveProcessor(store, ai, recap_scheduler=scheduler)
    >>> text = processor.process_drive(["Engine started", "Scenic overlook"])
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Sequence

from octanelog.ai import prompts
from octanelog.ai.service import AIService
from octanelog.config import NarrativeConfig
from octanelog.core.models import Episode, RoutePoint, Season, VisionHints, utc_now
from octanelog.core.store import SeasonStore
from octanelog.media.library import DEFAULT_CLIP_MIME_TYPE, clip_mime_type
from octanelog.utils.logging import log_decision, log_thought

if TYPE_CHECKING:
    from octanelog.narrative.recaps import RecapScheduler

logger = logging.getLogger(__name__)

EMPTY_DRIVE_EVENTS = ("Drive started.", "Drive ended unexpectedly (no events)")

OFFLINE_NARRATIVE = (
    "Offline Mode: Just another day on the asphalt. (Check API Key for the full story)."
)

FINALIZED_TAG = "finalized"

# Keyword (lower case) -> recurring character it unlocks
LANDMARK_KEYWORDS = {
    "coffee": "The Coffee Shop",
}

# Case-sensitive substrings
ALIGNMENT_MARKERS = ("Scenic", "New")


def normalize_events(events: Sequence[str]) -> list[str]:
    """Substitute the sentinel pair for an empty event list."""
    return list(events) if events else list(EMPTY_DRIVE_EVENTS)


def processing_title(number: int) -> str:
    return f"Drive #{number} (Processing)"


def finalized_title(number: int) -> str:
    return f"Drive #{number}"


def placeholder_summary(clip_count: int) -> str:
    return f"Analyzing {clip_count} clip(s)... do not close app"


def thematic_alignment(events: Sequence[str], theme: str) -> str:
    """Classify how a drive fits the season theme. Diagnostic only."""
    if any(marker in event for event in events for marker in ALIGNMENT_MARKERS):
        return f"Positive Alignment: The user explored new areas, fitting the '{theme}' theme."
    return "Neutral Alignment: Routine drive. Suggest spicing it up in the next episode."


def landmarks_mentioned(narrative: str) -> list[str]:
    """Recurring characters whose keyword appears in the narrative."""
    lowered = narrative.lower()
    return [name for keyword, name in LANDMARK_KEYWORDS.items() if keyword in lowered]


@dataclass
class DriveResult:
    """The Episode a drive produced and its narrative."""

    episode_id: str
    title: str
    narrative: str


class DriveProcessor:
    """Orchestrates placeholder, generation, finalization and recaps for one drive.

    Args:
        store: Season document store.
        ai: AI collaborator. Any exception it raises triggers a fallback.
        recap_scheduler: Run after every drive. Optional.
        config: Narrative tunables (upload threshold).
        clock: Returns the current time.
        video_mime_type: MIME type for clips whose extension is not recognised.
    """

    def __init__(
        self,
        store: SeasonStore,
        ai: AIService,
        recap_scheduler: RecapScheduler | None = None,
        config: NarrativeConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
        video_mime_type: str = DEFAULT_CLIP_MIME_TYPE,
    ) -> None:
        self.store = store
        self.ai = ai
        self.recap_scheduler = recap_scheduler
        self.config = config or NarrativeConfig()
        self.clock = clock
        self.video_mime_type = video_mime_type
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    # =========================================================================
    # Pipeline
    # =========================================================================

    def process_drive(
        self,
        events: Sequence[str],
        route: Sequence[RoutePoint] = (),
        media_clips: Sequence[Path] = (),
        drive_folder: str | None = None,
        vision_hints: VisionHints | None = None,
    ) -> str:
        """Create, narrate and finalize exactly one Episode for a drive.

        Args:
            events: Telemetry events in capture order. May be empty.
            route: GPS fixes along the drive.
            media_clips: Local clip files recorded during the drive.
            drive_folder: Id of the media folder the clips came from.
            vision_hints: Precomputed on-device frame analysis.

        Returns:
            The narrative text (a fallback text when AI is unavailable).
        """
        return self.run_drive(events, route, media_clips, drive_folder, vision_hints).narrative

    def run_drive(
        self,
        events: Sequence[str],
        route: Sequence[RoutePoint] = (),
        media_clips: Sequence[Path] = (),
        drive_folder: str | None = None,
        vision_hints: VisionHints | None = None,
    ) -> DriveResult:
        """Like ``process_drive`` but also reports which Episode was written."""
        events = normalize_events(events)
        clips = [Path(c) for c in media_clips]

        # 1. Placeholder, persisted before any network call
        with self.store.lock:
            season = self.store.load()
            number = len(season.episodes) + 1
            episode = Episode(
                date=self.clock(),
                title=processing_title(number),
                summary=placeholder_summary(len(clips)),
                raw_events=events,
                route=list(route),
                drive_folder=drive_folder,
                is_processing=True,
            )
            season.episodes.append(episode)
            self.store.save(season)

        log_thought(
            "Context Retrieval",
            f"Loaded Season: '{season.title}'. Current Episode Count: {number - 1}. "
            f"Recurring Characters: {', '.join(season.recurring_characters)}",
        )

        # 2. Generation
        narrative = self.generate_narrative(events, season, clips, vision_hints)

        # 3. Finalize against a fresh reload
        finalized = self._finalize(episode.id, number, narrative)

        log_thought("Thematic Analysis", thematic_alignment(events, season.theme))

        if self.recap_scheduler is not None:
            self.recap_scheduler.check_and_generate_recaps(finalized)

        return DriveResult(episode_id=episode.id, title=finalized_title(number), narrative=narrative)

    def generate_narrative(
        self,
        events: Sequence[str],
        season: Season,
        media_clips: Sequence[Path] = (),
        vision_hints: VisionHints | None = None,
        force_upload: bool = False,
    ) -> str:
        """Produce narrative text for a drive. Never raises for AI failures.

        Clips are uploaded when there are at most ``max_upload_clips`` of
        them, when vision hints are present, or when ``force_upload`` is set.
        Otherwise the vision hints (if any) stand in for the footage.
        """
        clips = list(media_clips)
        if not clips:
            return self._generate_text(events, season, None)

        should_upload = (
            force_upload
            or len(clips) <= self.config.max_upload_clips
            or vision_hints is not None
        )
        if not should_upload:
            log_decision(
                "Media Strategy",
                "Skip upload, narrate from vision hints",
                f"{len(clips)} clips exceed the upload threshold of {self.config.max_upload_clips}.",
            )
            return self._generate_text(events, season, vision_hints)

        assets = self._upload_clips(clips)
        if not assets:
            log_decision(
                "Media Strategy",
                "Fallback to text narrative",
                "No clip could be uploaded.",
            )
            return self._generate_text(events, season, vision_hints)

        prompt = prompts.media_narrative_prompt(self._narrative_prompt(events, season, vision_hints))
        try:
            uris = [uri for uri, _ in assets]
            mime_types = [mime_type for _, mime_type in assets]
            return self.ai.generate_from_media(prompt, uris, mime_types)
        except Exception as e:
            self._logger.warning(f"Media narrative failed: {type(e).__name__}")
            log_decision(
                "API Failure",
                "Fallback to text narrative",
                "Media-grounded generation failed.",
            )
            return self._generate_text(events, season, vision_hints)

    # =========================================================================
    # Internals
    # =========================================================================

    def _narrative_prompt(
        self, events: Sequence[str], season: Season, vision_hints: VisionHints | None
    ) -> str:
        prompt = prompts.narrative_prompt(
            events,
            theme=season.theme,
            title=season.title,
            recurring_characters=season.recurring_characters,
            vision_hints=vision_hints,
        )
        log_thought(
            "Prompt Engineering",
            f"Constructed prompt with {len(season.episodes)} episodes of history.",
        )
        return prompt

    def _generate_text(
        self, events: Sequence[str], season: Season, vision_hints: VisionHints | None
    ) -> str:
        prompt = self._narrative_prompt(events, season, vision_hints)
        try:
            return self.ai.generate_text(prompt)
        except Exception as e:
            self._logger.warning(f"Text narrative failed: {type(e).__name__}")
            log_decision(
                "API Failure",
                "Fallback to offline generator",
                "Gemini API unavailable or key missing.",
            )
            return OFFLINE_NARRATIVE

    def _upload_clips(self, clips: Sequence[Path]) -> list[tuple[str, str]]:
        """Upload each clip. Returns (uri, mime type) for those that became ready."""
        assets: list[tuple[str, str]] = []
        for clip in clips:
            mime_type = clip_mime_type(clip, self.video_mime_type)
            try:
                asset_name = self.ai.upload_clip(clip, mime_type)
                assets.append((self.ai.wait_until_ready(asset_name), mime_type))
            except Exception as e:
                self._logger.warning(f"Skipping clip {clip.name}: {type(e).__name__}")
        self._logger.info(f"Uploaded {len(assets)}/{len(clips)} clip(s)")
        return assets

    def _finalize(self, episode_id: str, number: int, narrative: str) -> Season | None:
        with self.store.lock:
            season = self.store.load()
            episode = season.find_episode(episode_id)
            if episode is None:
                self._logger.warning(f"Episode {episode_id} vanished before finalization")
                return None

            episode.summary = narrative
            episode.title = finalized_title(number)
            episode.tags = [FINALIZED_TAG]
            episode.is_processing = False

            for name in landmarks_mentioned(narrative):
                if season.add_recurring_character(name):
                    log_thought("State Update", f"New recurring location unlocked: {name}")

            self.store.save(season)

        log_thought("Persistence", f"Season Arc updated. Total episodes: {len(season.episodes)}")
        return season
