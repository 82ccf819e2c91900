"""Re-links Episodes to their media and regenerates ("remasters") narratives.

This is the recovery path for Episodes left in the processing state by an
interrupted drive, and for narratives generated without footage. It is
safe to run repeatedly on the same Episode.

Folder resolution order:

1. A folder chosen manually by the caller.
2. The Episode's stored ``drive_folder``.
3. A smart match: the first library folder whose creation time is within
   the tolerance (inclusive) of the Episode's date.
"""

from __future__ import annotations

import logging
from pathlib import Path

from octanelog.core.models import Episode, MediaFolder
from octanelog.core.store import SeasonStore
from octanelog.media.library import MediaLibrary
from octanelog.narrative.drive_processor import DriveProcessor, normalize_events
from octanelog.utils.logging import log_decision, log_thought

logger = logging.getLogger(__name__)

REMASTER_PLACEHOLDER = "Remastering with Gemini 3..."
REMASTERED_TAG = "Remastered"
DEFAULT_MATCH_TOLERANCE_SECONDS = 120.0


class RegenerationError(Exception):
    """Base exception for regeneration failures that need user action."""

    pass


class EpisodeNotFoundError(RegenerationError):
    """No Episode with the requested id exists."""

    def __init__(self, episode_id: str) -> None:
        super().__init__(f"Episode not found: {episode_id}")
        self.episode_id = episode_id


class NoMediaFoundError(RegenerationError):
    """No clips could be resolved for the Episode."""

    def __init__(self, episode_id: str) -> None:
        super().__init__(
            f"No media found for episode {episode_id}. "
            "Please select the drive folder manually."
        )
        self.episode_id = episode_id


def smart_match(
    episode: Episode,
    folders: list[MediaFolder],
    tolerance_seconds: float = DEFAULT_MATCH_TOLERANCE_SECONDS,
) -> MediaFolder | None:
    """First folder created within ``tolerance_seconds`` of the episode date."""
    for folder in folders:
        delta = abs((folder.created_at - episode.date).total_seconds())
        if delta <= tolerance_seconds:
            return folder
    return None


class NarrativeRegenerator:
    """Resolves an Episode's media and re-runs media-grounded generation.

    Args:
        store: Season document store.
        processor: Provides the narrative generation path.
        library: Media library used for lookups and smart matching.
        tolerance_seconds: Smart-match window, applied symmetrically.
    """

    def __init__(
        self,
        store: SeasonStore,
        processor: DriveProcessor,
        library: MediaLibrary,
        tolerance_seconds: float = DEFAULT_MATCH_TOLERANCE_SECONDS,
    ) -> None:
        self.store = store
        self.processor = processor
        self.library = library
        self.tolerance_seconds = tolerance_seconds
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def regenerate_narrative(self, episode_id: str, manual_folder: Path | None = None) -> str:
        """Regenerate one Episode's narrative from its footage.

        Args:
            episode_id: Id of the Episode to remaster.
            manual_folder: Folder to use instead of any automatic lookup.

        Returns:
            The new narrative text.

        Raises:
            EpisodeNotFoundError: If no Episode has this id.
            NoMediaFoundError: If no clips could be found. The Episode is
                left untouched.
        """
        season = self.store.load()
        episode = season.find_episode(episode_id)
        if episode is None:
            raise EpisodeNotFoundError(episode_id)

        folder_id, clips = self._resolve_media(episode, manual_folder)
        if not clips:
            log_decision(
                "Reconciliation",
                "Ask for a manual folder",
                "No media could be resolved for this episode.",
            )
            raise NoMediaFoundError(episode_id)

        with self.store.lock:
            season = self.store.load()
            episode = season.find_episode(episode_id)
            if episode is None:
                raise EpisodeNotFoundError(episode_id)
            if folder_id != episode.drive_folder:
                log_thought("Reconciliation", f"Linked episode {episode_id} to folder {folder_id}")
                episode.drive_folder = folder_id
            episode.summary = REMASTER_PLACEHOLDER
            episode.is_processing = True
            self.store.save(season)

        events = normalize_events(episode.raw_events or [])
        narrative = self.processor.generate_narrative(events, season, clips, force_upload=True)

        with self.store.lock:
            season = self.store.load()
            episode = season.find_episode(episode_id)
            if episode is None:
                self._logger.warning(f"Episode {episode_id} was deleted during regeneration")
                return narrative
            episode.summary = narrative
            episode.is_processing = False
            if REMASTERED_TAG not in episode.tags:
                episode.tags.append(REMASTERED_TAG)
            self.store.save(season)

        self._logger.info(f"Remastered episode {episode_id} from {len(clips)} clip(s)")
        return narrative

    def _resolve_media(
        self, episode: Episode, manual_folder: Path | None
    ) -> tuple[str | None, list[Path]]:
        if manual_folder is not None:
            path = Path(manual_folder).expanduser().resolve()
            folder_id = path.name if path.parent == self.library.root.resolve() else str(path)
            return folder_id, self.library.list_clips(path)

        if episode.drive_folder:
            folder = self.library.resolve(episode.drive_folder)
            if folder is None:
                self._logger.warning(f"Linked folder {episode.drive_folder} is missing")
                return episode.drive_folder, []
            return folder.id, self.library.list_clips(folder)

        match = smart_match(episode, self.library.list_folders(), self.tolerance_seconds)
        if match is None:
            return None, []
        log_thought(
            "Smart Match",
            f"Folder {match.id} created within {self.tolerance_seconds:.0f}s of the episode",
        )
        return match.id, self.library.list_clips(match)
