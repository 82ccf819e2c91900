"""File-backed persistence for the Season document.

The whole season is one JSON document, loaded and saved wholesale. There
is no in-memory cache across calls: every operation reads the file fresh,
so callers must load immediately before mutating.

All operations on one document are serialised by a re-entrant lock,
which makes ``update()`` the single critical section for a
load → mutate → save cycle. Writes go to a temp file in the same
directory and are then atomically renamed over the document, so a
concurrent ``load()`` never sees a partial write.

Example:
    >>> store = SeasonStore(Path("~/.octanelog/SeasonArc.json"))
    >>> season = store.load()
    >>> store.update(lambda s: s.add_recurring_character("Old 66 Highway"))
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable

from pydantic import ValidationError

from octanelog.core.models import Season

logger = logging.getLogger(__name__)

# One lock per resolved document path, shared by every store in the process
_PATH_LOCKS: dict[Path, threading.RLock] = {}
_PATH_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = path.resolve()
    with _PATH_LOCKS_GUARD:
        lock = _PATH_LOCKS.get(key)
        if lock is None:
            lock = _PATH_LOCKS[key] = threading.RLock()
        return lock


class SeasonStoreError(Exception):
    """The season document could not be written."""

    pass


class SeasonStore:
    """Loads, saves and edits the season document.

    Attributes:
        path: Location of the JSON document.
        lock: Re-entrant lock guarding every read and write. Stores opened
            on the same document share it.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path).expanduser()
        self.lock = _lock_for(self.path)
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def load(self) -> Season:
        """Read the season, creating and persisting a default one if needed.

        A missing document yields a fresh default season. An undecodable one
        is moved aside to ``<name>.corrupt-<timestamp>`` before being
        replaced, so the original bytes are never silently lost.
        """
        with self.lock:
            if not self.path.exists():
                self._logger.info("No season document yet, starting a new season")
                return self._create_default()

            try:
                return Season.model_validate_json(self.path.read_bytes())
            except (ValidationError, ValueError, OSError) as e:
                self._logger.warning(f"Season document unreadable: {type(e).__name__}")
                self._quarantine()
                return self._create_default()

    def save(self, season: Season) -> None:
        """Atomically replace the document with ``season``.

        Raises:
            SeasonStoreError: If the document could not be written.
        """
        with self.lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = season.model_dump_json(indent=2)

            fd, temp_path = tempfile.mkstemp(
                dir=self.path.parent,
                suffix=".tmp",
                prefix=".season_",
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                Path(temp_path).replace(self.path)
            except OSError as e:
                Path(temp_path).unlink(missing_ok=True)
                raise SeasonStoreError(f"Failed to save season: {type(e).__name__}") from e

            self._logger.debug(f"Season saved ({len(season.episodes)} episodes)")

    def update(self, mutator: Callable[[Season], object]) -> Season:
        """Load, apply ``mutator`` in place, save, and return the season.

        The whole cycle runs under the store lock.
        """
        with self.lock:
            season = self.load()
            mutator(season)
            self.save(season)
            return season

    def delete_episode(self, episode_id: str) -> bool:
        """Remove one episode by id. Saves only if something was removed."""
        return self.delete_episodes({episode_id})

    def delete_episodes(self, episode_ids: Iterable[str]) -> bool:
        """Remove every episode whose id is in ``episode_ids``.

        Relative order of the remaining episodes is preserved. Saves only
        if the count changed.

        Returns:
            True if at least one episode was removed.
        """
        ids = set(episode_ids)
        with self.lock:
            season = self.load()
            before = len(season.episodes)
            season.episodes = [e for e in season.episodes if e.id not in ids]
            removed = before - len(season.episodes)
            if removed == 0:
                return False
            self.save(season)
            self._logger.info(f"Deleted {removed} episode(s)")
            return True

    def _create_default(self) -> Season:
        season = Season()
        self.save(season)
        return season

    def _quarantine(self) -> None:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        target = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        try:
            self.path.replace(target)
            self._logger.warning(f"Preserved unreadable season document as {target.name}")
        except OSError as e:
            self._logger.error(f"Could not preserve unreadable season document: {type(e).__name__}")


def dump_season(season: Season) -> str:
    """Pretty JSON for display."""
    return json.dumps(season.model_dump(mode="json"), indent=2)
