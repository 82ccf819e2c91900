"""Central Pytest Fixtures for OctaneLog.

Fixtures included:
- Storage: season_path, store
- Time: clock (a settable fixed clock)
- AI Mocks: mock_ai, failing_ai
- Media: media_root, library, and the make_drive_folder helper
- Components: persona, scheduler, processor, regenerator
"""

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable
from unittest.mock import MagicMock

import pytest

from octanelog.ai.client import AIUnavailableError
from octanelog.ai.service import AIService
from octanelog.config import NarrativeConfig, reset_config
from octanelog.core.models import Episode, Season
from octanelog.core.store import SeasonStore
from octanelog.media.library import MediaLibrary
from octanelog.narrative.drive_processor import DriveProcessor
from octanelog.narrative.persona import PersonaAggregator
from octanelog.narrative.reconciliation import NarrativeRegenerator
from octanelog.narrative.recaps import RecapScheduler

UTC = timezone.utc


# =============================================================================
# Helper Functions
# =============================================================================


class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_drive_folder(
    root: Path,
    name: str,
    created_at: datetime,
    clips: Iterable[str] = ("clip_001.mov",),
) -> Path:
    """Create a drive folder with dummy clips and a given creation time.

    The folder's timestamp is set after the clips are written, since
    writing files inside a directory bumps its modification time.
    """
    folder = root / name
    folder.mkdir(parents=True, exist_ok=True)
    for clip in clips:
        (folder / clip).write_bytes(b"\x00\x00\x00\x18ftypqt  ")
    ts = created_at.timestamp()
    os.utime(folder, (ts, ts))
    return folder


def make_episode(
    date: datetime,
    summary: str = "A quiet loop around town.",
    tags: list[str] | None = None,
    **kwargs,
) -> Episode:
    return Episode(
        date=date,
        title=kwargs.pop("title", "Drive"),
        summary=summary,
        tags=tags if tags is not None else ["finalized"],
        **kwargs,
    )


def seed_season(store: SeasonStore, episodes: Iterable[Episode] = (), **fields) -> Season:
    """Persist a season holding ``episodes`` and return it."""
    season = Season(episodes=list(episodes), **fields)
    store.save(season)
    return season


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keep tests away from the real home directory, keyring and API key."""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    for name in list(os.environ):
        if name.startswith("OCTANELOG_"):
            monkeypatch.delenv(name, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    reset_config()
    yield
    reset_config()


# =============================================================================
# Storage & Time
# =============================================================================


@pytest.fixture
def season_path(tmp_path) -> Path:
    return tmp_path / "data" / "SeasonArc.json"


@pytest.fixture
def store(season_path) -> SeasonStore:
    return SeasonStore(season_path)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 3, 2, 9, 0, tzinfo=UTC))


# =============================================================================
# AI Mocks
# =============================================================================


@pytest.fixture
def mock_ai():
    """AI collaborator that always succeeds."""
    ai = MagicMock(spec=AIService)
    ai.generate_text.return_value = "The road unfolded like a promise."
    ai.upload_clip.side_effect = lambda path, mime_type: f"files/{Path(path).stem}"
    ai.wait_until_ready.side_effect = lambda name: f"https://generativelanguage.test/{name}"
    ai.generate_from_media.return_value = "Footage shows a golden hour run along the coast."
    return ai


@pytest.fixture
def failing_ai():
    """AI collaborator whose every call fails."""
    ai = MagicMock(spec=AIService)
    error = AIUnavailableError("no_api_key")
    ai.generate_text.side_effect = error
    ai.upload_clip.side_effect = error
    ai.wait_until_ready.side_effect = error
    ai.generate_from_media.side_effect = error
    return ai


# =============================================================================
# Media
# =============================================================================


@pytest.fixture
def media_root(tmp_path) -> Path:
    root = tmp_path / "drives"
    root.mkdir()
    return root


@pytest.fixture
def library(media_root) -> MediaLibrary:
    return MediaLibrary(media_root)


# =============================================================================
# Components
# =============================================================================


@pytest.fixture
def persona(store, mock_ai, clock) -> PersonaAggregator:
    return PersonaAggregator(store, mock_ai, clock=clock)


@pytest.fixture
def scheduler(store, mock_ai, persona, clock) -> RecapScheduler:
    return RecapScheduler(store, mock_ai, persona=persona, clock=clock)


@pytest.fixture
def processor(store, mock_ai, clock) -> DriveProcessor:
    return DriveProcessor(store, mock_ai, config=NarrativeConfig(), clock=clock)


@pytest.fixture
def regenerator(store, processor, library) -> NarrativeRegenerator:
    return NarrativeRegenerator(store, processor, library)
