"""Core data models for OctaneLog.

The whole narrative arc lives in one document, the Season:

1. RAW CAPTURE (RoutePoint, VisionHints, MediaFolder)
2. NARRATIVE RECORDS (Episode)
3. PERIODIC SYNTHESIS (Recap, OctaneSoulReport)
4. ROOT AGGREGATE (Season)

Every field added after the first schema carries a default so older
documents keep decoding. Unknown keys are ignored.
"""

from __future__ import annotations

import uuid as uuid_module
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

SCHEMA_VERSION = 2

DEFAULT_SEASON_TITLE = "Season 1: The New Journey"
DEFAULT_SEASON_THEME = "Discovery"


def utc_now() -> datetime:
    """Default clock for every component that needs the current time."""
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid_module.uuid4())


def _ensure_aware(v: Any) -> Any:
    """Treat naive datetimes as UTC so comparisons never mix kinds."""
    if isinstance(v, datetime) and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


# =============================================================================
# Enums
# =============================================================================


class PeriodType(str, Enum):
    """Cadence of a recap."""

    WEEKLY = "Weekly"
    MONTHLY = "Monthly"
    YEARLY = "Yearly"


# =============================================================================
# Raw Capture
# =============================================================================


class RoutePoint(BaseModel):
    """A single GPS fix along a drive."""

    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    timestamp: datetime

    @field_validator("latitude")
    @classmethod
    def validate_latitude(cls, v: float) -> float:
        if v < -90 or v > 90:
            raise ValueError(f"Latitude must be between -90 and 90 degrees, got {v}")
        return v

    @field_validator("longitude")
    @classmethod
    def validate_longitude(cls, v: float) -> float:
        if v < -180 or v > 180:
            raise ValueError(f"Longitude must be between -180 and 180 degrees, got {v}")
        return v

    @field_validator("timestamp", mode="after")
    @classmethod
    def make_aware(cls, v: datetime) -> datetime:
        return _ensure_aware(v)


class VisionHints(BaseModel):
    """On-device frame analysis of a drive's clips.

    Lets the engine describe a drive without uploading every clip.

    Attributes:
        detected_objects: Labels recognised across sampled frames.
        scene_types: Scene classifications (e.g. "road", "mountain").
        average_brightness: Mean frame brightness in [0, 1].
        time_of_day: Coarse label derived from brightness.
    """

    detected_objects: list[str] = Field(default_factory=list)
    scene_types: list[str] = Field(default_factory=list)
    average_brightness: float = Field(default=0.0, ge=0.0, le=1.0)
    time_of_day: str | None = None

    @staticmethod
    def time_of_day_for(brightness: float) -> str:
        """Map an average brightness to a time-of-day label."""
        if brightness < 0.2:
            return "Night"
        if brightness < 0.35:
            return "Dusk/Dawn"
        if brightness < 0.7:
            return "Day (Overcast)"
        return "Day (Sunny)"

    def summary(self) -> str:
        """Render the hints as a block suitable for a prompt."""
        time_of_day = self.time_of_day or self.time_of_day_for(self.average_brightness)
        return "\n".join(
            [
                f"Detected Objects: {', '.join(self.detected_objects[:10])}",
                f"Scene Types: {', '.join(self.scene_types)}",
                f"Time of Day: {time_of_day}",
                f"Average Brightness: {self.average_brightness * 100:.1f}%",
            ]
        )


class MediaFolder(BaseModel):
    """A directory of clips recorded during one drive."""

    id: str
    path: Path
    created_at: datetime

    @field_validator("created_at", mode="after")
    @classmethod
    def make_aware(cls, v: datetime) -> datetime:
        return _ensure_aware(v)


# =============================================================================
# Narrative Records
# =============================================================================


class Episode(BaseModel):
    """One narrative record for one drive.

    Created in the processing state and saved before any slow call, then
    finalized in place (looked up by id) once generation finishes.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=_new_id)
    date: datetime = Field(default_factory=utc_now)
    title: str
    summary: str
    tags: list[str] = Field(default_factory=list)
    raw_events: list[str] | None = None
    route: list[RoutePoint] = Field(default_factory=list)
    drive_folder: str | None = None
    is_processing: bool = False

    @field_validator("date", mode="after")
    @classmethod
    def make_aware(cls, v: datetime) -> datetime:
        return _ensure_aware(v)


class Recap(BaseModel):
    """A weekly, monthly or yearly synthesis over recent episodes."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(default_factory=_new_id)
    date: datetime
    period_type: PeriodType
    summary: str

    @field_validator("date", mode="after")
    @classmethod
    def make_aware(cls, v: datetime) -> datetime:
        return _ensure_aware(v)


class OctaneSoulReport(BaseModel):
    """The yearly driver persona."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(default_factory=_new_id)
    year: int
    total_drives: int = Field(ge=0)
    top_tags: list[str] = Field(default_factory=list, max_length=3)
    soul_title: str
    soul_description: str


# =============================================================================
# Root Aggregate
# =============================================================================


class Season(BaseModel):
    """The root aggregate for one narrative arc.

    Attributes:
        id: Assigned once at creation.
        title: Season title, overwritten by theme analysis.
        theme: One-word theme, overwritten by theme analysis.
        saga_narrative: Longer arc summary, overwritten by theme analysis.
        episodes: Insertion-ordered (oldest first).
        recurring_characters: Unique, insertion-ordered.
        recaps: Append-only.
        last_weekly_recap_date: Watermark for the weekly recap.
        last_monthly_recap_date: Watermark for the monthly recap.
        last_yearly_recap_date: Watermark for the yearly recap.
        octane_souls: Append-only persona reports.
        schema_version: Document schema version.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=_new_id)
    title: str = DEFAULT_SEASON_TITLE
    theme: str = DEFAULT_SEASON_THEME
    saga_narrative: str | None = None
    episodes: list[Episode] = Field(default_factory=list)
    recurring_characters: list[str] = Field(default_factory=list)
    recaps: list[Recap] = Field(default_factory=list)
    last_weekly_recap_date: datetime | None = None
    last_monthly_recap_date: datetime | None = None
    last_yearly_recap_date: datetime | None = None
    octane_souls: list[OctaneSoulReport] = Field(default_factory=list)
    schema_version: int = SCHEMA_VERSION

    @field_validator(
        "last_weekly_recap_date",
        "last_monthly_recap_date",
        "last_yearly_recap_date",
        mode="after",
    )
    @classmethod
    def make_aware(cls, v: datetime | None) -> datetime | None:
        return _ensure_aware(v)

    @field_validator("recurring_characters", mode="after")
    @classmethod
    def dedupe_characters(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))

    def find_episode(self, episode_id: str) -> Episode | None:
        """Return the episode with this id, or None."""
        return next((e for e in self.episodes if e.id == episode_id), None)

    def add_recurring_character(self, name: str) -> bool:
        """Add a recurring character. Returns True if it was new."""
        if name in self.recurring_characters:
            return False
        self.recurring_characters.append(name)
        return True

    def apply_theme(self, theme: str, title: str, saga_narrative: str | None) -> None:
        """Overwrite the descriptive fields from an external theme analysis."""
        self.theme = theme
        self.title = title
        self.saga_narrative = saga_narrative
