"""Season document models and persistence."""

from octanelog.core.models import (
    Episode,
    MediaFolder,
    OctaneSoulReport,
    PeriodType,
    Recap,
    RoutePoint,
    Season,
    VisionHints,
)
from octanelog.core.store import SeasonStore, SeasonStoreError

__all__ = [
    "Episode",
    "MediaFolder",
    "OctaneSoulReport",
    "PeriodType",
    "Recap",
    "RoutePoint",
    "Season",
    "VisionHints",
    "SeasonStore",
    "SeasonStoreError",
]
