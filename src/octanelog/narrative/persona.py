"""Yearly driver persona ("OctaneSoul")."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from typing import Callable

from octanelog.ai import prompts
from octanelog.ai.parsing import extract_json_object
from octanelog.ai.service import AIService
from octanelog.core.models import Episode, OctaneSoulReport, Season, utc_now
from octanelog.core.store import SeasonStore
from octanelog.utils.logging import log_decision, log_thought

logger = logging.getLogger(__name__)

DEFAULT_SOUL_TITLE = "The Unknown Driver"
DEFAULT_SOUL_DESCRIPTION = "Not enough data to determine the soul."

TOP_TAG_COUNT = 3


def episodes_in_year(episodes: list[Episode], now: datetime) -> list[Episode]:
    """Episodes whose date falls in ``now``'s calendar year (in ``now``'s zone)."""
    return [e for e in episodes if e.date.astimezone(now.tzinfo).year == now.year]


def top_tags(episodes: list[Episode], limit: int = TOP_TAG_COUNT) -> list[str]:
    """Most frequent tags, ties broken by first-seen order."""
    counts = Counter(tag for episode in episodes for tag in episode.tags)
    return [tag for tag, _ in counts.most_common(limit)]


def parse_soul(text: str) -> tuple[str, str]:
    """Extract (title, description), substituting defaults field by field."""
    try:
        data = extract_json_object(text)
    except ValueError:
        logger.warning("Persona response was not valid JSON")
        return DEFAULT_SOUL_TITLE, DEFAULT_SOUL_DESCRIPTION

    title = data.get("soulTitle")
    description = data.get("soulDescription")
    return (
        title.strip() if isinstance(title, str) and title.strip() else DEFAULT_SOUL_TITLE,
        description.strip()
        if isinstance(description, str) and description.strip()
        else DEFAULT_SOUL_DESCRIPTION,
    )


class PersonaAggregator:
    """Builds and stores one OctaneSoulReport per calendar year.

    A report is never appended twice for the same year, even when invoked
    outside the recap scheduler's yearly gate.
    """

    def __init__(
        self,
        store: SeasonStore,
        ai: AIService,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.ai = ai
        self.clock = clock
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def build_report(self, season: Season, now: datetime) -> OctaneSoulReport | None:
        """Compute the report for ``now``'s year without persisting it.

        Returns:
            The report, or None when the year has no episodes.
        """
        year_episodes = episodes_in_year(season.episodes, now)
        if not year_episodes:
            self._logger.info(f"No episodes in {now.year}, skipping OctaneSoul")
            return None

        tags = top_tags(year_episodes)
        log_thought(
            "Persona Analysis",
            f"{len(year_episodes)} drives in {now.year}. Top tags: {', '.join(tags) or 'none'}",
        )

        try:
            response = self.ai.generate_text(prompts.octane_soul_prompt(season.title, year_episodes))
            title, description = parse_soul(response)
        except Exception as e:
            self._logger.warning(f"OctaneSoul generation failed: {type(e).__name__}")
            log_decision("API Failure", "Use default persona", "Persona generation unavailable.")
            title, description = DEFAULT_SOUL_TITLE, DEFAULT_SOUL_DESCRIPTION

        return OctaneSoulReport(
            year=now.year,
            total_drives=len(year_episodes),
            top_tags=tags,
            soul_title=title,
            soul_description=description,
        )

    def generate_and_save_octane_soul(self, season: Season | None = None) -> OctaneSoulReport | None:
        """Build this year's report and append it to the stored season.

        ``season`` is accepted for call-site symmetry; the document is always
        reloaded fresh.

        Returns:
            The appended report, or None if there was nothing to report or a
            report for this year already exists.
        """
        now = self.clock()
        current = self.store.load()
        if any(existing.year == now.year for existing in current.octane_souls):
            self._logger.info(f"OctaneSoul for {now.year} already exists")
            return None

        report = self.build_report(current, now)
        if report is None:
            return None

        with self.store.lock:
            fresh = self.store.load()
            if not append_report(fresh, report):
                self._logger.info(f"OctaneSoul for {report.year} already exists")
                return None
            self.store.save(fresh)

        self._logger.info(f"OctaneSoul for {report.year}: {report.soul_title}")
        return report


def append_report(season: Season, report: OctaneSoulReport) -> bool:
    """Append ``report`` unless the season already holds one for its year."""
    if any(existing.year == report.year for existing in season.octane_souls):
        return False
    season.octane_souls.append(report)
    return True
