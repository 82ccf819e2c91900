"""Weekly, monthly and yearly recaps.

Each cadence has a watermark on the Season (``last_*_recap_date``). A pass
evaluates all three triggers against one ``now``, generates whatever fired,
and saves once at the end.

Failure policy: when generation fails the recap is skipped but its
watermark still advances. A missed recap is preferred over retrying the
same failing call after every drive.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from octanelog.ai import prompts
from octanelog.ai.service import AIService
from octanelog.core.models import OctaneSoulReport, PeriodType, Recap, Season, utc_now
from octanelog.core.store import SeasonStore
from octanelog.narrative.persona import PersonaAggregator, append_report
from octanelog.utils.logging import log_decision, log_thought

logger = logging.getLogger(__name__)

DEFAULT_RECAP_WINDOW = 15
WEEKLY_INTERVAL_DAYS = 7


def _same_day(watermark: datetime | None, now: datetime) -> bool:
    if watermark is None:
        return False
    return watermark.astimezone(now.tzinfo).date() == now.date()


def _advance(watermark: datetime | None, now: datetime) -> datetime:
    """Watermarks never move backwards."""
    if watermark is None or now > watermark:
        return now
    return watermark


def weekly_due(season: Season, now: datetime) -> bool:
    """Seven whole days since the last weekly recap (or the first episode)."""
    if season.last_weekly_recap_date is not None:
        reference = season.last_weekly_recap_date
    elif season.episodes:
        reference = season.episodes[0].date
    else:
        reference = now
    return (now - reference).days >= WEEKLY_INTERVAL_DAYS


def monthly_due(season: Season, now: datetime) -> bool:
    """``now`` is the last day of its month and no monthly recap ran today."""
    last_day = calendar.monthrange(now.year, now.month)[1]
    return now.day == last_day and not _same_day(season.last_monthly_recap_date, now)


def yearly_due(season: Season, now: datetime) -> bool:
    """``now`` is December 31 and no yearly recap ran today."""
    return (now.month, now.day) == (12, 31) and not _same_day(season.last_yearly_recap_date, now)


@dataclass
class RecapPass:
    """What one scheduler pass decided and produced."""

    now: datetime
    fired: list[PeriodType] = field(default_factory=list)
    recaps: list[Recap] = field(default_factory=list)
    soul: OctaneSoulReport | None = None

    @property
    def changed(self) -> bool:
        return bool(self.fired)


class RecapScheduler:
    """Decides which recaps are due and generates them.

    Args:
        store: Season document store.
        ai: AI collaborator for recap text.
        persona: Run on the yearly branch. Optional.
        clock: Returns the current time.
        recap_window: Number of most recent episodes a recap covers.
    """

    def __init__(
        self,
        store: SeasonStore,
        ai: AIService,
        persona: PersonaAggregator | None = None,
        clock: Callable[[], datetime] = utc_now,
        recap_window: int = DEFAULT_RECAP_WINDOW,
    ) -> None:
        self.store = store
        self.ai = ai
        self.persona = persona
        self.clock = clock
        self.recap_window = recap_window
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def check_and_generate_recaps(self, season: Season | None = None) -> Season:
        """Run one scheduler pass.

        The season is always reloaded fresh; a passed-in snapshot is only a
        hint from the caller and is not trusted.

        Returns:
            The season after the pass (saved if anything fired).
        """
        current = self.store.load()
        now = self.clock()
        result = RecapPass(now=now)

        if weekly_due(current, now):
            result.fired.append(PeriodType.WEEKLY)
        if monthly_due(current, now):
            result.fired.append(PeriodType.MONTHLY)
        if yearly_due(current, now):
            result.fired.append(PeriodType.YEARLY)

        if not result.changed:
            self._logger.debug("No recaps due")
            return current

        for period in result.fired:
            recap = self._generate_recap(current, period, now)
            if recap is not None:
                result.recaps.append(recap)

        already_reported = any(s.year == now.year for s in current.octane_souls)
        if PeriodType.YEARLY in result.fired and self.persona is not None and not already_reported:
            result.soul = self.persona.build_report(current, now)

        return self._apply(result)

    def _generate_recap(self, season: Season, period: PeriodType, now: datetime) -> Recap | None:
        window = season.episodes[-self.recap_window:]
        if not window:
            self._logger.info(f"{period.value} recap due but there are no episodes")
            return None

        log_thought("Recap", f"Generating {period.value} recap over {len(window)} episode(s)")
        try:
            text = self.ai.generate_text(prompts.recap_prompt(season.title, window, period.value))
        except Exception as e:
            self._logger.warning(f"{period.value} recap failed: {type(e).__name__}")
            log_decision(
                "API Failure",
                f"Skip {period.value} recap",
                "Watermark still advances to avoid retrying after every drive.",
            )
            return None
        return Recap(date=now, period_type=period, summary=text)

    def _apply(self, result: RecapPass) -> Season:
        now = result.now
        with self.store.lock:
            season = self.store.load()
            season.recaps.extend(result.recaps)

            if PeriodType.WEEKLY in result.fired:
                season.last_weekly_recap_date = _advance(season.last_weekly_recap_date, now)
            if PeriodType.MONTHLY in result.fired:
                season.last_monthly_recap_date = _advance(season.last_monthly_recap_date, now)
            if PeriodType.YEARLY in result.fired:
                season.last_yearly_recap_date = _advance(season.last_yearly_recap_date, now)

            if result.soul is not None and not append_report(season, result.soul):
                self._logger.info(f"OctaneSoul for {result.soul.year} already exists")

            self.store.save(season)

        self._logger.info(
            f"Recap pass: fired {', '.join(p.value for p in result.fired)}, "
            f"generated {len(result.recaps)}"
        )
        return season
