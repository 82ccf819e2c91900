"""Season theme analysis.

Asks the model to name the season's current theme, title and saga from the
recent episodes, then overwrites those three fields on the Season.
"""

from __future__ import annotations

import logging

from octanelog.ai import prompts
from octanelog.ai.parsing import extract_json_object
from octanelog.ai.service import AIService
from octanelog.core.store import SeasonStore
from octanelog.utils.logging import log_decision, log_thought

logger = logging.getLogger(__name__)

DEFAULT_THEME_WINDOW = 15


class SeasonThemeAnalyzer:
    """Refreshes the season's theme, title and saga narrative."""

    def __init__(self, store: SeasonStore, ai: AIService, window: int = DEFAULT_THEME_WINDOW) -> None:
        self.store = store
        self.ai = ai
        self.window = window
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def update_season_theme(self) -> bool:
        """Run the analysis and apply it.

        Returns:
            True if the season was updated. False when there are no episodes,
            the AI call failed, or the response lacked a theme and title.
        """
        season = self.store.load()
        recent = season.episodes[-self.window:]
        if not recent:
            self._logger.info("No episodes yet, keeping the current theme")
            return False

        try:
            response = self.ai.generate_text(prompts.season_theme_prompt(recent))
            data = extract_json_object(response)
        except Exception as e:
            self._logger.warning(f"Theme analysis failed: {type(e).__name__}")
            log_decision("Theme Analysis", "Keep current theme", "No usable analysis from the model.")
            return False

        theme = data.get("theme")
        title = data.get("title")
        saga = data.get("sagaNarrative")
        if not (isinstance(theme, str) and theme.strip() and isinstance(title, str) and title.strip()):
            self._logger.warning("Theme analysis response is missing theme or title")
            return False

        saga_text = saga.strip() if isinstance(saga, str) and saga.strip() else None
        self.store.update(lambda s: s.apply_theme(theme.strip(), title.strip(), saga_text))
        log_thought("Theme Analysis", f"Season is now '{title.strip()}' ({theme.strip()})")
        return True
