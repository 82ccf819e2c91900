"""Tests for octanelog.narrative.themes and octanelog.ai.parsing."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from conftest import make_episode, seed_season
from octanelog.ai.parsing import extract_json, extract_json_object, strip_code_fences
from octanelog.core.models import DEFAULT_SEASON_THEME, DEFAULT_SEASON_TITLE
from octanelog.narrative.themes import SeasonThemeAnalyzer

UTC = timezone.utc

THEME_JSON = json.dumps(
    {
        "theme": "Velocity",
        "title": "Season 2: Into the Wild",
        "sagaNarrative": "The roads grew longer and the nights shorter.",
    }
)


class TestParsing:
    """Lenient JSON extraction."""

    def test_plain(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_fenced(self):
        assert extract_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_fenced_without_language(self):
        assert extract_json('```\n[1, 2]\n```') == [1, 2]

    def test_surrounding_prose(self):
        assert extract_json('Here you go: {"a": {"b": 2}} Enjoy!') == {"a": {"b": 2}}

    def test_invalid(self):
        with pytest.raises(ValueError):
            extract_json("no json here")

    def test_scalar_is_rejected(self):
        with pytest.raises(ValueError):
            extract_json("42")

    def test_object_required(self):
        with pytest.raises(ValueError):
            extract_json_object("[1, 2]")

    def test_strip_code_fences_passthrough(self):
        assert strip_code_fences("  plain  ") == "plain"


class TestSeasonThemeAnalyzer:
    """Theme refresh against the stored season."""

    @pytest.fixture
    def analyzer(self, store, mock_ai):
        return SeasonThemeAnalyzer(store, mock_ai)

    def test_applies_theme(self, store, analyzer, mock_ai):
        seed_season(store, [make_episode(datetime(2026, 3, 1, tzinfo=UTC), summary="Mountain pass at dawn")])
        mock_ai.generate_text.return_value = f"```json\n{THEME_JSON}\n```"

        assert analyzer.update_season_theme() is True

        season = store.load()
        assert season.theme == "Velocity"
        assert season.title == "Season 2: Into the Wild"
        assert season.saga_narrative == "The roads grew longer and the nights shorter."
        prompt = mock_ai.generate_text.call_args.args[0]
        assert "Mountain pass at dawn" in prompt
        assert "sagaNarrative" in prompt

    def test_no_episodes(self, store, analyzer, mock_ai):
        seed_season(store)
        assert analyzer.update_season_theme() is False
        mock_ai.generate_text.assert_not_called()

    def test_unparseable_response_keeps_season(self, store, analyzer, mock_ai):
        seed_season(store, [make_episode(datetime(2026, 3, 1, tzinfo=UTC))])
        mock_ai.generate_text.return_value = "A season of change."

        assert analyzer.update_season_theme() is False

        season = store.load()
        assert season.theme == DEFAULT_SEASON_THEME
        assert season.title == DEFAULT_SEASON_TITLE

    def test_missing_title_keeps_season(self, store, analyzer, mock_ai):
        seed_season(store, [make_episode(datetime(2026, 3, 1, tzinfo=UTC))])
        mock_ai.generate_text.return_value = '{"theme": "Solitude"}'

        assert analyzer.update_season_theme() is False
        assert store.load().theme == DEFAULT_SEASON_THEME

    def test_ai_failure(self, store, failing_ai):
        seed_season(store, [make_episode(datetime(2026, 3, 1, tzinfo=UTC))])
        assert SeasonThemeAnalyzer(store, failing_ai).update_season_theme() is False

    def test_missing_saga_clears_it(self, store, analyzer, mock_ai):
        seed_season(
            store,
            [make_episode(datetime(2026, 3, 1, tzinfo=UTC))],
            saga_narrative="Old saga",
        )
        mock_ai.generate_text.return_value = '{"theme": "Urban", "title": "Season 3: Concrete"}'

        assert analyzer.update_season_theme() is True
        assert store.load().saga_narrative is None
