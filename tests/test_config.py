"""Tests for octanelog.config."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from octanelog.config import (
    AIMode,
    APIKeyInvalidError,
    APIKeyManager,
    APIKeyNotFoundError,
    AppConfig,
    KeySource,
    NarrativeConfig,
    PathsConfig,
    get_api_key,
    get_config,
    load_config,
    reset_config,
)

VALID_KEY = "AIzaSyTESTKEY0123456789abcdefghijklmno"


class TestDefaults:
    """Configuration defaults."""

    def test_narrative_defaults(self):
        config = AppConfig()
        assert config.narrative.recap_window == 15
        assert config.narrative.smart_match_tolerance_seconds == 120.0
        assert config.narrative.max_upload_clips == 2
        assert config.narrative.clip_extensions == [".mov", ".mp4", ".m4v"]

    def test_ai_defaults(self):
        config = AppConfig()
        assert config.ai.mode == AIMode.ENABLED
        assert config.ai.is_enabled() is True
        assert config.ai.upload_poll_attempts == 60
        assert config.ai.upload_poll_initial_delay == 1.0
        assert config.ai.upload_poll_max_delay == 2.0

    def test_paths_resolve_under_data_dir(self, tmp_path):
        paths = PathsConfig(data_dir=tmp_path / "octane")
        assert paths.season_file == (tmp_path / "octane" / "SeasonArc.json").resolve()
        assert paths.media_dir == (tmp_path / "octane" / "drives").resolve()
        assert paths.encrypted_key_file.name == ".api_key.enc"

    def test_ensure_dirs_exist(self, tmp_path):
        paths = PathsConfig(data_dir=tmp_path / "octane")
        paths.ensure_dirs_exist()
        assert paths.media_dir.is_dir()
        assert paths.log_dir.is_dir()

    def test_extensions_normalised(self):
        config = NarrativeConfig(clip_extensions=["MOV", ".Mp4"])
        assert config.clip_extensions == [".mov", ".mp4"]


class TestLoading:
    """Environment and YAML sources."""

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("OCTANELOG_NARRATIVE__RECAP_WINDOW", "10")
        monkeypatch.setenv("OCTANELOG_AI__MODE", "disabled")

        config = load_config()

        assert config.narrative.recap_window == 10
        assert config.ai.is_enabled() is False

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text(
            "ai:\n  mode: disabled\nnarrative:\n  max_upload_clips: 4\npaths:\n"
            f"  data_dir: {tmp_path / 'data'}\n",
            encoding="utf-8",
        )

        config = load_config(path)

        assert config.ai.mode == AIMode.DISABLED
        assert config.narrative.max_upload_clips == 4
        assert config.paths.season_file == (tmp_path / "data" / "SeasonArc.json").resolve()

    def test_cwd_file_is_found(self, tmp_path):
        Path("octanelog.yaml").write_text("narrative:\n  recap_window: 7\n", encoding="utf-8")
        assert load_config().narrative.recap_window == 7

    def test_malformed_yaml_uses_defaults(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("ai: [unclosed", encoding="utf-8")
        assert load_config(path).narrative.recap_window == 15

    def test_invalid_values_use_defaults(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("narrative:\n  recap_window: -5\n", encoding="utf-8")
        assert load_config(path).narrative.recap_window == 15

    def test_get_config_is_cached(self):
        assert get_config() is get_config()
        first = get_config()
        reset_config()
        assert get_config() is not first


class TestAPIKeyManager:
    """Key resolution and storage."""

    @pytest.fixture(autouse=True)
    def no_keyring(self):
        with patch("octanelog.config.keyring.get_password", return_value=None):
            yield

    def test_environment_key(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", VALID_KEY)

        manager = APIKeyManager()

        assert manager.get_key().get_secret_value() == VALID_KEY
        assert manager.get_key_source() == KeySource.ENVIRONMENT

    def test_invalid_environment_key_ignored(self, monkeypatch, tmp_path):
        monkeypatch.setenv("GEMINI_API_KEY", "short")
        assert APIKeyManager(PathsConfig(data_dir=tmp_path)).get_key() is None

    def test_keyring_key(self, tmp_path):
        with patch("octanelog.config.keyring.get_password", return_value=VALID_KEY):
            manager = APIKeyManager(PathsConfig(data_dir=tmp_path))
            assert manager.get_key().get_secret_value() == VALID_KEY
            assert manager.get_key_source() == KeySource.KEYRING

    def test_keyring_backend_errors_are_tolerated(self, tmp_path):
        with patch("octanelog.config.keyring.get_password", side_effect=RuntimeError("no backend")):
            assert APIKeyManager(PathsConfig(data_dir=tmp_path)).get_key() is None

    def test_encrypted_file_round_trip(self, tmp_path):
        paths = PathsConfig(data_dir=tmp_path)
        APIKeyManager(paths).store_key(VALID_KEY, KeySource.ENCRYPTED_FILE)

        assert paths.encrypted_key_file.exists()
        assert VALID_KEY.encode() not in paths.encrypted_key_file.read_bytes()

        manager = APIKeyManager(paths)
        assert manager.get_key().get_secret_value() == VALID_KEY
        assert manager.get_key_source() == KeySource.ENCRYPTED_FILE

    def test_store_keyring(self, tmp_path):
        with patch("octanelog.config.keyring.set_password") as set_password:
            APIKeyManager(PathsConfig(data_dir=tmp_path)).store_key(VALID_KEY, KeySource.KEYRING)
        set_password.assert_called_once_with("octanelog", "gemini", VALID_KEY)

    def test_store_rejects_bad_format(self, tmp_path):
        with pytest.raises(APIKeyInvalidError):
            APIKeyManager(PathsConfig(data_dir=tmp_path)).store_key("has spaces in it " * 3, KeySource.KEYRING)

    @pytest.mark.parametrize(
        "key,valid",
        [(VALID_KEY, True), ("x" * 19, False), ("x" * 101, False), ("abc def" * 5, False)],
    )
    def test_validate_key_format(self, key, valid):
        assert APIKeyManager().validate_key_format(key) is valid

    def test_get_api_key_raises_when_missing(self, tmp_path):
        config = AppConfig(paths=PathsConfig(data_dir=tmp_path))
        with pytest.raises(APIKeyNotFoundError):
            get_api_key(config)
