"""Central Configuration System for OctaneLog.

This module is the single source of truth for application configuration.
Every other module that needs settings imports from here.

The configuration system supports:
- Multi-source configuration (environment variables > config file > defaults)
- Secure API key management (env > keyring > encrypted file)
- Tunables for the narrative engine (recap window, smart-match tolerance,
  upload thresholds)

Example:
    >>> from octanelog.config import get_config, get_api_key
    >>>
    >>> cfg = get_config()
    >>> print(cfg.paths.season_file)
    >>> print(cfg.narrative.recap_window)

Config File Format (YAML):
    ```yaml
    ai:
      mode: enabled  # enabled | disabled
      narrative_model: gemini-2.0-flash
      video_model: gemini-2.0-flash
      temperature: 0.8
      max_output_tokens: 2048
      max_retries: 3
      upload_poll_attempts: 60

    narrative:
      recap_window: 15
      smart_match_tolerance_seconds: 120
      max_upload_clips: 2

    paths:
      data_dir: ~/.octanelog
      media_dir: ~/.octanelog/drives

    debug: false
    verbose: false
    ```
"""

from __future__ import annotations

import base64
import functools
import logging
import os
import platform
import stat
from enum import Enum
from pathlib import Path
from typing import Any

import keyring
import keyring.errors
import yaml
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings

# Configure module logger - never log secrets
logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class APIKeyNotFoundError(ConfigError):
    """Raised when no API key can be found in any configured source.

    Environment, keyring and encrypted file have all been checked.
    """

    pass


class APIKeyInvalidError(ConfigError):
    """Raised when an API key fails basic format validation.

    This does NOT indicate the key was rejected by the API.
    """

    pass


# =============================================================================
# Enums
# =============================================================================


class AIMode(str, Enum):
    """AI feature activation modes.

    Attributes:
        ENABLED: Call Gemini for narratives, recaps and persona reports.
        DISABLED: Never call Gemini. Every generation path degrades to its
                  documented offline fallback.
    """

    ENABLED = "enabled"
    DISABLED = "disabled"


class KeySource(str, Enum):
    """Sources from which the Gemini API key can be retrieved.

    Priority order when reading: ENVIRONMENT → KEYRING → ENCRYPTED_FILE.
    """

    ENVIRONMENT = "environment"
    KEYRING = "keyring"
    ENCRYPTED_FILE = "encrypted_file"
    NONE = "none"


# =============================================================================
# Configuration Models
# =============================================================================


class AIConfig(BaseModel):
    """Configuration for the Gemini collaborator.

    Attributes:
        mode: Whether AI calls are made at all.
        narrative_model: Model used for text-only generation.
        video_model: Model used for media-grounded generation.
        temperature: Sampling temperature.
        max_output_tokens: Maximum tokens in a model response.
        timeout_seconds: Per-request timeout reported on timeouts.
        max_retries: Retry attempts on transient failures.
        retry_base_delay: Base delay for exponential backoff between retries.
        upload_poll_attempts: How many times to poll an uploaded clip before
            giving up with a timeout.
        upload_poll_initial_delay: First delay between polls (seconds).
        upload_poll_max_delay: Cap for the poll backoff (seconds).
        video_mime_type: MIME type sent with uploaded clips.
    """

    mode: AIMode = Field(default=AIMode.ENABLED, description="AI activation mode.")
    narrative_model: str = Field(
        default="gemini-2.0-flash", description="Model used for text narratives."
    )
    video_model: str = Field(
        default="gemini-2.0-flash", description="Model used for media-grounded narratives."
    )
    temperature: float = Field(default=0.8, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=2048, ge=100, le=32000)
    timeout_seconds: int = Field(default=300, ge=10, le=900)
    max_retries: int = Field(default=3, ge=0, le=10)
    retry_base_delay: float = Field(default=1.0, ge=0.0, le=10.0)
    upload_poll_attempts: int = Field(default=60, ge=1, le=600)
    upload_poll_initial_delay: float = Field(default=1.0, ge=0.0, le=30.0)
    upload_poll_max_delay: float = Field(default=2.0, ge=0.0, le=60.0)
    video_mime_type: str = Field(default="video/quicktime")

    def is_enabled(self) -> bool:
        """Check if AI features are enabled."""
        return self.mode != AIMode.DISABLED


class NarrativeConfig(BaseModel):
    """Tunables for the narrative engine.

    Attributes:
        recap_window: How many of the most recent episodes feed a recap.
        smart_match_tolerance_seconds: Symmetric window used when matching an
            episode to a media folder by creation time.
        max_upload_clips: Clip counts at or below this are uploaded even
            without vision hints.
        clip_extensions: File extensions recognised as drive clips.
    """

    recap_window: int = Field(default=15, ge=1, le=200)
    smart_match_tolerance_seconds: float = Field(default=120.0, ge=0.0)
    max_upload_clips: int = Field(default=2, ge=0, le=50)
    clip_extensions: list[str] = Field(default_factory=lambda: [".mov", ".mp4", ".m4v"])

    @field_validator("clip_extensions", mode="before")
    @classmethod
    def normalize_extensions(cls, v: Any) -> Any:
        """Lower-case extensions and make sure they carry a leading dot."""
        if isinstance(v, list):
            return [e.lower() if e.startswith(".") else f".{e.lower()}" for e in v]
        return v


class PathsConfig(BaseModel):
    """Filesystem locations.

    Attributes:
        data_dir: Base directory. Default ~/.octanelog
        season_file: The season document. Default data_dir/SeasonArc.json
        media_dir: Directory holding one sub-folder per recorded drive.
            Default data_dir/drives
        log_dir: Log directory. Default data_dir/logs
        encrypted_key_file: Encrypted API key file. Default data_dir/.api_key.enc
    """

    data_dir: Path = Field(default_factory=lambda: Path.home() / ".octanelog")
    season_file: Path | None = None
    media_dir: Path | None = None
    log_dir: Path | None = None
    encrypted_key_file: Path | None = None

    @field_validator("data_dir", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Any:
        """Expand ~ and resolve path."""
        if isinstance(v, (str, Path)):
            return Path(v).expanduser().resolve()
        return v

    @model_validator(mode="after")
    def resolve_defaults(self) -> "PathsConfig":
        """Resolve None defaults relative to data_dir."""
        defaults = {
            "season_file": self.data_dir / "SeasonArc.json",
            "media_dir": self.data_dir / "drives",
            "log_dir": self.data_dir / "logs",
            "encrypted_key_file": self.data_dir / ".api_key.enc",
        }
        for name, default in defaults.items():
            current = getattr(self, name)
            resolved = default if current is None else Path(current).expanduser().resolve()
            object.__setattr__(self, name, resolved)
        return self

    def ensure_dirs_exist(self) -> None:
        """Create the data, media and log directories if missing."""
        for directory in (self.data_dir, self.media_dir, self.log_dir):
            if directory is not None:
                directory.mkdir(parents=True, exist_ok=True)


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Supports environment variables with the OCTANELOG_ prefix, e.g.
    ``OCTANELOG_AI__MODE=disabled`` or ``OCTANELOG_NARRATIVE__RECAP_WINDOW=10``.
    """

    ai: AIConfig = Field(default_factory=AIConfig)
    narrative: NarrativeConfig = Field(default_factory=NarrativeConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    debug: bool = Field(default=False, description="Enable debug mode.")
    verbose: bool = Field(default=False, description="Enable verbose output.")

    model_config = {
        "env_prefix": "OCTANELOG_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "extra": "ignore",
    }


# =============================================================================
# API Key Management
# =============================================================================


class APIKeyManager:
    """Resolves the Gemini API key from multiple sources.

    Sources in priority order:
    1. Environment variable (GEMINI_API_KEY)
    2. System keyring
    3. Encrypted file at ``paths.encrypted_key_file``

    Keys are wrapped in SecretStr and never logged.
    """

    KEYRING_SERVICE = "octanelog"
    KEYRING_USERNAME = "gemini"
    ENV_VAR_NAME = "GEMINI_API_KEY"
    _SALT = b"octanelog-api-key-salt-v1"

    def __init__(self, paths_config: PathsConfig | None = None) -> None:
        self._paths_config = paths_config or PathsConfig()
        self._cached_key: SecretStr | None = None
        self._key_source: KeySource = KeySource.NONE

    def get_key(self) -> SecretStr | None:
        """Retrieve the API key, trying each source in priority order."""
        if self._cached_key is not None:
            return self._cached_key

        readers = (
            (KeySource.ENVIRONMENT, self._read_from_environment),
            (KeySource.KEYRING, self._read_from_keyring),
            (KeySource.ENCRYPTED_FILE, self._read_from_encrypted_file),
        )
        for source, reader in readers:
            key = reader()
            if key and self.validate_key_format(key):
                self._cached_key = SecretStr(key)
                self._key_source = source
                logger.debug(f"API key loaded from {source.value}")
                return self._cached_key

        self._key_source = KeySource.NONE
        logger.debug("No API key found in any source")
        return None

    def get_key_source(self) -> KeySource:
        """Where the key was found on the last successful lookup."""
        return self._key_source

    def store_key(self, key: str, destination: KeySource) -> None:
        """Store the API key in the keyring or the encrypted file.

        Raises:
            APIKeyInvalidError: If the key fails format validation.
            ConfigError: If the destination cannot be written.
        """
        if not self.validate_key_format(key):
            raise APIKeyInvalidError(
                "API key format validation failed. "
                "Key must be 20-100 characters with no whitespace."
            )

        if destination == KeySource.KEYRING:
            try:
                keyring.set_password(self.KEYRING_SERVICE, self.KEYRING_USERNAME, key)
            except keyring.errors.KeyringError as e:
                raise ConfigError(f"Failed to store key in keyring: {type(e).__name__}") from e
        elif destination == KeySource.ENCRYPTED_FILE:
            try:
                self._encrypt_to_file(key, self._paths_config.encrypted_key_file)
            except OSError as e:
                raise ConfigError(f"Failed to write encrypted key file: {type(e).__name__}") from e
        else:
            raise ConfigError(f"Cannot store API key in {destination.value}")

        self._cached_key = None
        self._key_source = KeySource.NONE
        logger.info(f"API key stored in {destination.value}")

    def validate_key_format(self, key: str) -> bool:
        """Check length (20-100) and absence of whitespace."""
        key = (key or "").strip()
        if not 20 <= len(key) <= 100:
            return False
        return not any(c.isspace() for c in key)

    def _read_from_environment(self) -> str | None:
        key = os.environ.get(self.ENV_VAR_NAME)
        return key.strip() if key else None

    def _read_from_keyring(self) -> str | None:
        try:
            return keyring.get_password(self.KEYRING_SERVICE, self.KEYRING_USERNAME)
        except Exception as e:
            # Headless machines frequently have no usable backend
            logger.debug(f"Keyring access failed: {type(e).__name__}")
            return None

    def _read_from_encrypted_file(self) -> str | None:
        path = self._paths_config.encrypted_key_file
        if path is None or not path.exists():
            return None
        try:
            fernet = Fernet(self._derive_encryption_key())
            return fernet.decrypt(path.read_bytes()).decode("utf-8")
        except InvalidToken:
            logger.warning("Failed to decrypt API key file - it was created on another machine")
            return None
        except OSError as e:
            logger.warning(f"Failed to read encrypted key file: {type(e).__name__}")
            return None

    def _encrypt_to_file(self, key: str, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fernet = Fernet(self._derive_encryption_key())
        path.write_bytes(fernet.encrypt(key.encode("utf-8")))
        if platform.system() != "Windows":
            os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)

    def _derive_encryption_key(self) -> bytes:
        """Derive a machine-bound Fernet key."""
        machine_data = [platform.node(), platform.machine(), platform.system()]
        machine_id = Path("/etc/machine-id")
        if machine_id.exists():
            machine_data.append(machine_id.read_text().strip())

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=self._SALT,
            iterations=100000,
        )
        return base64.urlsafe_b64encode(kdf.derive("|".join(machine_data).encode("utf-8")))


# =============================================================================
# Module-Level Functions
# =============================================================================


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from file, environment, and defaults.

    If no config file is found, defaults are used. A malformed file is
    logged and ignored rather than aborting startup.

    Args:
        path: Optional path to a YAML config file. If None, searches
            ./octanelog.yaml and ~/.octanelog/config.yaml.

    Returns:
        Fully-populated AppConfig instance.
    """
    search_paths = [
        path,
        Path("./octanelog.yaml"),
        Path.home() / ".octanelog" / "config.yaml",
    ]
    config_file = next((p for p in search_paths if p is not None and p.exists()), None)

    config_data: dict[str, Any] = {}
    if config_file is not None:
        try:
            loaded = yaml.safe_load(config_file.read_text(encoding="utf-8"))
            if isinstance(loaded, dict):
                config_data = loaded
            elif loaded is not None:
                logger.warning(f"Config file {config_file} has unexpected format. Using defaults.")
        except yaml.YAMLError as e:
            logger.warning(f"Failed to parse config file {config_file}: {e}. Using defaults.")
        except OSError as e:
            logger.warning(f"Failed to read config file {config_file}: {type(e).__name__}")

    try:
        return AppConfig(**config_data)
    except ValueError as e:
        logger.warning(f"Error parsing config values: {e}. Using defaults.")
        return AppConfig()


@functools.lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Get the cached configuration singleton."""
    return load_config()


def get_api_key(config: AppConfig | None = None) -> SecretStr:
    """Get the Gemini API key.

    Raises:
        APIKeyNotFoundError: If no API key is configured in any source.
    """
    config = config or get_config()
    key = APIKeyManager(paths_config=config.paths).get_key()
    if key is None:
        raise APIKeyNotFoundError(
            "No API key found. Set GEMINI_API_KEY, store one in the system keyring, "
            "or run 'octanelog set-key'."
        )
    return key


def reset_config() -> None:
    """Clear the configuration cache (used by tests)."""
    get_config.cache_clear()
