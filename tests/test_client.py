"""Tests for octanelog.ai.client - the Gemini AI client.

Tests cover:
- AIClient initialization and configuration
- Exception hierarchy and error mapping
- Retry logic with exponential backoff
- File upload and bounded readiness polling
- Response parsing

All tests mock the google-genai SDK - no real API calls.
"""

from __future__ import annotations

import logging
from unittest.mock import MagicMock, patch

import pytest
from google.genai import errors as genai_errors

from octanelog.ai.client import (
    AIAuthenticationError,
    AIBadRequestError,
    AIClient,
    AIClientError,
    AIRateLimitError,
    AIResponse,
    AIServerError,
    AITimeoutError,
    AIUnavailableError,
    AIUploadError,
    ContentBlockedError,
    RedactingFilter,
)
from octanelog.ai.service import AIService

TEST_KEY = "AIzaSyTESTKEY0123456789abcdefghijklmno"

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def mock_config():
    """Create a mock AppConfig."""
    config = MagicMock()
    config.ai.is_enabled.return_value = True
    config.ai.narrative_model = "gemini-2.0-flash"
    config.ai.video_model = "gemini-2.0-flash-video"
    config.ai.temperature = 0.8
    config.ai.max_output_tokens = 2048
    config.ai.timeout_seconds = 120
    config.ai.max_retries = 3
    config.ai.retry_base_delay = 0.01
    config.ai.upload_poll_attempts = 5
    config.ai.upload_poll_initial_delay = 1.0
    config.ai.upload_poll_max_delay = 2.0
    return config


@pytest.fixture
def mock_disabled_config():
    """Create a mock AppConfig with AI disabled."""
    config = MagicMock()
    config.ai.is_enabled.return_value = False
    return config


@pytest.fixture
def mock_genai_response():
    """Create a mock Gemini API response."""
    response = MagicMock()
    response.text = "Generated response text"
    response.candidates = [MagicMock()]
    response.candidates[0].finish_reason.name = "STOP"
    response.usage_metadata.prompt_token_count = 100
    response.usage_metadata.candidates_token_count = 50
    response.usage_metadata.total_token_count = 150
    response.prompt_feedback.block_reason = None
    return response


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_client(mock_config, sleeps):
    """Build an AIClient over a mocked SDK client."""

    def _make(sdk_client=None):
        with patch("octanelog.ai.client.genai") as mock_genai:
            mock_genai.Client.return_value = sdk_client or MagicMock()
            return AIClient(config=mock_config, api_key=TEST_KEY, sleep=sleeps.append)

    return _make


def api_error(code: int, message: str = "error") -> genai_errors.APIError:
    body = {"error": {"code": code, "message": message, "status": "ERROR"}}
    if 400 <= code < 500:
        return genai_errors.ClientError(code, body)
    return genai_errors.ServerError(code, body)


def remote_file(state: str, uri: str | None = None) -> MagicMock:
    remote = MagicMock()
    remote.state.name = state
    remote.uri = uri
    return remote


# =============================================================================
# Exception Tests
# =============================================================================


class TestExceptions:
    """Test exception hierarchy."""

    def test_ai_client_error_base(self):
        error = AIClientError("Test error", retriable=True)
        assert str(error) == "Test error"
        assert error.retriable is True
        assert error.original_error is None

    def test_unavailable_reasons(self):
        for reason in ["disabled", "no_api_key", "offline"]:
            error = AIUnavailableError(reason)
            assert error.reason == reason
            assert error.retriable is False

    def test_retriable_flags(self):
        assert AIRateLimitError().retriable is True
        assert AIServerError().retriable is True
        assert AITimeoutError(30).retriable is True
        assert AIAuthenticationError().retriable is False
        assert AIUploadError().retriable is False
        assert ContentBlockedError().retriable is False
        assert AIBadRequestError().retriable is False

    def test_exception_inheritance(self):
        for cls in (
            AIUnavailableError,
            AIAuthenticationError,
            AIRateLimitError,
            AIServerError,
            AITimeoutError,
            AIUploadError,
            ContentBlockedError,
            AIBadRequestError,
        ):
            assert issubclass(cls, AIClientError)


# =============================================================================
# Client Tests
# =============================================================================


class TestAIClient:
    """Initialization and text generation."""

    @patch("octanelog.ai.client.genai")
    @patch("octanelog.ai.client.get_api_key")
    def test_client_initialization(self, mock_get_api_key, mock_genai, mock_config):
        """Key is resolved from config when not passed explicitly."""
        mock_get_api_key.return_value = MagicMock(get_secret_value=lambda: TEST_KEY)

        AIClient(config=mock_config)

        mock_genai.Client.assert_called_once_with(api_key=TEST_KEY)

    @patch("octanelog.ai.client.genai")
    def test_disabled_mode(self, mock_genai, mock_disabled_config):
        client = AIClient(config=mock_disabled_config)

        mock_genai.Client.assert_not_called()
        with pytest.raises(AIUnavailableError) as exc_info:
            client.generate_text("hello")
        assert exc_info.value.reason == "disabled"

    @patch("octanelog.ai.client.genai")
    @patch("octanelog.ai.client.get_api_key")
    def test_missing_key(self, mock_get_api_key, mock_genai, mock_config):
        from octanelog.config import APIKeyNotFoundError

        mock_get_api_key.side_effect = APIKeyNotFoundError("none")

        client = AIClient(config=mock_config)

        mock_genai.Client.assert_not_called()
        with pytest.raises(AIUnavailableError) as exc_info:
            client.upload_clip("clip.mov", "video/quicktime")
        assert exc_info.value.reason == "no_api_key"

    def test_implements_service_protocol(self, make_client):
        assert isinstance(make_client(), AIService)

    def test_generate_success(self, make_client, mock_genai_response):
        sdk = MagicMock()
        sdk.models.generate_content.return_value = mock_genai_response
        client = make_client(sdk)

        response = client.generate("Test prompt")

        assert isinstance(response, AIResponse)
        assert response.text == "Generated response text"
        assert response.total_tokens == 150
        assert response.finish_reason == "STOP"
        kwargs = sdk.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.0-flash"
        assert kwargs["contents"] == "Test prompt"
        assert kwargs["config"].temperature == 0.8

    def test_generate_text_returns_string(self, make_client, mock_genai_response):
        sdk = MagicMock()
        sdk.models.generate_content.return_value = mock_genai_response
        assert make_client(sdk).generate_text("Test prompt") == "Generated response text"

    def test_blocked_prompt(self, make_client, mock_genai_response):
        mock_genai_response.text = None
        mock_genai_response.prompt_feedback.block_reason = "SAFETY"
        sdk = MagicMock()
        sdk.models.generate_content.return_value = mock_genai_response

        with pytest.raises(ContentBlockedError):
            make_client(sdk).generate("Test prompt")


class TestRetry:
    """Retry with exponential backoff."""

    def test_retries_server_errors_then_succeeds(self, make_client, mock_genai_response, sleeps):
        sdk = MagicMock()
        sdk.models.generate_content.side_effect = [api_error(503), api_error(500), mock_genai_response]

        response = make_client(sdk).generate("Test prompt")

        assert response.text == "Generated response text"
        assert sdk.models.generate_content.call_count == 3
        assert len(sleeps) == 2

    def test_auth_error_not_retried(self, make_client):
        sdk = MagicMock()
        sdk.models.generate_content.side_effect = api_error(401)

        with pytest.raises(AIAuthenticationError):
            make_client(sdk).generate("Test prompt")

        assert sdk.models.generate_content.call_count == 1

    def test_gives_up_after_max_retries(self, make_client, sleeps):
        sdk = MagicMock()
        sdk.models.generate_content.side_effect = api_error(429)

        with pytest.raises(AIRateLimitError):
            make_client(sdk).generate("Test prompt")

        assert sdk.models.generate_content.call_count == 4
        assert len(sleeps) == 3


class TestExceptionMapping:
    """Mapping SDK and transport errors onto the hierarchy."""

    @pytest.mark.parametrize(
        "code,expected",
        [
            (400, AIBadRequestError),
            (401, AIAuthenticationError),
            (403, AIAuthenticationError),
            (429, AIRateLimitError),
            (504, AITimeoutError),
            (500, AIServerError),
            (503, AIServerError),
        ],
    )
    def test_api_error_codes(self, make_client, code, expected):
        assert isinstance(make_client()._map_exception(api_error(code)), expected)

    def test_message_patterns(self, make_client):
        client = make_client()
        assert isinstance(client._map_exception(RuntimeError("deadline exceeded")), AITimeoutError)
        assert isinstance(client._map_exception(RuntimeError("response blocked for safety")), ContentBlockedError)
        assert isinstance(client._map_exception(ConnectionError("reset")), AIServerError)

    def test_unknown_is_not_retriable(self, make_client):
        mapped = make_client()._map_exception(ValueError("strange"))
        assert type(mapped) is AIClientError
        assert mapped.retriable is False

    def test_already_mapped_passes_through(self, make_client):
        error = AIUploadError()
        assert make_client()._map_exception(error) is error


class TestFileAPI:
    """Clip upload, readiness polling and media generation."""

    def test_upload_clip(self, make_client, tmp_path):
        clip = tmp_path / "clip_001.mov"
        clip.write_bytes(b"\x00" * 16)
        sdk = MagicMock()
        sdk.files.upload.return_value.name = "files/abc123"

        name = make_client(sdk).upload_clip(clip, "video/quicktime")

        assert name == "files/abc123"
        kwargs = sdk.files.upload.call_args.kwargs
        assert kwargs["file"] == str(clip)
        assert kwargs["config"].mime_type == "video/quicktime"

    def test_upload_missing_file(self, make_client, tmp_path):
        sdk = MagicMock()
        with pytest.raises(AIUploadError):
            make_client(sdk).upload_clip(tmp_path / "nope.mov", "video/quicktime")
        sdk.files.upload.assert_not_called()

    def test_upload_failure_wrapped(self, make_client, tmp_path):
        clip = tmp_path / "clip.mov"
        clip.write_bytes(b"\x00")
        sdk = MagicMock()
        sdk.files.upload.side_effect = api_error(400, "bad file")

        with pytest.raises(AIUploadError):
            make_client(sdk).upload_clip(clip, "video/quicktime")

    def test_wait_until_ready_backs_off(self, make_client, sleeps):
        sdk = MagicMock()
        sdk.files.get.side_effect = [
            remote_file("PROCESSING"),
            remote_file("PROCESSING"),
            remote_file("PROCESSING"),
            remote_file("ACTIVE", "https://files/abc123"),
        ]

        uri = make_client(sdk).wait_until_ready("files/abc123")

        assert uri == "https://files/abc123"
        assert sleeps == [1.0, 2.0, 2.0]
        sdk.files.get.assert_called_with(name="files/abc123")

    def test_wait_until_ready_failed_state(self, make_client):
        sdk = MagicMock()
        sdk.files.get.return_value = remote_file("FAILED")

        with pytest.raises(AIUploadError):
            make_client(sdk).wait_until_ready("files/abc123")

    def test_wait_until_ready_is_bounded(self, make_client, sleeps):
        sdk = MagicMock()
        sdk.files.get.return_value = remote_file("PROCESSING")

        with pytest.raises(AITimeoutError):
            make_client(sdk).wait_until_ready("files/abc123")

        assert sdk.files.get.call_count == 5
        assert len(sleeps) == 5

    def test_generate_from_media(self, make_client, mock_genai_response):
        sdk = MagicMock()
        sdk.models.generate_content.return_value = mock_genai_response

        text = make_client(sdk).generate_from_media(
            "Narrate", ["https://files/a", "https://files/b"], ["video/quicktime", "video/mp4"]
        )

        assert text == "Generated response text"
        kwargs = sdk.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.0-flash-video"
        contents = kwargs["contents"]
        assert len(contents) == 3
        assert contents[0].file_data.file_uri == "https://files/a"
        assert contents[0].file_data.mime_type == "video/quicktime"
        assert contents[1].file_data.mime_type == "video/mp4"
        assert contents[-1] == "Narrate"

    def test_generate_from_media_rejects_mismatched_types(self, make_client):
        sdk = MagicMock()

        with pytest.raises(AIBadRequestError):
            make_client(sdk).generate_from_media("Narrate", ["https://files/a"], [])

        sdk.models.generate_content.assert_not_called()


class TestRedactingFilter:
    """API keys never reach the logs."""

    def test_redacts_key_value(self):
        record = logging.LogRecord("x", logging.INFO, "f", 1, f"api_key={TEST_KEY}", None, None)
        RedactingFilter().filter(record)
        assert TEST_KEY not in record.msg
        assert "[REDACTED]" in record.msg

    def test_redacts_standalone_key_in_args(self):
        record = logging.LogRecord("x", logging.INFO, "f", 1, "using %s", (TEST_KEY,), None)
        RedactingFilter().filter(record)
        assert record.args == ("[REDACTED]",)
