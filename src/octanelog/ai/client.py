"""Central Gemini API Client for OctaneLog.

This module is the SOLE INTERFACE to the Gemini API. All AI communication
flows through this client. No other file in the codebase should import
google-genai.

The client provides:
- Text generation
- Clip upload through the Gemini File API, bounded polling until the file
  is ACTIVE, and media-grounded generation
- Retry logic with exponential backoff for transient failures
- Typed exceptions for predictable error handling
- Security-first logging (never logs secrets, full prompts or responses)

Example:
    >>> from octanelog.ai.client import AIClient, AIUnavailableError
    >>>
    >>> try:
    ...     client = AIClient()
    ...     print(client.generate_text("Summarize this drive..."))
    ... except AIUnavailableError:
    ...     print("AI not available, using offline narrative")

Security Rules:
- NEVER log API keys (ever, in any form)
- NEVER log full prompts (they contain location-bearing telemetry)
- NEVER log full responses (they are personal narratives)
"""

from __future__ import annotations

import logging
import random
import re
import time
from pathlib import Path
from typing import Any, Callable, Literal, Sequence

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from pydantic import BaseModel, Field

from octanelog.config import (
    APIKeyNotFoundError,
    AppConfig,
    get_api_key,
    get_config,
)


# =============================================================================
# Secure Logging Filter
# =============================================================================


class RedactingFilter(logging.Filter):
    """Logging filter that redacts anything resembling an API key.

    Example:
        >>> logger.addFilter(RedactingFilter())
        >>> logger.info("Using api_key=AIzaSy123456789...")
        # Output: "Using api_key=[REDACTED]"
    """

    KEY_VALUE_PATTERNS = [
        re.compile(r'((?:api_key|key|token|secret)\s*[=:]\s*)["\']?([a-zA-Z0-9_\-]{20,})["\']?', re.IGNORECASE),
        re.compile(r"(bearer\s+)([a-zA-Z0-9_\-]{20,})", re.IGNORECASE),
    ]
    STANDALONE_PATTERNS = [
        # Gemini keys start with AIza
        re.compile(r"\bAIza[a-zA-Z0-9_\-]{30,}\b"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self._redact(record.msg)
        if record.args:
            record.args = tuple(
                self._redact(arg) if isinstance(arg, str) else arg for arg in record.args
            )
        return True

    def _redact(self, text: str) -> str:
        for pattern in self.KEY_VALUE_PATTERNS:
            text = pattern.sub(r"\1[REDACTED]", text)
        for pattern in self.STANDALONE_PATTERNS:
            text = pattern.sub("[REDACTED]", text)
        return text


logger = logging.getLogger(__name__)
logger.addFilter(RedactingFilter())


# =============================================================================
# Exception Hierarchy
# =============================================================================


class AIClientError(Exception):
    """Base exception for all AI client errors.

    Attributes:
        message: Human-readable error description (safe to log).
        retriable: Whether the operation can be retried.
        original_error: The underlying exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        retriable: bool = False,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.retriable = retriable
        self.original_error = original_error

    def __str__(self) -> str:
        return self.message


class AIUnavailableError(AIClientError):
    """AI service is not available (disabled, no key).

    Signals to higher layers that they should use their offline fallback.
    """

    def __init__(
        self,
        reason: Literal["disabled", "no_api_key", "offline"],
        message: str | None = None,
    ) -> None:
        self.reason = reason
        default_messages = {
            "disabled": "AI features are disabled in configuration",
            "no_api_key": "No Gemini API key configured",
            "offline": "Cannot reach Gemini API",
        }
        super().__init__(message or default_messages.get(reason, f"AI unavailable: {reason}"))


class AIAuthenticationError(AIClientError):
    """API key is invalid or expired. Never retriable."""

    def __init__(
        self,
        message: str = "API authentication failed. Please check your API key.",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=False, original_error=original_error)


class AIRateLimitError(AIClientError):
    """Rate limit or quota exceeded. Retriable after waiting."""

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please wait before retrying.",
        retry_after_seconds: float | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=True, original_error=original_error)
        self.retry_after_seconds = retry_after_seconds


class AIServerError(AIClientError):
    """Server-side error (5xx). Retriable."""

    def __init__(
        self,
        message: str = "AI server error. The service may be temporarily unavailable.",
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=True, original_error=original_error)
        self.status_code = status_code


class AIBadRequestError(AIClientError):
    """Malformed request. Not retriable."""

    def __init__(
        self,
        message: str = "Invalid request to AI service.",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=False, original_error=original_error)


class AITimeoutError(AIClientError):
    """A request or an upload poll timed out. Retriable."""

    def __init__(
        self,
        timeout_seconds: float | None = None,
        message: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        msg = message or f"Request timed out after {timeout_seconds} seconds"
        super().__init__(msg, retriable=True, original_error=original_error)
        self.timeout_seconds = timeout_seconds


class AIUploadError(AIClientError):
    """A clip could not be uploaded or failed server-side processing."""

    def __init__(
        self,
        message: str = "Clip upload failed.",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=False, original_error=original_error)


class ContentBlockedError(AIClientError):
    """Content was blocked by safety filters. Not retriable."""

    def __init__(
        self,
        message: str = "Content blocked by safety filters.",
        blocked_reason: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=False, original_error=original_error)
        self.blocked_reason = blocked_reason


# =============================================================================
# Response Models
# =============================================================================


class AIResponse(BaseModel):
    """Standardized response from AI generation.

    Attributes:
        text: The generated content.
        model: Name of the model that generated this response.
        prompt_tokens: Number of tokens in the input prompt.
        completion_tokens: Number of tokens in the generated output.
        total_tokens: Total tokens used.
        finish_reason: Why generation stopped (e.g., "STOP", "MAX_TOKENS").
        latency_ms: Time taken for generation in milliseconds.
    """

    text: str = Field(..., description="The generated content")
    model: str = Field(..., description="Model that generated this response")
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    finish_reason: str | None = None
    latency_ms: float | None = None


# =============================================================================
# Main AI Client Class
# =============================================================================


class AIClient:
    """Central client for all Gemini API communication.

    Implements the ``AIService`` protocol used by the narrative engine.
    The SDK client is created eagerly when AI is enabled and a key is
    available, but no API calls are made until a method is used.

    Class Constants:
        MAX_RETRY_DELAY: Maximum delay between retries.
    """

    MAX_RETRY_DELAY: float = 60.0

    def __init__(
        self,
        config: AppConfig | None = None,
        api_key: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the AI client.

        Args:
            config: Application configuration. If None, loads from get_config().
            api_key: Override API key. If None, loads from configured sources.
            sleep: Sleep function used between retries and polls.
        """
        self._config = config or get_config()
        self._client: Any = None
        self._api_key: str | None = None
        self._sleep = sleep
        self._logger = logging.getLogger(f"{__name__}.AIClient")
        self._logger.addFilter(RedactingFilter())

        if not self._config.ai.is_enabled():
            self._logger.info("AI is disabled in configuration")
            return

        try:
            self._api_key = api_key or get_api_key(self._config).get_secret_value()
        except APIKeyNotFoundError:
            self._logger.warning("No API key configured")
            return

        self._client = genai.Client(api_key=self._api_key)
        self._logger.info(f"AI client configured with model: {self._config.ai.narrative_model}")

    def _ensure_available(self) -> None:
        """Raise AIUnavailableError unless AI is enabled and configured."""
        if not self._config.ai.is_enabled():
            raise AIUnavailableError("disabled")
        if self._client is None:
            raise AIUnavailableError("no_api_key")

    # =========================================================================
    # Text Generation
    # =========================================================================

    def generate(self, prompt: str | list[Any], model: str | None = None) -> AIResponse:
        """Generate content from a prompt or a list of parts.

        Args:
            prompt: A string prompt, or a list of parts (text, file parts).
            model: Specific model name (overrides config).

        Returns:
            AIResponse with the generated text and metadata.

        Raises:
            AIClientError: On failure after retries.
        """
        self._ensure_available()
        model_name = model or self._config.ai.narrative_model

        gen_config = genai_types.GenerateContentConfig(
            temperature=self._config.ai.temperature,
            max_output_tokens=self._config.ai.max_output_tokens,
        )

        start_time = time.time()
        try:
            raw_response = self._execute_with_retry(
                self._client.models.generate_content,
                model=model_name,
                contents=prompt,
                config=gen_config,
            )
        except AIClientError as e:
            # No prompt content here - security!
            self._logger.error(f"Generation failed: {type(e).__name__}")
            raise

        latency_ms = (time.time() - start_time) * 1000
        response = self._to_response(raw_response, model_name, latency_ms)

        self._logger.info(
            f"Generation successful: {response.total_tokens or '?'} tokens in {latency_ms:.0f}ms"
        )
        return response

    def generate_text(self, prompt: str) -> str:
        """Generate text for a prompt (``AIService`` contract)."""
        return self.generate(prompt).text

    # =========================================================================
    # File API
    # =========================================================================

    def upload_clip(self, path: Path, mime_type: str) -> str:
        """Upload a clip through the File API.

        Returns:
            The remote file name (e.g. ``files/abc123``).

        Raises:
            AIUploadError: If the file is missing or the upload fails.
        """
        self._ensure_available()
        path = Path(path)
        if not path.is_file():
            raise AIUploadError(f"Clip not found: {path.name}")

        self._logger.info(f"Uploading clip {path.name} ({path.stat().st_size} bytes)")
        try:
            uploaded = self._execute_with_retry(
                self._client.files.upload,
                file=str(path),
                config=genai_types.UploadFileConfig(mime_type=mime_type, display_name=path.name),
            )
        except AIClientError as e:
            raise AIUploadError(f"Upload failed for {path.name}: {e.message}", original_error=e) from e

        return uploaded.name

    def wait_until_ready(self, asset_name: str) -> str:
        """Poll an uploaded file until it is ACTIVE.

        Polling is bounded by ``ai.upload_poll_attempts``; the delay starts
        at ``ai.upload_poll_initial_delay`` and doubles up to
        ``ai.upload_poll_max_delay``.

        Returns:
            The file URI to reference in generation requests.

        Raises:
            AIUploadError: If processing FAILED on the server.
            AITimeoutError: If the file never became ACTIVE.
        """
        self._ensure_available()
        ai_config = self._config.ai
        delay = ai_config.upload_poll_initial_delay
        waited = 0.0

        for attempt in range(ai_config.upload_poll_attempts):
            remote = self._execute_with_retry(self._client.files.get, name=asset_name)
            state = _state_name(remote.state)
            self._logger.debug(f"File {asset_name} state: {state} (poll {attempt + 1})")

            if state == "ACTIVE":
                return remote.uri
            if state == "FAILED":
                raise AIUploadError(f"Server-side processing failed for {asset_name}")

            self._sleep(delay)
            waited += delay
            delay = min(delay * 2, ai_config.upload_poll_max_delay)

        self._logger.warning(
            f"Timeout waiting for {asset_name} after {ai_config.upload_poll_attempts} polls"
        )
        raise AITimeoutError(
            timeout_seconds=waited,
            message=f"File {asset_name} did not become ACTIVE after "
            f"{ai_config.upload_poll_attempts} polls",
        )

    def generate_from_media(
        self, prompt: str, asset_uris: Sequence[str], mime_types: Sequence[str]
    ) -> str:
        """Generate text grounded in uploaded media files.

        Raises:
            AIBadRequestError: If ``mime_types`` does not match ``asset_uris``.
        """
        if len(asset_uris) != len(mime_types):
            raise AIBadRequestError(
                f"Got {len(asset_uris)} asset(s) but {len(mime_types)} MIME type(s)"
            )
        parts: list[Any] = [
            genai_types.Part.from_uri(file_uri=uri, mime_type=mime_type)
            for uri, mime_type in zip(asset_uris, mime_types)
        ]
        parts.append(prompt)
        return self.generate(parts, model=self._config.ai.video_model).text

    # =========================================================================
    # Internals
    # =========================================================================

    def _to_response(self, raw_response: Any, model_name: str, latency_ms: float) -> AIResponse:
        prompt_feedback = getattr(raw_response, "prompt_feedback", None)
        block_reason = getattr(prompt_feedback, "block_reason", None) if prompt_feedback else None
        text = raw_response.text
        if not text and block_reason:
            raise ContentBlockedError(blocked_reason=str(block_reason))

        usage = getattr(raw_response, "usage_metadata", None)
        finish_reason = None
        if raw_response.candidates:
            reason = getattr(raw_response.candidates[0], "finish_reason", None)
            finish_reason = _state_name(reason) if reason is not None else None

        return AIResponse(
            text=text or "",
            model=model_name,
            prompt_tokens=getattr(usage, "prompt_token_count", None) if usage else None,
            completion_tokens=getattr(usage, "candidates_token_count", None) if usage else None,
            total_tokens=getattr(usage, "total_token_count", None) if usage else None,
            finish_reason=finish_reason,
            latency_ms=latency_ms,
        )

    def _execute_with_retry(
        self,
        func: Callable[..., Any],
        *args: Any,
        max_retries: int | None = None,
        **kwargs: Any,
    ) -> Any:
        """Execute ``func`` with retry on transient failures.

        Uses exponential backoff with jitter.

        Raises:
            AIClientError: On a non-retriable failure or after all retries.
        """
        retries = max_retries if max_retries is not None else self._config.ai.max_retries
        base_delay = self._config.ai.retry_base_delay

        for attempt in range(retries + 1):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                mapped_error = self._map_exception(e)

                if not mapped_error.retriable or attempt >= retries:
                    if mapped_error.retriable:
                        self._logger.error(
                            f"Max retries ({retries}) exhausted: {type(mapped_error).__name__}"
                        )
                    raise mapped_error from e

                total_delay = min(base_delay * (2**attempt), self.MAX_RETRY_DELAY)
                total_delay += random.uniform(0, base_delay)
                if isinstance(mapped_error, AIRateLimitError) and mapped_error.retry_after_seconds:
                    total_delay = max(total_delay, mapped_error.retry_after_seconds)

                self._logger.warning(
                    f"Retry {attempt + 1}/{retries} after {total_delay:.1f}s: "
                    f"{type(mapped_error).__name__}"
                )
                self._sleep(total_delay)

        raise AIClientError("Unknown error during retry")

    def _map_exception(self, error: Exception) -> AIClientError:
        """Map SDK exceptions to our exception hierarchy."""
        if isinstance(error, AIClientError):
            return error

        error_str = str(error).lower()

        if isinstance(error, genai_errors.APIError):
            code = getattr(error, "code", None)
            if code in (401, 403):
                return AIAuthenticationError(original_error=error)
            if code == 429:
                return AIRateLimitError(original_error=error)
            if code == 408 or code == 504:
                return AITimeoutError(self._config.ai.timeout_seconds, original_error=error)
            if code is not None and code >= 500:
                return AIServerError(status_code=code, original_error=error)
            if code == 400:
                return AIBadRequestError(str(error), original_error=error)

        if "blocked" in error_str or "safety" in error_str:
            return ContentBlockedError(original_error=error)
        if "401" in error_str or "403" in error_str or "unauthorized" in error_str:
            return AIAuthenticationError(original_error=error)
        if "429" in error_str or "rate limit" in error_str or "quota" in error_str:
            return AIRateLimitError(original_error=error)
        if "timeout" in error_str or "deadline" in error_str:
            return AITimeoutError(self._config.ai.timeout_seconds, original_error=error)
        if "500" in error_str or "502" in error_str or "503" in error_str:
            return AIServerError(original_error=error)
        if isinstance(error, (ConnectionError, OSError)):
            return AIServerError(f"Network error: {type(error).__name__}", original_error=error)

        return AIClientError(str(error), retriable=False, original_error=error)


def _state_name(value: Any) -> str:
    """Normalise an SDK enum (or plain string) to its name."""
    name = getattr(value, "name", None)
    return str(name if name is not None else value).upper()
