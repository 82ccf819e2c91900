"""AI module for OctaneLog.

client.py is the SOLE interface to the Gemini API. The narrative engine
depends only on the AIService protocol.

Exports:
    - AIService: Protocol consumed by the narrative engine
    - AIClient: Gemini-backed implementation
    - Exception hierarchy for typed error handling
"""

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
)
from octanelog.ai.service import AIService

__all__ = [
    "AIService",
    "AIClient",
    "AIResponse",
    "AIClientError",
    "AIUnavailableError",
    "AIAuthenticationError",
    "AIRateLimitError",
    "AIServerError",
    "AIBadRequestError",
    "AITimeoutError",
    "AIUploadError",
    "ContentBlockedError",
]
