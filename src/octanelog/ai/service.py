"""The AI collaborator contract consumed by the narrative engine.

The engine only ever talks to this protocol. ``AIClient`` implements it on
top of Gemini. Tests substitute a mock.

Every method may raise. Callers treat all failures alike and fall back,
they never branch on the error subtype.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, Sequence, runtime_checkable


@runtime_checkable
class AIService(Protocol):
    """Text and media generation capabilities."""

    def generate_text(self, prompt: str) -> str:
        """Generate text for a prompt."""
        ...

    def upload_clip(self, path: Path, mime_type: str) -> str:
        """Upload a media file and return the remote asset name."""
        ...

    def wait_until_ready(self, asset_name: str) -> str:
        """Block until the asset is usable and return its URI.

        Bounded: raises on timeout or when the remote side reports failure.
        """
        ...

    def generate_from_media(
        self, prompt: str, asset_uris: Sequence[str], mime_types: Sequence[str]
    ) -> str:
        """Generate text grounded in previously uploaded media.

        ``mime_types`` is parallel to ``asset_uris``: one type per asset.
        """
        ...
