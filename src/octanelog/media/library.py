"""Local media library: one sub-folder of clips per recorded drive.

Layout::

    <media_dir>/
        2026-01-08_0912/
            clip_001.mov
            clip_002.mov
        2026-01-09_1740/
            ...

A folder's id is its directory name. Its creation timestamp is the folder's
modification time, which the recorder sets when the drive's last clip is
written.
"""

from __future__ import annotations

import logging
import mimetypes
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from octanelog.core.models import MediaFolder

logger = logging.getLogger(__name__)

DEFAULT_CLIP_EXTENSIONS = (".mov", ".mp4", ".m4v")

DEFAULT_CLIP_MIME_TYPE = "video/quicktime"

# Checked before the platform mime table
CLIP_MIME_TYPES = {
    ".mov": "video/quicktime",
    ".mp4": "video/mp4",
    ".m4v": "video/mp4",
}


def clip_mime_type(path: Path, default: str = DEFAULT_CLIP_MIME_TYPE) -> str:
    """MIME type to declare when uploading ``path``."""
    suffix = Path(path).suffix.lower()
    if suffix in CLIP_MIME_TYPES:
        return CLIP_MIME_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(Path(path).name)
    if guessed and guessed.startswith("video/"):
        return guessed
    return default


class MediaLibrary:
    """Enumerates drive folders and the clips inside them."""

    def __init__(self, root: Path, clip_extensions: Iterable[str] = DEFAULT_CLIP_EXTENSIONS) -> None:
        self.root = Path(root).expanduser()
        self.clip_extensions = frozenset(ext.lower() for ext in clip_extensions)
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def list_folders(self) -> list[MediaFolder]:
        """All drive folders, in name order. Hidden entries are skipped."""
        if not self.root.is_dir():
            self._logger.debug(f"Media root {self.root} does not exist")
            return []

        folders = [
            self._to_folder(entry)
            for entry in sorted(self.root.iterdir(), key=lambda p: p.name)
            if entry.is_dir() and not entry.name.startswith(".")
        ]
        self._logger.debug(f"Found {len(folders)} drive folder(s)")
        return folders

    def resolve(self, folder_id: str) -> MediaFolder | None:
        """Look up a folder by id. Returns None if it does not exist.

        Ids are folder names under the root. Folders picked manually from
        elsewhere are stored by absolute path and resolve as-is.
        """
        candidate = Path(folder_id)
        if not candidate.is_absolute():
            candidate = self.root / folder_id
            if candidate.parent != self.root:
                return None
        if not candidate.is_dir():
            return None
        return self._to_folder(candidate, folder_id=folder_id)

    def list_clips(self, folder: MediaFolder | Path) -> list[Path]:
        """Clips in a folder, in name order, filtered by extension."""
        path = folder.path if isinstance(folder, MediaFolder) else Path(folder)
        if not path.is_dir():
            return []
        return [
            entry
            for entry in sorted(path.iterdir(), key=lambda p: p.name)
            if entry.is_file()
            and not entry.name.startswith(".")
            and entry.suffix.lower() in self.clip_extensions
        ]

    @staticmethod
    def _to_folder(path: Path, folder_id: str | None = None) -> MediaFolder:
        created_at = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        return MediaFolder(id=folder_id or path.name, path=path, created_at=created_at)
