"""Local media folders recorded during drives."""

from octanelog.media.library import MediaLibrary, clip_mime_type

__all__ = ["MediaLibrary", "clip_mime_type"]
