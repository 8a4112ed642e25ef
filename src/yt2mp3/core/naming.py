"""Download file naming.

Pure and deterministic: the same metadata and URL always give the
same name, independently of when the pipeline calls in.  Sanitization
itself is delegated to yt-dlp's ``sanitize_filename``.
"""

from __future__ import annotations

from urllib.parse import quote

from yt_dlp.utils import sanitize_filename

from yt2mp3.core.models import DEFAULT_TITLE, VideoMetadata
from yt2mp3.core.urls import extract_video_id

MAX_BASENAME_LENGTH = 180
"""Leaves room for `` [<id>].mp3`` under the common 255-byte limit."""

FALLBACK_FILENAME = f"{DEFAULT_TITLE}.mp3"


def build_filename(metadata: VideoMetadata, url: str = "") -> str:
    """Return ``"<title> - <artist> [<id>].mp3"`` made safe for filesystems.

    The ID falls back to the one parsed from *url*; it is omitted when
    neither source has one.
    """
    title = metadata.title.strip() or DEFAULT_TITLE
    base = sanitize_filename(f"{title} - {metadata.artist}".strip())
    base = base[:MAX_BASENAME_LENGTH].strip() or DEFAULT_TITLE

    video_id = metadata.id or extract_video_id(url) or ""
    suffix = f" [{video_id}].mp3" if video_id else ".mp3"
    return sanitize_filename(f"{base}{suffix}") or FALLBACK_FILENAME


def content_disposition(filename: str) -> str:
    """Build an ``attachment`` Content-Disposition header value.

    Non-ASCII names are sent as an RFC 5987 ``filename*`` parameter
    next to an ASCII-only ``filename`` fallback, since header values
    must be latin-1 encodable.
    """
    if filename.isascii():
        return f'attachment; filename="{filename}"'
    fallback = sanitize_filename(filename, restricted=True)
    fallback = fallback.encode("ascii", "ignore").decode("ascii") or FALLBACK_FILENAME
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"
