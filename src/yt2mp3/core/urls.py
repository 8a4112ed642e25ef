"""Pure URL helpers: host allowlist and video-ID extraction.

No I/O; every function here is total — malformed input yields
``False`` / ``None`` rather than an exception.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qs, urlsplit

ALLOWED_HOSTS: tuple[str, ...] = (
    "youtube.com",
    "youtu.be",
    "youtube-nocookie.com",
)
"""Video hosts accepted by the service; subdomains are accepted too."""

SHORT_LINK_HOST = "youtu.be"

_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
_PATH_PREFIXES: tuple[str, ...] = ("shorts", "embed", "live", "v")


def is_allowed_url(url: str, allowed_hosts: tuple[str, ...] = ALLOWED_HOSTS) -> bool:
    """Return ``True`` when *url* is an absolute http(s) URL on an allowed host.

    The host matches when it equals an allowed domain or is one of its
    subdomains, case-insensitively.  ``https://evil.com/youtube.com``
    and ``https://notyoutube.com`` are both rejected.
    """
    if not isinstance(url, str) or not url.strip():
        return False
    try:
        parts = urlsplit(url.strip())
        host = parts.hostname
    except ValueError:
        return False
    if parts.scheme.lower() not in ("http", "https") or not host:
        return False
    host = host.lower().rstrip(".")
    return any(host == domain or host.endswith("." + domain) for domain in allowed_hosts)


def extract_video_id(url_or_id: str) -> str | None:
    """Derive the canonical 11-character video ID.

    Supported shapes:

    * a bare ID (``dQw4w9WgXcQ``)
    * ``?v=<id>`` on any watch URL
    * ``/shorts/<id>``, ``/embed/<id>``, ``/live/<id>``, ``/v/<id>``
    * ``https://youtu.be/<id>``
    """
    if not isinstance(url_or_id, str):
        return None
    candidate = url_or_id.strip()
    if _VIDEO_ID_RE.match(candidate):
        return candidate

    try:
        parts = urlsplit(candidate)
        host = (parts.hostname or "").lower()
    except ValueError:
        return None

    segments = [segment for segment in parts.path.split("/") if segment]

    if host == SHORT_LINK_HOST or host.endswith("." + SHORT_LINK_HOST):
        if segments and _VIDEO_ID_RE.match(segments[0]):
            return segments[0]
        return None

    for value in parse_qs(parts.query).get("v", []):
        if _VIDEO_ID_RE.match(value):
            return value

    for index, segment in enumerate(segments[:-1]):
        if segment in _PATH_PREFIXES and _VIDEO_ID_RE.match(segments[index + 1]):
            return segments[index + 1]
    return None


def watch_url(video_id: str) -> str:
    """Return the canonical watch URL for *video_id*."""
    return f"https://www.youtube.com/watch?v={video_id}"
