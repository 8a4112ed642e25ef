"""Hosted-library backend: the yt-dlp Python API.

This module is the **only** place in the codebase that drives
``yt_dlp.YoutubeDL``.  Extraction is blocking, so it runs in a worker
thread.  All yt-dlp exceptions are caught here and re-raised as typed
:class:`~yt2mp3.exceptions.Yt2Mp3Error` subclasses; nothing raw
escapes the infrastructure boundary.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import httpx

from yt2mp3.core.classify import classify_error
from yt2mp3.exceptions import (
    EnvironmentError,
    MetadataExtractionError,
    SourceUnavailableError,
)
from yt2mp3.infra.cookies import CookieJar
from yt2mp3.infra.http_source import HttpAudioSource, open_http_stream
from yt2mp3.infra.ytdlp_args import STREAM_FORMAT

logger = logging.getLogger(__name__)

# Container extension -> ffmpeg demuxer name.
_DEMUXERS: dict[str, str] = {
    "webm": "webm",
    "m4a": "mp4",
    "mp4": "mp4",
    "mp3": "mp3",
    "ogg": "ogg",
    "opus": "ogg",
}


def demuxer_for(ext: str | None) -> str | None:
    """ffmpeg input format for a yt-dlp ``ext`` value, if known."""
    if not ext:
        return None
    return _DEMUXERS.get(ext.lower())


def _import_ytdlp() -> Any:
    try:
        import yt_dlp
        import yt_dlp.utils
    except ModuleNotFoundError as exc:
        raise EnvironmentError(
            "yt-dlp is not installed. Install with: pip install yt-dlp",
        ) from exc
    return yt_dlp


def _extract(url: str, opts: dict[str, Any]) -> dict[str, Any]:
    """Blocking ``extract_info`` call; raises ``MetadataExtractionError``."""
    yt_dlp = _import_ytdlp()
    try:
        with yt_dlp.YoutubeDL(opts) as ydl:
            info: Any = ydl.extract_info(url, download=False)
    except yt_dlp.utils.DownloadError as exc:
        raise MetadataExtractionError(str(exc)) from exc
    except Exception as exc:
        raise MetadataExtractionError(f"Unexpected yt-dlp error: {exc}") from exc

    if info is None:
        raise MetadataExtractionError(
            "yt-dlp returned no metadata for the given URL.",
            hint="The URL may not point to a valid video.",
        )
    if not isinstance(info, dict):
        raise MetadataExtractionError("yt-dlp returned an unexpected data structure.")
    return dict(info)


class _LibraryBase:
    def __init__(self, *, cookies: CookieJar | None = None) -> None:
        self._cookies = cookies

    def _build_opts(self, *, for_metadata: bool) -> dict[str, Any]:
        opts: dict[str, Any] = {
            "quiet": True,
            "no_warnings": True,
            "no_color": True,
            "noplaylist": True,
            "skip_download": True,
        }
        if self._cookies is not None:
            path = self._cookies.cookiefile(for_metadata=for_metadata)
            if path is not None:
                opts["cookiefile"] = str(path)
        return opts


class YtDlpLibraryMetadataProvider(_LibraryBase):
    """Concrete :class:`MetadataProvider` backed by the yt-dlp Python API."""

    name = "yt-dlp library"

    async def fetch_info(self, url: str) -> dict[str, Any]:
        """Extract metadata for *url* without downloading.

        Raises
        ------
        EnvironmentError
            When the ``yt_dlp`` package is not installed.
        MetadataExtractionError
            For every extraction failure; the message is yt-dlp's own text
            so the resolver can classify it.
        """
        return await asyncio.to_thread(_extract, url, self._build_opts(for_metadata=True))


class YtDlpLibrarySourceProvider(_LibraryBase):
    """Concrete :class:`AudioSourceProvider` streaming the resolved media URL.

    The best audio format is resolved with the library and then fetched
    over plain HTTP with the headers yt-dlp says the host expects.
    """

    name = "yt-dlp library"

    def __init__(
        self,
        *,
        cookies: CookieJar | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(cookies=cookies)
        self._transport = transport

    def _build_opts(self, *, for_metadata: bool) -> dict[str, Any]:
        opts = super()._build_opts(for_metadata=for_metadata)
        opts["format"] = STREAM_FORMAT
        return opts

    async def open(self, url: str, bitrate: int) -> HttpAudioSource:
        """Resolve and open the audio stream for *url*.

        Raises
        ------
        AuthRequiredError, RateLimitedError, SourceUnavailableError
            Classified from yt-dlp's error text or the media host's status.
        """
        opts = self._build_opts(for_metadata=False)
        try:
            info = await asyncio.to_thread(_extract, url, opts)
        except MetadataExtractionError as exc:
            raise classify_error(str(exc)) from exc

        media_url = info.get("url")
        if not isinstance(media_url, str) or not media_url:
            raise SourceUnavailableError("yt-dlp did not resolve a downloadable audio stream.")

        headers = info.get("http_headers")
        if not isinstance(headers, Mapping):
            headers = {}
        hint = demuxer_for(info.get("ext"))
        logger.info("Resolved %s audio stream for %s", info.get("ext") or "unknown", url)
        return await open_http_stream(
            media_url,
            headers={str(k): str(v) for k, v in headers.items()},
            format_hint=hint,
            passthrough=False,
            transport=self._transport,
        )
