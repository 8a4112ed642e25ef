"""Third-party API backend.

The API is asked for a download link by video ID.  Its JSON schema is
not fixed, so the link is found by a depth-first search over the
response tree, preferring well-known keys.  The link is then streamed
as plain HTTP; MP3 resources bypass the encoder.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from yt2mp3.core.classify import classify_error
from yt2mp3.core.urls import extract_video_id, watch_url
from yt2mp3.exceptions import (
    InvalidURLError,
    RateLimitedError,
    SourceUnavailableError,
)
from yt2mp3.infra.http_source import CONNECT_TIMEOUT, HttpAudioSource, open_http_stream

logger = logging.getLogger(__name__)

DOWNLOAD_KEYS: tuple[str, ...] = (
    "download_url",
    "downloadUrl",
    "download",
    "mp3",
    "mp3_url",
    "mp3Url",
    "url",
    "link",
    "audio",
    "result",
)
"""Keys searched for the download link, in priority order."""

_HTTP_URL_RE = re.compile(r"^https?://", re.IGNORECASE)


def find_download_url(node: Any) -> str | None:
    """Return the first ``http(s)://`` link found depth-first in *node*.

    Within an object the priority keys are visited in order before any
    other key.  Links reached through a priority key win over every
    other string in the document, so a top-level ``thumbnail`` never
    shadows a nested ``downloadUrl``.  When no priority key holds a link,
    the first ``http(s)://`` string anywhere is used.
    """
    return _search(node, accept=True, strict=True) or _search(node, accept=True, strict=False)


def _search(node: Any, *, accept: bool, strict: bool) -> str | None:
    if isinstance(node, str):
        return node if accept and _HTTP_URL_RE.match(node.strip()) else None
    if isinstance(node, list):
        for item in node:
            found = _search(item, accept=accept, strict=strict)
            if found:
                return found
        return None
    if isinstance(node, dict):
        for key in DOWNLOAD_KEYS:
            if key in node:
                found = _search(node[key], accept=True, strict=strict)
                if found:
                    return found
        for key, value in node.items():
            if key in DOWNLOAD_KEYS:
                continue
            found = _search(value, accept=not strict, strict=strict)
            if found:
                return found
    return None


class ThirdPartyApiSourceProvider:
    """Concrete :class:`AudioSourceProvider` backed by a remote conversion API.

    Parameters
    ----------
    base_url:
        API endpoint.
    api_key, api_host:
        Sent as ``X-RapidAPI-Key`` / ``X-RapidAPI-Host`` when set.
    method:
        ``GET`` (ID as query parameter) or ``POST`` (JSON body).
    transport:
        Optional httpx transport, used by tests.
    """

    name = "third-party API"

    def __init__(
        self,
        base_url: str | None,
        *,
        api_key: str | None = None,
        api_host: str | None = None,
        method: str = "GET",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._api_key = api_key
        self._api_host = api_host
        self._method = method.upper()
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["X-RapidAPI-Key"] = self._api_key
        if self._api_host:
            headers["X-RapidAPI-Host"] = self._api_host
        return headers

    async def request_link(self, video_id: str) -> str:
        """Ask the API for a download link.

        Raises
        ------
        RateLimitedError
            On HTTP 429.
        SourceUnavailableError
            When the API is unreachable, misconfigured, fails, or its
            answer holds no link.
        """
        if not self._base_url:
            raise SourceUnavailableError(
                "Third-party API is not configured.",
                hint="Set YT2MP3_API_BASE_URL (and YT2MP3_API_KEY if required).",
            )

        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=CONNECT_TIMEOUT,
            transport=self._transport,
        ) as client:
            try:
                if self._method == "POST":
                    response = await client.post(
                        self._base_url,
                        json={"id": video_id, "url": watch_url(video_id)},
                        headers=self._headers(),
                    )
                else:
                    response = await client.get(
                        self._base_url,
                        params={"id": video_id},
                        headers=self._headers(),
                    )
            except httpx.HTTPError as exc:
                raise SourceUnavailableError(f"Third-party API unreachable: {exc}") from exc

        if response.status_code == 429:
            raise RateLimitedError("Third-party API rate limit reached.")
        if response.status_code >= 400:
            raise classify_error(f"Third-party API answered HTTP {response.status_code}: {response.text[:200]}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise SourceUnavailableError("Third-party API returned invalid JSON.") from exc

        link = find_download_url(payload)
        if link is None:
            raise SourceUnavailableError("Third-party API response contained no download link.")
        return link.strip()

    async def open(self, url: str, bitrate: int) -> HttpAudioSource:
        """Resolve *url* through the API and open the returned link.

        Raises
        ------
        InvalidURLError
            When no video ID can be derived from *url*.
        """
        video_id = extract_video_id(url)
        if video_id is None:
            raise InvalidURLError("Invalid URL")
        link = await self.request_link(video_id)
        logger.info("Third-party API returned a link for %s", video_id)
        return await open_http_stream(link, transport=self._transport)
