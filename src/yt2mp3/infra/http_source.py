"""Infrastructure: plain HTTP byte streams as audio sources.

Used by the hosted-library backend (direct media URL resolved by the
yt-dlp API) and the third-party API backend (download link returned by
the API).  httpx errors never escape: they become
:class:`~yt2mp3.exceptions.SourceUnavailableError` or a classified
upstream error.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any
from urllib.parse import urlsplit

import httpx

from yt2mp3.core.classify import classify_error
from yt2mp3.exceptions import SourceUnavailableError

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 30.0
MP3_CONTENT_TYPES = frozenset({"audio/mpeg", "audio/mp3", "audio/mpeg3"})

_pending_closes: set[asyncio.Task[None]] = set()


def looks_like_mp3(response: httpx.Response) -> bool:
    """Whether the upstream resource is already an MP3 file."""
    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type in MP3_CONTENT_TYPES:
        return True
    return urlsplit(str(response.url)).path.lower().endswith(".mp3")


class HttpAudioSource:
    """:class:`~yt2mp3.core.protocols.AudioSource` over a streaming response."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        response: httpx.Response,
        *,
        format_hint: str | None = None,
        passthrough: bool = False,
    ) -> None:
        self._client = client
        self._response = response
        self.format_hint: str | None = format_hint
        self.passthrough: bool = passthrough
        self._terminated = False
        self._closed = False

    @property
    def content_length(self) -> int | None:
        raw = self._response.headers.get("content-length")
        try:
            return int(raw) if raw is not None else None
        except ValueError:
            return None

    async def chunks(self, size: int) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes(size):
                yield chunk
        except httpx.HTTPError as exc:
            if self._terminated:
                return
            raise SourceUnavailableError(f"Audio download failed: {exc}") from exc

    async def finish(self) -> None:
        await self._close()

    def terminate(self) -> None:
        """Close the connection without waiting for it."""
        if self._terminated or self._closed:
            return
        self._terminated = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._close())
        _pending_closes.add(task)
        task.add_done_callback(_pending_closes.discard)

    async def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._response.aclose()
        finally:
            await self._client.aclose()


async def open_http_stream(
    url: str,
    *,
    method: str = "GET",
    headers: Mapping[str, str] | None = None,
    format_hint: str | None = None,
    passthrough: bool | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    **request_kwargs: Any,
) -> HttpAudioSource:
    """Open *url* as a streaming byte source.

    *passthrough* ``None`` means "decide from the response": MP3 content
    is relayed untouched.  There is no read timeout; a stalled upstream
    is only cut off when the client disconnects.

    Raises
    ------
    SourceUnavailableError
        On network failure or an error status.
    RateLimitedError, AuthRequiredError
        When the status or body classifies as such.
    """
    client = httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(CONNECT_TIMEOUT, read=None),
        transport=transport,
    )
    try:
        request = client.build_request(method, url, headers=dict(headers or {}), **request_kwargs)
        response = await client.send(request, stream=True)
    except httpx.HTTPError as exc:
        await client.aclose()
        raise SourceUnavailableError(f"Could not reach audio host: {exc}") from exc

    if response.status_code >= 400:
        await response.aclose()
        await client.aclose()
        raise classify_error(f"Audio host answered HTTP {response.status_code}")

    if passthrough is None:
        passthrough = looks_like_mp3(response)
    logger.debug("Streaming %s (passthrough=%s)", response.url, passthrough)
    return HttpAudioSource(
        client,
        response,
        format_hint="mp3" if passthrough else format_hint,
        passthrough=passthrough,
    )
