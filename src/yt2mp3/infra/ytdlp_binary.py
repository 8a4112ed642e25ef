"""Local-binary backend: the yt-dlp executable as a child process.

Metadata comes from ``yt-dlp -J``; audio is streamed from
``yt-dlp -o -`` stdout.  Non-zero exits are classified from the last
stderr line so sign-in and throttling conditions keep their meaning.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

from yt2mp3.core.classify import classify_error
from yt2mp3.exceptions import MetadataExtractionError, SourceUnavailableError
from yt2mp3.infra.cookies import CookieJar
from yt2mp3.infra.extractor_locator import ExtractorLocator
from yt2mp3.infra.process import ManagedProcess, run_capture
from yt2mp3.infra.ytdlp_args import metadata_command, stream_command

logger = logging.getLogger(__name__)


class ProcessAudioSource:
    """:class:`~yt2mp3.core.protocols.AudioSource` reading a child's stdout."""

    format_hint: str | None = None
    passthrough: bool = False
    content_length: int | None = None

    def __init__(self, process: ManagedProcess) -> None:
        self._process = process
        self._terminated = False

    async def chunks(self, size: int) -> AsyncIterator[bytes]:
        while True:
            chunk = await self._process.read(size)
            if not chunk:
                return
            yield chunk

    async def finish(self) -> None:
        """Raise the classified failure when yt-dlp exited non-zero."""
        code = await self._process.wait()
        if code == 0 or self._terminated:
            return
        detail = self._process.last_error_line or f"yt-dlp exited with code {code}"
        raise classify_error(detail)

    def terminate(self) -> None:
        self._terminated = True
        self._process.kill()


class YtDlpBinaryMetadataProvider:
    """Concrete :class:`MetadataProvider` running ``yt-dlp -J``."""

    name = "yt-dlp binary"

    def __init__(
        self,
        locator: ExtractorLocator,
        *,
        cookies: CookieJar | None = None,
        extra_args: Sequence[str] = (),
    ) -> None:
        self._locator = locator
        self._cookies = cookies
        self._extra_args = list(extra_args)

    async def fetch_info(self, url: str) -> dict[str, Any]:
        """Return the info JSON for *url*.

        Raises
        ------
        MetadataExtractionError
            When yt-dlp is unavailable, fails, or prints something that
            is not a JSON object.  The message carries yt-dlp's own
            error line.
        """
        binary = await self._locator.resolve()
        if binary is None:
            raise MetadataExtractionError("yt-dlp unavailable")

        cookie_args = self._cookies.args(for_metadata=True) if self._cookies else []
        argv = metadata_command(binary, url, cookie_args=cookie_args, extra_args=self._extra_args)
        try:
            run = await run_capture(argv, name="yt-dlp -J")
        except OSError as exc:
            raise MetadataExtractionError(f"yt-dlp could not be started: {exc}") from exc

        if not run.ok:
            raise MetadataExtractionError(
                run.last_error_line or f"yt-dlp exited with code {run.returncode}",
            )
        try:
            info = json.loads(run.stdout)
        except ValueError as exc:
            raise MetadataExtractionError(f"yt-dlp printed invalid JSON: {exc}") from exc
        if not isinstance(info, dict):
            raise MetadataExtractionError("yt-dlp returned an unexpected data structure.")
        return info


class YtDlpBinarySourceProvider:
    """Concrete :class:`AudioSourceProvider` streaming ``yt-dlp -o -``."""

    name = "yt-dlp binary"

    def __init__(
        self,
        locator: ExtractorLocator,
        *,
        cookies: CookieJar | None = None,
        extra_args: Sequence[str] = (),
    ) -> None:
        self._locator = locator
        self._cookies = cookies
        self._extra_args = list(extra_args)

    async def open(self, url: str, bitrate: int) -> ProcessAudioSource:
        """Spawn yt-dlp for *url*; *bitrate* is not used by this backend.

        Raises
        ------
        ExtractorNotFoundError
            When no yt-dlp executable can be located.
        SourceUnavailableError
            When the process cannot be started.
        """
        binary = await self._locator.require()
        cookie_args = self._cookies.args() if self._cookies else []
        argv = stream_command(binary, url, cookie_args=cookie_args, extra_args=self._extra_args)
        try:
            process = await ManagedProcess.spawn(argv, name="yt-dlp")
        except OSError as exc:
            raise SourceUnavailableError(f"yt-dlp failed to start: {exc}") from exc
        logger.info("yt-dlp started (pid %s) for %s", process.pid, url)
        return ProcessAudioSource(process)
