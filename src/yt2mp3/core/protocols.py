"""Protocols (interfaces) consumed by the core layer.

These define the contracts that infrastructure adapters must satisfy.
Core code depends ONLY on these protocols, never on concrete
implementations.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any, Protocol

from yt2mp3.core.models import VideoMetadata


class MetadataProvider(Protocol):
    """Contract for metadata extraction backends.

    Any object that implements :meth:`fetch_info` with the correct
    signature satisfies this protocol structurally (no explicit
    inheritance required).
    """

    name: str

    async def fetch_info(self, url: str) -> dict[str, Any]:
        """Fetch raw metadata for *url* and return a yt-dlp style info dict.

        The returned dict should contain some of ``"id"``, ``"title"``
        (or ``"fulltitle"``), ``"uploader"`` (or ``"channel"``) and
        ``"duration"``.

        Raises
        ------
        MetadataExtractionError
            When the backend fails to extract metadata.  The message must
            carry the backend's own error text so it can be classified.
        """
        ...  # pragma: no cover


class AudioSource(Protocol):
    """An open byte stream of compressed audio."""

    format_hint: str | None
    """Demuxer name for the encoder (e.g. ``"webm"``), or ``None`` to probe."""

    passthrough: bool
    """``True`` when the bytes are already MP3 and need no transcoding."""

    content_length: int | None
    """Total size in bytes when known upfront."""

    def chunks(self, size: int) -> AsyncIterator[bytes]:
        """Yield the stream in chunks of at most *size* bytes.

        Raises a :class:`~yt2mp3.exceptions.Yt2Mp3Error` subclass when
        the stream breaks.
        """
        ...  # pragma: no cover

    async def finish(self) -> None:
        """Wait for the producer to exit after end-of-stream.

        Raises the classified failure when the producer did not end
        cleanly (e.g. yt-dlp exited non-zero).
        """
        ...  # pragma: no cover

    def terminate(self) -> None:
        """Stop the producer immediately.  Must be idempotent."""
        ...  # pragma: no cover


class AudioSourceProvider(Protocol):
    """Contract for the interchangeable audio backends."""

    name: str

    async def open(self, url: str, bitrate: int) -> AudioSource:
        """Open the audio stream for *url*.

        *bitrate* is a hint only; backends that deliver ready-made MP3
        may use it to pick a quality.

        Raises
        ------
        SourceUnavailableError
            When no stream could be opened.
        AuthRequiredError, RateLimitedError
            When the backend reports those specific conditions.
        """
        ...  # pragma: no cover


class EncoderProcess(Protocol):
    """A running encoder: bytes in on one side, MP3 out on the other."""

    async def write(self, data: bytes) -> None:
        """Feed *data* to the encoder input.

        Raises ``BrokenPipeError`` / ``ConnectionResetError`` once the
        encoder has gone away.
        """
        ...  # pragma: no cover

    def close_input(self) -> None:
        """Signal end of input."""
        ...  # pragma: no cover

    async def read(self, size: int) -> bytes:
        """Read up to *size* bytes of MP3 output; ``b""`` at end-of-stream."""
        ...  # pragma: no cover

    async def wait(self) -> int:
        """Wait for the encoder to exit and return its exit code."""
        ...  # pragma: no cover

    @property
    def last_error_line(self) -> str | None:
        """Last non-empty line the encoder wrote to stderr."""
        ...  # pragma: no cover

    def kill(self) -> None:
        """Terminate the encoder forcefully.  Must be idempotent."""
        ...  # pragma: no cover


class Encoder(Protocol):
    """Factory for :class:`EncoderProcess` instances."""

    async def start(
        self,
        *,
        bitrate: int,
        metadata: VideoMetadata,
        format_hint: str | None = None,
    ) -> EncoderProcess:
        """Spawn an encoder producing MP3 at *bitrate* tagged with *metadata*.

        Raises
        ------
        EncoderFailureError
            When the encoder cannot be started.
        """
        ...  # pragma: no cover
