"""Domain models for yt2mp3.

Request and metadata models are **frozen** dataclasses — immutable
value objects created once per HTTP request and discarded with it.
:class:`PipelineState` is the single mutable exception: it belongs to
exactly one :class:`~yt2mp3.core.pipeline.ConversionPipeline`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from yt2mp3.exceptions import Yt2Mp3Error

DEFAULT_TITLE = "audio"
DEFAULT_ARTIST = "YouTube"


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ConversionRequest:
    """A validated conversion request."""

    url: str
    """Absolute URL on an allowed video host."""

    bitrate: int
    """Target MP3 bitrate in kbps, within ``[64, 320]``."""


# ---------------------------------------------------------------------------
# Video metadata
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class VideoMetadata:
    """Best-effort metadata for a single video."""

    title: str
    """Human-readable video title."""

    uploader: str
    """Uploader or channel name; empty when unknown."""

    id: str
    """Video ID (e.g. ``dQw4w9WgXcQ``); empty when unknown."""

    duration: int | None = None
    """Duration in seconds, or ``None`` if unavailable."""

    @classmethod
    def unknown(cls) -> VideoMetadata:
        """Metadata used when every resolution attempt failed."""
        return cls(title=DEFAULT_TITLE, uploader="", id="")

    @property
    def artist(self) -> str:
        """Value written to the ``artist`` tag."""
        return self.uploader or DEFAULT_ARTIST


# ---------------------------------------------------------------------------
# Pipeline bookkeeping
# ---------------------------------------------------------------------------

class PipelineStage(str, Enum):
    """Lifecycle of one conversion."""

    IDLE = "idle"
    RESOLVING = "resolving"
    SOURCE_OPENING = "source_opening"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


class TerminalAction(str, Enum):
    """What the client observed when the pipeline reached a terminal stage."""

    COMPLETED = "completed"
    """The MP3 stream ended cleanly."""

    JSON_ERROR = "json_error"
    """A structured error body was sent (headers not yet on the wire)."""

    DESTROY = "destroy"
    """The connection was dropped mid-stream."""

    SILENT = "silent"
    """The client had already gone away; nothing was sent."""


@dataclass(slots=True)
class PipelineState:
    """Mutable per-request flags owned by the orchestrator."""

    stage: PipelineStage = PipelineStage.IDLE
    responded: bool = False
    """Set by the first terminal transition; later signals are no-ops."""

    started_streaming: bool = False
    """Set once the first body byte has been handed to the server."""

    action: TerminalAction | None = None
    error: Yt2Mp3Error | None = None
    bytes_sent: int = 0
