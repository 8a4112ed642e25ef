"""ffmpeg backed implementation of :class:`~yt2mp3.core.protocols.Encoder`.

ffmpeg reads the compressed source on stdin and writes a single MP3
audio stream on stdout; video is always dropped.  Spawn failures are
mapped to :class:`~yt2mp3.exceptions.EncoderFailureError`.
"""

from __future__ import annotations

import logging
from pathlib import Path

from yt2mp3.core.models import VideoMetadata
from yt2mp3.exceptions import EncoderFailureError
from yt2mp3.infra.ffmpeg_detector import require_ffmpeg
from yt2mp3.infra.process import ManagedProcess

logger = logging.getLogger(__name__)


class FfmpegEncoder:
    """Concrete :class:`Encoder` spawning one ffmpeg per conversion.

    Parameters
    ----------
    ffmpeg_path:
        Explicit executable.
    bin_dir:
        Directory that may hold a bundled ffmpeg; PATH is the last resort.
    """

    def __init__(self, ffmpeg_path: str | None = None, *, bin_dir: Path | None = None) -> None:
        self._ffmpeg_path: str | None = ffmpeg_path
        self._bin_dir: Path | None = bin_dir

    @staticmethod
    def build_args(
        binary: str,
        *,
        bitrate: int,
        metadata: VideoMetadata,
        format_hint: str | None = None,
    ) -> list[str]:
        """Return the ffmpeg argv for a stdin → stdout MP3 transcode."""
        args = [binary, "-hide_banner", "-loglevel", "error"]
        if format_hint:
            args += ["-f", format_hint]
        args += [
            "-i", "pipe:0",
            "-vn",
            "-map", "0:a:0",
            "-map_metadata", "0",
            "-c:a", "libmp3lame",
            "-b:a", f"{bitrate}k",
            "-metadata", f"title={metadata.title}",
            "-metadata", f"artist={metadata.artist}",
            "-id3v2_version", "3",
            "-f", "mp3",
            "pipe:1",
        ]
        return args

    # ------------------------------------------------------------------
    # Protocol method
    # ------------------------------------------------------------------

    async def start(
        self,
        *,
        bitrate: int,
        metadata: VideoMetadata,
        format_hint: str | None = None,
    ) -> ManagedProcess:
        """Spawn ffmpeg.

        Raises
        ------
        EncoderNotFoundError
            When ffmpeg cannot be located.
        EncoderFailureError
            When the process cannot be started.
        """
        binary = require_ffmpeg(self._ffmpeg_path, bin_dir=self._bin_dir)
        args = self.build_args(
            str(binary),
            bitrate=bitrate,
            metadata=metadata,
            format_hint=format_hint,
        )
        try:
            process = await ManagedProcess.spawn(args, name="ffmpeg", stdin=True)
        except OSError as exc:
            raise EncoderFailureError(f"ffmpeg failed to start: {exc}") from exc
        logger.info("ffmpeg started (pid %s, %dk, input=%s)", process.pid, bitrate, format_hint or "probe")
        return process
