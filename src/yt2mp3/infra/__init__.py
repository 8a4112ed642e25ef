"""Infrastructure layer — external system integration.

This layer wraps all interaction with yt-dlp, the operating system,
ffmpeg and remote HTTP services.  Every raw third-party exception must be
caught here and re-raised as a :class:`~yt2mp3.exceptions.Yt2Mp3Error`
subclass.

Rules
-----
* No imports from ``cli`` or ``web``.
* No user-facing output (no ``print()``, no Rich rendering).
* Must expose clean, typed interfaces consumed by the core layer.
"""

from yt2mp3.infra.backends import ConversionServices, build_services
from yt2mp3.infra.extractor_locator import ExtractorLocator
from yt2mp3.infra.ffmpeg_detector import FfmpegStatus, detect_ffmpeg, require_ffmpeg
from yt2mp3.infra.ffmpeg_encoder import FfmpegEncoder

__all__: list[str] = [
    "ConversionServices",
    "ExtractorLocator",
    "FfmpegEncoder",
    "FfmpegStatus",
    "build_services",
    "detect_ffmpeg",
    "require_ffmpeg",
]
