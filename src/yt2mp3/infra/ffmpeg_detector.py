"""Infrastructure: ffmpeg discovery and platform guidance.

The encoder is looked up in three places, first match wins:

1. an explicitly configured executable (``YT2MP3_FFMPEG_PATH``);
2. a bundled copy in the binaries directory (``bin/ffmpeg``), shipped
   next to the vendored yt-dlp in container images;
3. ``ffmpeg`` on the system PATH.

Rules
-----
* Lookup via :func:`shutil.which` only, no subprocess.
* No permanent PATH modification and no automatic installation.
* No ``print()``; callers handle user-facing output.
"""

from __future__ import annotations

import logging
import platform
import shutil
from dataclasses import dataclass
from pathlib import Path

from yt2mp3.exceptions import EncoderNotFoundError

logger = logging.getLogger(__name__)

SOURCE_CONFIGURED = "configured"
SOURCE_BUNDLED = "bundled"
SOURCE_PATH = "PATH"


# ---------------------------------------------------------------------------
# Detection result
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class FfmpegStatus:
    """Result of an ffmpeg lookup.

    Attributes
    ----------
    found : bool
        Whether a usable executable was located.
    path : Path | None
        Absolute path to the executable, or ``None``.
    version_hint : str
        Human-readable status string shown by ``doctor``.
    install_commands : tuple[str, ...]
        Suggested install commands for the current platform; empty when
        ffmpeg is present.
    source : str | None
        Which lookup step matched (``configured``, ``bundled``, ``PATH``).
    """

    found: bool
    path: Path | None
    version_hint: str
    install_commands: tuple[str, ...]
    source: str | None = None


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

def bundled_name() -> str:
    """File name of the bundled executable on this platform."""
    return "ffmpeg.exe" if platform.system().lower() == "windows" else "ffmpeg"


def _candidates(configured: str | None, bin_dir: Path | None) -> list[tuple[str, str]]:
    candidates: list[tuple[str, str]] = []
    if configured:
        candidates.append((configured, SOURCE_CONFIGURED))
    if bin_dir is not None:
        candidates.append((str(Path(bin_dir) / bundled_name()), SOURCE_BUNDLED))
    candidates.append(("ffmpeg", SOURCE_PATH))
    return candidates


def detect_ffmpeg(configured: str | None = None, *, bin_dir: Path | None = None) -> FfmpegStatus:
    """Locate ffmpeg without raising.

    The caller decides whether a miss is fatal.  A configured path that
    does not resolve is logged and the remaining locations are tried.
    """
    for candidate, source in _candidates(configured, bin_dir):
        result = shutil.which(candidate)
        if result is not None:
            resolved = Path(result).resolve()
            return FfmpegStatus(
                found=True,
                path=resolved,
                version_hint=f"found at {resolved}",
                install_commands=(),
                source=source,
            )
        if source == SOURCE_CONFIGURED:
            logger.warning("Configured ffmpeg is not executable: %s", candidate)

    return FfmpegStatus(
        found=False,
        path=None,
        version_hint=f"not found ({configured})" if configured else "not found",
        install_commands=_platform_install_commands(),
    )


def require_ffmpeg(configured: str | None = None, *, bin_dir: Path | None = None) -> Path:
    """Locate ffmpeg or raise :class:`EncoderNotFoundError`."""
    status = detect_ffmpeg(configured, bin_dir=bin_dir)
    if not status.found or status.path is None:
        hint_lines: list[str] = []
        if status.install_commands:
            hint_lines.append("Install ffmpeg using one of:")
            hint_lines.extend(f"  {cmd}" for cmd in status.install_commands)
        if bin_dir is not None:
            hint_lines.append(f"or place the executable at {Path(bin_dir) / bundled_name()}.")
        raise EncoderNotFoundError(
            "ffmpeg is not installed or not on PATH.",
            hint="\n".join(hint_lines) if hint_lines else None,
        )
    return status.path


# ---------------------------------------------------------------------------
# Platform-specific install guidance
# ---------------------------------------------------------------------------

def _platform_install_commands() -> tuple[str, ...]:
    """Return install commands appropriate for the current OS."""
    system = platform.system().lower()
    if system == "windows":
        return (
            "winget install Gyan.FFmpeg",
            "choco install ffmpeg",
        )
    if system == "linux":
        return (
            "sudo apt install ffmpeg",
            "sudo dnf install ffmpeg",
            "sudo pacman -S ffmpeg",
            "apk add ffmpeg",
        )
    if system == "darwin":
        return ("brew install ffmpeg",)
    return ("Download a build from https://ffmpeg.org/download.html",)
