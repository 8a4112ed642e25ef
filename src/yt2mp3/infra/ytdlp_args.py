"""yt-dlp command-line construction.

Extra arguments come from configuration as a single string and are
tokenized shell-style, so quoted values such as
``--extractor-args "youtube:player_client=web"`` survive intact.
"""

from __future__ import annotations

import logging
import shlex
from collections.abc import Sequence

logger = logging.getLogger(__name__)

STREAM_FORMAT = "bestaudio/best"


def split_args(raw: str | None) -> list[str]:
    """Tokenize *raw* honouring quotes; unbalanced quotes fall back to whitespace."""
    if not raw or not raw.strip():
        return []
    try:
        return shlex.split(raw)
    except ValueError as exc:
        logger.warning("Could not parse yt-dlp arguments %r (%s); splitting on whitespace", raw, exc)
        return raw.split()


def metadata_command(
    binary: str,
    url: str,
    *,
    cookie_args: Sequence[str] = (),
    extra_args: Sequence[str] = (),
) -> list[str]:
    """``yt-dlp -J`` invocation dumping the video's info JSON."""
    return [
        binary,
        "-J",
        "--no-playlist",
        "--no-warnings",
        *cookie_args,
        *extra_args,
        url,
    ]


def stream_command(
    binary: str,
    url: str,
    *,
    cookie_args: Sequence[str] = (),
    extra_args: Sequence[str] = (),
) -> list[str]:
    """yt-dlp invocation writing the best audio stream to stdout."""
    return [
        binary,
        "-f", STREAM_FORMAT,
        "-o", "-",
        "--no-playlist",
        "--quiet",
        "--no-warnings",
        *cookie_args,
        *extra_args,
        url,
    ]
