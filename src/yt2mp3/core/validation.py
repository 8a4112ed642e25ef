"""Construction of :class:`ConversionRequest` from untrusted input.

Validation happens synchronously, before any backend is touched.
"""

from __future__ import annotations

import math
from typing import Any

from yt2mp3.core.models import ConversionRequest
from yt2mp3.core.urls import is_allowed_url
from yt2mp3.exceptions import InvalidBitrateError, InvalidURLError

MIN_BITRATE = 64
MAX_BITRATE = 320
DEFAULT_BITRATE = 320

INVALID_URL_MESSAGE = "Invalid or missing YouTube URL."
INVALID_BITRATE_MESSAGE = "Bitrate must be between 64 and 320 kbps."


def parse_bitrate(raw: Any) -> int:
    """Coerce a client-supplied bitrate to kbps.

    Missing, zero and non-numeric values mean :data:`DEFAULT_BITRATE`.
    Numeric values outside ``[64, 320]`` raise
    :class:`InvalidBitrateError`.
    """
    if raw is None or isinstance(raw, bool):
        return DEFAULT_BITRATE
    try:
        value = float(str(raw).strip()) if isinstance(raw, str) else float(raw)
    except (TypeError, ValueError):
        return DEFAULT_BITRATE
    if math.isnan(value) or value == 0:
        return DEFAULT_BITRATE
    if not MIN_BITRATE <= value <= MAX_BITRATE:
        raise InvalidBitrateError(INVALID_BITRATE_MESSAGE)
    return int(round(value))


def build_request(url: Any, bitrate: Any = None) -> ConversionRequest:
    """Validate raw request fields and return an immutable request.

    Raises
    ------
    InvalidURLError
        If *url* is missing or not on an allowed host.
    InvalidBitrateError
        If *bitrate* is numeric but out of range.
    """
    if not isinstance(url, str) or not is_allowed_url(url):
        raise InvalidURLError(INVALID_URL_MESSAGE)
    return ConversionRequest(url=url.strip(), bitrate=parse_bitrate(bitrate))
