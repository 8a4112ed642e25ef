"""Classification of backend error text into the failure taxonomy.

yt-dlp, the hosted library and third-party APIs all report problems as
free-form text.  The helpers here map that text onto a small set of
kinds (case-insensitive substring match, first match wins in the order
declared below) and build the matching typed exception.
"""

from __future__ import annotations

from enum import Enum

from yt2mp3.exceptions import (
    AuthRequiredError,
    RateLimitedError,
    SourceUnavailableError,
    Yt2Mp3Error,
)


class FailureKind(str, Enum):
    AUTH_REQUIRED = "auth_required"
    RATE_LIMITED = "rate_limited"
    FORBIDDEN = "forbidden"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


_SIGNALS: tuple[tuple[FailureKind, tuple[str, ...]], ...] = (
    (
        FailureKind.AUTH_REQUIRED,
        ("sign in to confirm", "private video", "members-only"),
    ),
    (
        FailureKind.RATE_LIMITED,
        ("too many requests", "429", "quota"),
    ),
    (
        FailureKind.FORBIDDEN,
        ("403",),
    ),
    (
        FailureKind.UNAVAILABLE,
        (
            "unavailable",
            "removed",
            "not available",
            "account terminated",
            "no longer available",
        ),
    ),
)

AUTH_REQUIRED_MESSAGE = (
    "This video requires signing in (private, members-only or bot check)."
)
RATE_LIMITED_MESSAGE = "The video host is rate limiting requests. Try again later."


def classify_failure(text: str | None) -> FailureKind:
    """Return the :class:`FailureKind` signalled by *text*."""
    lowered = (text or "").lower()
    for kind, signals in _SIGNALS:
        if any(signal in lowered for signal in signals):
            return kind
    return FailureKind.UNKNOWN


def error_for(kind: FailureKind, detail: str | None) -> Yt2Mp3Error:
    """Build the typed exception for a classified source failure.

    ``AUTH_REQUIRED`` and ``RATE_LIMITED`` get their own classes (and
    HTTP statuses); everything else is a :class:`SourceUnavailableError`
    carrying *detail* as its message.
    """
    if kind is FailureKind.AUTH_REQUIRED:
        return AuthRequiredError(AUTH_REQUIRED_MESSAGE, hint=detail)
    if kind is FailureKind.RATE_LIMITED:
        return RateLimitedError(RATE_LIMITED_MESSAGE, hint=detail)
    return SourceUnavailableError(detail or "The audio source could not be opened.")


def classify_error(detail: str | None) -> Yt2Mp3Error:
    """Shortcut for ``error_for(classify_failure(detail), detail)``."""
    return error_for(classify_failure(detail), detail)
