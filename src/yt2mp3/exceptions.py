"""Custom exception hierarchy for yt2mp3.

All exceptions that cross layer boundaries must inherit from
:class:`Yt2Mp3Error`.  Raw third-party exceptions (yt-dlp, httpx,
``OSError`` from process spawns) must NEVER propagate beyond the
infrastructure layer — they must be caught and re-raised as a typed
subclass defined here.

Every class carries the HTTP ``status_code`` the web error boundary
renders it with, and an optional machine-readable ``code``.

Hierarchy
---------
Yt2Mp3Error
├── InvalidInputError            400
│   ├── InvalidURLError
│   └── InvalidBitrateError
├── AuthRequiredError            403  auth_required
├── RateLimitedError             429  rate_limited
├── SourceUnavailableError       502
│   └── ExtractorNotFoundError
├── EncoderFailureError          500
│   └── EncoderNotFoundError
├── EmptyOutputError             500
├── ClientAbortError             499  (never rendered)
├── MetadataExtractionError      500  (absorbed by the resolver)
└── EnvironmentError             500
"""

from __future__ import annotations


class Yt2Mp3Error(Exception):
    """Base exception for all yt2mp3 errors.

    Every user-visible error condition must map to a subclass of this
    exception so that the HTTP and CLI error boundaries can render a
    clean message without leaking internal stack traces.
    """

    status_code: int = 500
    code: str | None = None

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint: str | None = hint
        """Optional actionable guidance logged/shown below the message."""

    def to_payload(self) -> dict[str, str]:
        """Return the JSON body rendered for this error."""
        payload = {"error": str(self)}
        if self.code is not None:
            payload["code"] = self.code
        return payload


# --- Request validation ----------------------------------------------------

class InvalidInputError(Yt2Mp3Error):
    """Raised when the submitted request is malformed."""

    status_code = 400


class InvalidURLError(InvalidInputError):
    """Raised when the provided URL fails validation."""


class InvalidBitrateError(InvalidInputError):
    """Raised when the requested bitrate is out of range."""


# --- Upstream conditions ---------------------------------------------------

class AuthRequiredError(Yt2Mp3Error):
    """Raised when the video needs a signed-in session (private, bot check)."""

    status_code = 403
    code = "auth_required"


class RateLimitedError(Yt2Mp3Error):
    """Raised when the upstream service throttles us."""

    status_code = 429
    code = "rate_limited"


class SourceUnavailableError(Yt2Mp3Error):
    """Raised when no backend could open the audio stream."""

    status_code = 502


class ExtractorNotFoundError(SourceUnavailableError):
    """Raised when no yt-dlp executable can be located or downloaded."""


# --- Encoding --------------------------------------------------------------

class EncoderFailureError(Yt2Mp3Error):
    """Raised when ffmpeg fails to start or exits non-zero."""

    status_code = 500


class EncoderNotFoundError(EncoderFailureError):
    """Raised when ffmpeg cannot be located."""


class EmptyOutputError(Yt2Mp3Error):
    """Raised when ffmpeg exits cleanly without producing a single byte."""

    status_code = 500


# --- Lifecycle -------------------------------------------------------------

class ClientAbortError(Yt2Mp3Error):
    """Raised when the client disconnects mid-request.

    Not an error from the user's point of view: nothing is rendered,
    the pipeline only tears down its processes.
    """

    status_code = 499


# --- Metadata --------------------------------------------------------------

class MetadataExtractionError(Yt2Mp3Error):
    """Raised when a metadata backend fails to return video information."""


# --- Environment / tooling -------------------------------------------------

class EnvironmentError(Yt2Mp3Error):
    """Raised when a required runtime dependency is not available."""


def append_ytdlp_upgrade_suggestion(hint: str) -> str:
    """Append yt-dlp upgrade guidance to an existing hint text.

    The suggestion is appended only once and preserves the original
    hint content verbatim.
    """
    marker = "Also try updating yt-dlp:"
    if marker in hint:
        return hint
    return "\n".join(
        (
            hint,
            marker,
            "    pip install --upgrade yt-dlp",
        )
    )
