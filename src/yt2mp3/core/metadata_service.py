"""Core metadata service — best-effort title/artist resolution.

Depends on :class:`~yt2mp3.core.protocols.MetadataProvider` instances
injected at construction time (dependency inversion), keeping the core
free of any external-system imports.

Resolution protocol
-------------------
1. Ask the primary provider (the one matching the configured audio
   backend, so cookies and credentials stay consistent).
2. On failure, ask the secondary provider exactly once, if any.
3. When both fail, classify the combined error text.  Sign-in and
   rate-limit conditions short-circuit the request with a typed error
   (nothing has been streamed yet, so the client still gets JSON).
   Anything else degrades to :meth:`VideoMetadata.unknown`.

Guarantees
----------
* No retries beyond the single fallback.
* Only :class:`~yt2mp3.exceptions.Yt2Mp3Error` subclasses escape.
"""

from __future__ import annotations

import logging
from typing import Any

from yt2mp3.core.classify import FailureKind, classify_failure, error_for
from yt2mp3.core.models import DEFAULT_TITLE, VideoMetadata
from yt2mp3.core.protocols import MetadataProvider
from yt2mp3.exceptions import MetadataExtractionError, Yt2Mp3Error

logger = logging.getLogger(__name__)

_SHORT_CIRCUIT_KINDS = frozenset({FailureKind.AUTH_REQUIRED, FailureKind.RATE_LIMITED})


class MetadataService:
    """Resolve :class:`VideoMetadata` with a single bounded fallback.

    Parameters
    ----------
    primary:
        Provider tried first.
    secondary:
        Optional provider tried once when *primary* fails.
    short_circuit:
        When ``True`` (default), auth/rate-limit failures raise instead
        of degrading to generic metadata.
    """

    def __init__(
        self,
        primary: MetadataProvider,
        secondary: MetadataProvider | None = None,
        *,
        short_circuit: bool = True,
    ) -> None:
        self._primary: MetadataProvider = primary
        self._secondary: MetadataProvider | None = secondary
        self._short_circuit: bool = short_circuit

    @property
    def providers(self) -> tuple[MetadataProvider, ...]:
        if self._secondary is None:
            return (self._primary,)
        return (self._primary, self._secondary)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve(self, url: str) -> VideoMetadata:
        """Return metadata for *url*, never failing on plain extraction errors.

        Raises
        ------
        AuthRequiredError
            If every provider failed and the error text says sign-in is needed.
        RateLimitedError
            If every provider failed and the error text says we are throttled.
        """
        failures: list[str] = []
        for provider in self.providers:
            try:
                info = await self._fetch(provider, url)
            except Yt2Mp3Error as exc:
                logger.warning("Metadata lookup via %s failed: %s", provider.name, exc)
                failures.append(str(exc))
                continue
            return self._parse_metadata(info)

        kind = classify_failure(" | ".join(failures))
        if self._short_circuit and kind in _SHORT_CIRCUIT_KINDS:
            raise error_for(kind, failures[-1] if failures else None)

        logger.error("Failed to fetch video info (%s); proceeding without metadata", kind.value)
        return VideoMetadata.unknown()

    # ------------------------------------------------------------------
    # Provider delegation (safe boundary)
    # ------------------------------------------------------------------

    @staticmethod
    async def _fetch(provider: MetadataProvider, url: str) -> dict[str, Any]:
        """Call the provider and ensure only our exceptions escape."""
        try:
            info = await provider.fetch_info(url)
        except Yt2Mp3Error:
            raise
        except Exception as exc:
            raise MetadataExtractionError(
                f"Unexpected provider error: {exc}",
            ) from exc
        if not isinstance(info, dict):
            raise MetadataExtractionError(
                f"{provider.name} returned an unexpected data structure.",
            )
        return info

    # ------------------------------------------------------------------
    # Raw-dict → domain-model parser (pure)
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_metadata(info: dict[str, Any]) -> VideoMetadata:
        """Convert a raw info dict into a :class:`VideoMetadata`."""
        raw_duration = info.get("duration")
        try:
            duration: int | None = (
                int(raw_duration) if raw_duration is not None else None
            )
        except (TypeError, ValueError):
            duration = None
        title = info.get("title") or info.get("fulltitle") or DEFAULT_TITLE
        uploader = info.get("uploader") or info.get("channel") or ""
        return VideoMetadata(
            title=str(title),
            uploader=str(uploader),
            id=str(info.get("id") or ""),
            duration=duration,
        )
