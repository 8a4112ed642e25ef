"""Infrastructure: cookie material for sign-in restricted videos.

Cookies come from either an existing Netscape cookie jar on disk or
inline content from the environment (a Netscape jar, or a raw
``Cookie:`` header, optionally base64 encoded).  Inline content is
materialized once into the binaries directory so yt-dlp can read it.

A broken or missing cookie source is logged and ignored: cookies
improve access but are never required.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import threading
from pathlib import Path

from yt2mp3.config import Settings

logger = logging.getLogger(__name__)

NETSCAPE_HEADER = "# Netscape HTTP Cookie File"
COOKIE_DOMAIN = ".youtube.com"
MATERIALIZED_NAME = "cookies.txt"


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def decode_inline(content: str, *, base64_encoded: bool) -> str:
    """Return inline cookie text, decoding base64 when flagged.

    Raises ``ValueError`` for undecodable input.
    """
    if not base64_encoded:
        return content
    try:
        text = base64.b64decode(content.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ValueError(f"cookies are not valid base64 text: {exc}") from exc
    if not text.strip():
        raise ValueError("cookies decoded to an empty value")
    return text


def is_netscape_jar(text: str) -> bool:
    """Whether *text* already is a Netscape cookie jar."""
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith(("# Netscape", "# HTTP Cookie File")):
            return True
        if stripped.startswith("#"):
            continue
        return line.count("\t") >= 6
    return False


def header_to_netscape(header: str, domain: str = COOKIE_DOMAIN) -> str:
    """Convert ``name=value; name2=value2`` header content into a jar."""
    text = header.strip()
    if text.lower().startswith("cookie:"):
        text = text[len("cookie:"):]
    lines = [NETSCAPE_HEADER, ""]
    for part in text.split(";"):
        name, sep, value = part.strip().partition("=")
        if not sep or not name.strip():
            continue
        lines.append("\t".join((domain, "TRUE", "/", "TRUE", "0", name.strip(), value.strip())))
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Cookie jar
# ---------------------------------------------------------------------------

class CookieJar:
    """Resolves the cookie file handed to yt-dlp.

    Parameters
    ----------
    cookies_file:
        Existing Netscape jar; wins over *inline*.
    inline:
        Jar or header text from configuration.
    inline_base64:
        Whether *inline* is base64 encoded.
    bin_dir:
        Where inline content is materialized.
    disabled:
        Never hand cookies out.
    metadata_disabled:
        Do not hand cookies to metadata lookups.
    """

    def __init__(
        self,
        *,
        cookies_file: Path | None = None,
        inline: str | None = None,
        inline_base64: bool = False,
        bin_dir: Path = Path("bin"),
        disabled: bool = False,
        metadata_disabled: bool = False,
    ) -> None:
        self._cookies_file = cookies_file
        self._inline = inline
        self._inline_base64 = inline_base64
        self._bin_dir = Path(bin_dir)
        self._disabled = disabled
        self._metadata_disabled = metadata_disabled
        self._lock = threading.Lock()
        self._resolved: Path | None = None
        self._attempted = False

    @classmethod
    def from_settings(cls, settings: Settings) -> CookieJar:
        return cls(
            cookies_file=settings.cookies_file,
            inline=settings.cookies,
            inline_base64=settings.cookies_base64,
            bin_dir=settings.bin_dir,
            disabled=settings.disable_cookies,
            metadata_disabled=settings.disable_metadata_cookies,
        )

    @property
    def materialized_path(self) -> Path:
        return self._bin_dir / MATERIALIZED_NAME

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def cookiefile(self, *, for_metadata: bool = False) -> Path | None:
        """Return the cookie file to use, or ``None``."""
        if self._disabled or (for_metadata and self._metadata_disabled):
            return None
        with self._lock:
            if not self._attempted:
                self._resolved = self._resolve()
                self._attempted = True
            return self._resolved

    def args(self, *, for_metadata: bool = False) -> list[str]:
        """yt-dlp CLI arguments carrying the cookie file."""
        path = self.cookiefile(for_metadata=for_metadata)
        return ["--cookies", str(path)] if path is not None else []

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _resolve(self) -> Path | None:
        if self._cookies_file is not None:
            if self._cookies_file.is_file():
                return self._cookies_file
            logger.warning("yt-dlp cookies file not found: %s", self._cookies_file)
        if not self._inline:
            return None
        try:
            text = decode_inline(self._inline, base64_encoded=self._inline_base64)
        except ValueError as exc:
            logger.error("Ignoring inline cookies: %s", exc)
            return None
        if not is_netscape_jar(text):
            text = header_to_netscape(text)
        try:
            return self._materialize(text)
        except OSError as exc:
            logger.error("Could not write cookie file %s: %s", self.materialized_path, exc)
            return None

    def _materialize(self, text: str) -> Path:
        target = self.materialized_path
        if target.is_file() and target.read_text(encoding="utf-8") == text:
            return target
        self._bin_dir.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")
        os.chmod(target, 0o600)
        logger.info("Materialized inline cookies to %s", target)
        return target
