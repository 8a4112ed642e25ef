"""Infrastructure: locate (or fetch) the yt-dlp executable.

Resolution order
----------------
1. The explicitly configured path (``YTDLP_PATH``), when executable.
2. A system-wide ``yt-dlp`` that answers ``--version``.
3. A previously vendored copy under the binaries directory.
4. An on-demand download of the latest release into that directory.

The first successful answer is memoized on the locator instance for the
rest of the process lifetime.  Concurrent first calls are serialized:
the first walks the order (downloading if needed) and the rest reuse
its answer.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import platform
import tempfile
from pathlib import Path

import httpx

from yt2mp3.exceptions import ExtractorNotFoundError, append_ytdlp_upgrade_suggestion
from yt2mp3.infra.process import run_capture

logger = logging.getLogger(__name__)

RELEASE_URL = "https://github.com/yt-dlp/yt-dlp/releases/latest/download/{asset}"
SYSTEM_COMMAND = "yt-dlp"
DOWNLOAD_TIMEOUT = 60.0


def vendored_binary_name() -> str:
    """File name of the vendored executable on this platform."""
    return "yt-dlp.exe" if platform.system().lower() == "windows" else "yt-dlp"


def release_asset_name() -> str:
    """Release asset matching the current platform."""
    system = platform.system().lower()
    if system == "windows":
        return "yt-dlp.exe"
    if system == "darwin":
        return "yt-dlp_macos"
    return "yt-dlp"


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


class ExtractorLocator:
    """Lazily resolved, process-wide yt-dlp location.

    Parameters
    ----------
    configured_path:
        Explicit executable path; skipped when missing or not executable.
    bin_dir:
        Directory holding the vendored copy.
    allow_download:
        Whether step 4 (network download) may run.
    transport:
        Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        *,
        configured_path: str | None = None,
        bin_dir: Path = Path("bin"),
        allow_download: bool = True,
        system_command: str = SYSTEM_COMMAND,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._configured_path = configured_path
        self._bin_dir = Path(bin_dir)
        self._allow_download = allow_download
        self._system_command = system_command
        self._transport = transport
        self._lock = asyncio.Lock()
        self._path: str | None = None

    @property
    def vendored_path(self) -> Path:
        return self._bin_dir / vendored_binary_name()

    @property
    def cached(self) -> str | None:
        """The memoized path, without probing."""
        return self._path

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve(self) -> str | None:
        """Return a usable yt-dlp command, or ``None`` when there is none."""
        if self._path is not None:
            return self._path
        async with self._lock:
            if self._path is None:
                found = await self.probe(allow_download=self._allow_download)
                if found is None:
                    return None
                self._path = found
                logger.info("Using yt-dlp at %s", found)
            return self._path

    async def require(self) -> str:
        """Like :meth:`resolve` but raises :class:`ExtractorNotFoundError`."""
        path = await self.resolve()
        if path is None:
            raise ExtractorNotFoundError(
                "yt-dlp is not available and could not be downloaded.",
                hint=append_ytdlp_upgrade_suggestion(
                    f"Install yt-dlp, set YTDLP_PATH, or place it at {self.vendored_path}.",
                ),
            )
        return path

    async def probe(self, *, allow_download: bool = False) -> str | None:
        """Walk the resolution order once, without touching the cache."""
        if self._configured_path:
            if _is_executable(Path(self._configured_path)):
                return self._configured_path
            logger.warning("Configured yt-dlp path is not executable: %s", self._configured_path)

        if await self._system_works():
            return self._system_command

        if _is_executable(self.vendored_path):
            return str(self.vendored_path)

        if allow_download:
            try:
                path = await asyncio.to_thread(self.download)
            except (httpx.HTTPError, OSError) as exc:
                logger.warning("Could not download yt-dlp: %s", exc)
                return None
            return str(path)
        return None

    def download(self) -> Path:
        """Fetch the latest release into the vendored location (blocking).

        Raises ``httpx.HTTPError`` or ``OSError`` on failure.  Each call
        writes its own temporary file, so a partial file is never left at
        the final path and concurrent downloads do not clobber each other.
        """
        target = self.vendored_path
        url = RELEASE_URL.format(asset=release_asset_name())
        self._bin_dir.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(dir=self._bin_dir, prefix=target.name + ".", suffix=".part")
        partial = Path(name)

        logger.info("Downloading yt-dlp from %s to %s", url, target)
        try:
            with httpx.Client(
                follow_redirects=True,
                timeout=DOWNLOAD_TIMEOUT,
                transport=self._transport,
            ) as client:
                with client.stream("GET", url) as response:
                    response.raise_for_status()
                    with os.fdopen(fd, "wb") as handle:
                        fd = -1
                        for chunk in response.iter_bytes():
                            handle.write(chunk)
            partial.chmod(0o755)
            os.replace(partial, target)
        except BaseException:
            if fd != -1:
                os.close(fd)
            with contextlib.suppress(OSError):
                partial.unlink()
            raise
        logger.info("yt-dlp downloaded to %s", target)
        return target

    # ------------------------------------------------------------------
    # Probes
    # ------------------------------------------------------------------

    async def _system_works(self) -> bool:
        try:
            run = await run_capture([self._system_command, "--version"], name="yt-dlp --version")
        except OSError:
            return False
        return run.ok
