"""Shared pytest fixtures and fakes for the yt2mp3 test suite.

Guidelines
----------
* No internet access in any test.
* No real child processes: yt-dlp and ffmpeg are faked at the
  protocol seams (``AudioSource``, ``EncoderProcess``).
* Core tests must be pure — no side effects.
* Tests must not depend on OS state or the caller's environment.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import pytest

from yt2mp3.config import Settings
from yt2mp3.core.metadata_service import MetadataService
from yt2mp3.core.models import VideoMetadata
from yt2mp3.exceptions import Yt2Mp3Error

VIDEO_ID = "dQw4w9WgXcQ"
VIDEO_URL = f"https://www.youtube.com/watch?v={VIDEO_ID}"

SAMPLE_INFO: dict[str, Any] = {
    "id": VIDEO_ID,
    "title": "Never Gonna Give You Up",
    "uploader": "Rick Astley",
    "duration": 213,
}


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

class FakeMetadataProvider:
    """Returns *info* or raises *error*; counts calls."""

    def __init__(self, info: dict[str, Any] | None = None, *, error: Exception | None = None, name: str = "fake") -> None:
        self.name = name
        self.info = SAMPLE_INFO if info is None else info
        self.error = error
        self.calls: list[str] = []

    async def fetch_info(self, url: str) -> dict[str, Any]:
        self.calls.append(url)
        if self.error is not None:
            raise self.error
        return self.info


# ---------------------------------------------------------------------------
# Audio source
# ---------------------------------------------------------------------------

class FakeSource:
    """In-memory :class:`AudioSource`.

    Yields *chunks*, then waits for *gate* (when given) and raises
    *error* (when given).  ``hang=True`` never ends the stream.
    """

    def __init__(
        self,
        chunks: list[bytes] | None = None,
        *,
        error: Yt2Mp3Error | None = None,
        finish_error: Yt2Mp3Error | None = None,
        gate: asyncio.Event | None = None,
        hang: bool = False,
        passthrough: bool = False,
        format_hint: str | None = None,
        content_length: int | None = None,
    ) -> None:
        self._chunks = list(chunks if chunks is not None else [b"audio-1", b"audio-2"])
        self._error = error
        self._finish_error = finish_error
        self.gate = gate
        self._hang = hang
        self.passthrough = passthrough
        self.format_hint = format_hint
        self.content_length = content_length
        self.terminated = 0
        self.finished = False

    async def chunks(self, size: int) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            yield chunk
        if self.gate is not None:
            await self.gate.wait()
        if self._hang:
            await asyncio.Event().wait()
        if self._error is not None:
            raise self._error

    async def finish(self) -> None:
        self.finished = True
        if self._finish_error is not None:
            raise self._finish_error

    def terminate(self) -> None:
        self.terminated += 1


class FakeSourceProvider:
    name = "fake source"

    def __init__(self, source: FakeSource | None = None, *, error: Exception | None = None, hang: bool = False) -> None:
        self.source = source if source is not None else FakeSource()
        self.error = error
        self.hang = hang
        self.opened: list[tuple[str, int]] = []

    async def open(self, url: str, bitrate: int) -> FakeSource:
        self.opened.append((url, bitrate))
        if self.hang:
            await asyncio.Event().wait()
        if self.error is not None:
            raise self.error
        return self.source


# ---------------------------------------------------------------------------
# Encoder
# ---------------------------------------------------------------------------

_EOF = object()


class FakeEncoderProcess:
    """Echoes every written chunk (prefixed) to its output.

    ``produce_output=False`` swallows input, like an encoder fed an
    empty or undecodable stream.
    """

    def __init__(self, *, exit_code: int = 0, produce_output: bool = True, error_line: str | None = None) -> None:
        self._exit_code = exit_code
        self._produce_output = produce_output
        self._error_line = error_line
        self._output: asyncio.Queue[object] = asyncio.Queue()
        self._exited = asyncio.Event()
        self._eof = False
        self.returncode: int | None = None
        self.written: list[bytes] = []
        self.input_closed = False
        self.killed = 0

    async def write(self, data: bytes) -> None:
        if self.input_closed or self.returncode is not None:
            raise BrokenPipeError
        self.written.append(data)
        if self._produce_output:
            self._output.put_nowait(b"mp3:" + data)

    def close_input(self) -> None:
        if self.input_closed:
            return
        self.input_closed = True
        self._exit(self._exit_code)

    async def read(self, size: int) -> bytes:
        if self._eof:
            return b""
        item = await self._output.get()
        if item is _EOF:
            self._eof = True
            return b""
        assert isinstance(item, bytes)
        return item

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode

    @property
    def last_error_line(self) -> str | None:
        return self._error_line

    def kill(self) -> None:
        self.killed += 1
        self._exit(-9)

    def _exit(self, code: int) -> None:
        if self.returncode is not None:
            return
        self.returncode = code
        self._output.put_nowait(_EOF)
        self._exited.set()


class FakeEncoder:
    def __init__(self, *, error: Exception | None = None, **process_kwargs: Any) -> None:
        self.error = error
        self.process_kwargs = process_kwargs
        self.process: FakeEncoderProcess | None = None
        self.started: list[dict[str, Any]] = []

    async def start(self, *, bitrate: int, metadata: VideoMetadata, format_hint: str | None = None) -> FakeEncoderProcess:
        self.started.append({"bitrate": bitrate, "metadata": metadata, "format_hint": format_hint})
        if self.error is not None:
            raise self.error
        self.process = FakeEncoderProcess(**self.process_kwargs)
        return self.process


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path: Any) -> Settings:
    """Settings isolated from the environment and ``.env`` files."""
    return Settings(_env_file=None, bin_dir=tmp_path / "bin")


@pytest.fixture
def metadata_service() -> MetadataService:
    return MetadataService(FakeMetadataProvider())


@pytest.fixture(autouse=True)
def _reset_console_cache(monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate the module-level console proxy's cached Rich console between tests."""
    from yt2mp3.cli import console as console_module

    monkeypatch.setattr(console_module.console, "_rich", None)
