"""Tests for subprocess handles (infra/process.py).

Children are real ``sys.executable -c`` interpreters, so these tests
exercise actual pipes, signals and reaping.  No network, no ffmpeg, no
yt-dlp.

Coverage:
* stdout is relayed and stdin can be fed and closed.
* stderr is drained into a bounded tail; the last non-empty line is
  the error detail.
* ``kill`` is idempotent, before and after exit.
* ``run_capture`` reports output and kills its child when cancelled.
* A conversion whose client goes away mid-stream leaves no live child.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

from conftest import VIDEO_URL, FakeMetadataProvider
from yt2mp3.core.metadata_service import MetadataService
from yt2mp3.core.models import ConversionRequest, TerminalAction, VideoMetadata
from yt2mp3.core.pipeline import ConversionPipeline
from yt2mp3.exceptions import ClientAbortError
from yt2mp3.infra.process import STDERR_TAIL_LINES, ManagedProcess, run_capture
from yt2mp3.infra.ytdlp_binary import ProcessAudioSource

WAIT_TIMEOUT = 10.0

CAT = (
    "import sys\n"
    "while True:\n"
    "    data = sys.stdin.buffer.read1(4096)\n"
    "    if not data:\n"
    "        break\n"
    "    sys.stdout.buffer.write(data)\n"
    "    sys.stdout.buffer.flush()\n"
)

ENDLESS_WRITER = (
    "import sys, time\n"
    "while True:\n"
    "    sys.stdout.buffer.write(b'x' * 4096)\n"
    "    sys.stdout.buffer.flush()\n"
    "    time.sleep(0.01)\n"
)

SLEEPER = "import time; time.sleep(30)"


def _python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


async def _read_all(process: ManagedProcess) -> bytes:
    parts: list[bytes] = []
    while True:
        chunk = await process.read(4096)
        if not chunk:
            return b"".join(parts)
        parts.append(chunk)


# ---------------------------------------------------------------------------
# ManagedProcess I/O
# ---------------------------------------------------------------------------

class TestManagedProcessIO:
    def test_reads_stdout_until_exit(self) -> None:
        async def scenario() -> tuple[bytes, int]:
            process = await ManagedProcess.spawn(
                _python("import sys; sys.stdout.buffer.write(b'hello')"), name="echo",
            )
            data = await _read_all(process)
            return data, await process.wait()

        assert asyncio.run(scenario()) == (b"hello", 0)

    def test_input_is_relayed(self) -> None:
        async def scenario() -> bytes:
            process = await ManagedProcess.spawn(_python(CAT), name="cat", stdin=True)
            await process.write(b"abc")
            process.close_input()
            data = await _read_all(process)
            await process.wait()
            return data

        assert asyncio.run(scenario()) == b"abc"

    def test_write_after_close_input_raises_broken_pipe(self) -> None:
        async def scenario() -> None:
            process = await ManagedProcess.spawn(_python(CAT), name="cat", stdin=True)
            process.close_input()
            process.close_input()
            try:
                with pytest.raises(BrokenPipeError, match="cat input is closed"):
                    await process.write(b"late")
            finally:
                process.kill()
                await process.wait()

        asyncio.run(scenario())

    def test_write_without_stdin_raises_broken_pipe(self) -> None:
        async def scenario() -> None:
            process = await ManagedProcess.spawn(_python("pass"), name="quiet")
            with pytest.raises(BrokenPipeError):
                await process.write(b"data")
            await process.wait()

        asyncio.run(scenario())

    def test_missing_program_raises_os_error(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            asyncio.run(ManagedProcess.spawn([str(tmp_path / "no-such-tool")], name="missing"))


# ---------------------------------------------------------------------------
# stderr tail
# ---------------------------------------------------------------------------

class TestStderrTail:
    def test_last_error_line_skips_blank_lines(self) -> None:
        code = "import sys; sys.stderr.write('first\\nERROR: Video unavailable\\n\\n   \\n'); sys.exit(3)"

        async def scenario() -> ManagedProcess:
            process = await ManagedProcess.spawn(_python(code), name="failing")
            assert await process.wait() == 3
            return process

        process = asyncio.run(scenario())

        assert process.returncode == 3
        assert process.stderr_tail == ("first", "ERROR: Video unavailable")
        assert process.last_error_line == "ERROR: Video unavailable"

    def test_tail_is_bounded(self) -> None:
        code = "import sys\nfor i in range(50):\n    sys.stderr.write(f'line {i}\\n')\n"

        async def scenario() -> ManagedProcess:
            process = await ManagedProcess.spawn(_python(code), name="chatty")
            await process.wait()
            return process

        tail = asyncio.run(scenario()).stderr_tail

        assert len(tail) == STDERR_TAIL_LINES
        assert tail[0] == f"line {50 - STDERR_TAIL_LINES}"
        assert tail[-1] == "line 49"

    def test_silent_child_has_no_error_line(self) -> None:
        async def scenario() -> ManagedProcess:
            process = await ManagedProcess.spawn(_python("pass"), name="quiet")
            await process.wait()
            return process

        process = asyncio.run(scenario())
        assert process.stderr_tail == ()
        assert process.last_error_line is None


# ---------------------------------------------------------------------------
# kill
# ---------------------------------------------------------------------------

class TestKill:
    def test_kill_is_idempotent(self) -> None:
        async def scenario() -> int:
            process = await ManagedProcess.spawn(_python(SLEEPER), name="sleeper")
            process.kill()
            process.kill()
            code = await asyncio.wait_for(process.wait(), WAIT_TIMEOUT)
            process.kill()
            return code

        assert asyncio.run(scenario()) != 0

    def test_kill_after_exit_is_noop(self) -> None:
        async def scenario() -> int | None:
            process = await ManagedProcess.spawn(_python("pass"), name="quick")
            await process.wait()
            process.kill()
            return process.returncode

        assert asyncio.run(scenario()) == 0


# ---------------------------------------------------------------------------
# run_capture
# ---------------------------------------------------------------------------

class TestRunCapture:
    def test_captures_output_and_status(self) -> None:
        code = "import sys; sys.stdout.write('2024.08.06'); sys.stderr.write('warn\\nboom\\n'); sys.exit(2)"
        run = asyncio.run(run_capture(_python(code), name="capture"))

        assert run.returncode == 2
        assert run.ok is False
        assert run.stdout == b"2024.08.06"
        assert run.last_error_line == "boom"

    def test_success(self) -> None:
        run = asyncio.run(run_capture(_python("print('ok')"), name="capture"))
        assert run.ok is True
        assert run.stdout.strip() == b"ok"
        assert run.last_error_line is None

    def test_cancel_kills_child(self, monkeypatch: pytest.MonkeyPatch) -> None:
        spawned: list[asyncio.subprocess.Process] = []
        real_exec = asyncio.create_subprocess_exec

        async def recording_exec(*args: object, **kwargs: object) -> asyncio.subprocess.Process:
            proc = await real_exec(*args, **kwargs)
            spawned.append(proc)
            return proc

        monkeypatch.setattr(asyncio, "create_subprocess_exec", recording_exec)

        async def scenario() -> int | None:
            task = asyncio.create_task(run_capture(_python(SLEEPER), name="sleeper"))
            while not spawned:
                await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return await asyncio.wait_for(spawned[0].wait(), WAIT_TIMEOUT)

        code = asyncio.run(scenario())
        assert code is not None
        assert code != 0


# ---------------------------------------------------------------------------
# Pipeline teardown with real children
# ---------------------------------------------------------------------------

class WriterSourceProvider:
    """Source backend whose audio is an endless child writing to stdout."""

    name = "writer"

    def __init__(self) -> None:
        self.process: ManagedProcess | None = None

    async def open(self, url: str, bitrate: int) -> ProcessAudioSource:
        self.process = await ManagedProcess.spawn(_python(ENDLESS_WRITER), name="writer")
        return ProcessAudioSource(self.process)


class CatEncoder:
    """Encoder that copies its input to its output unchanged."""

    def __init__(self) -> None:
        self.process: ManagedProcess | None = None

    async def start(
        self,
        *,
        bitrate: int,
        metadata: VideoMetadata,
        format_hint: str | None = None,
    ) -> ManagedProcess:
        self.process = await ManagedProcess.spawn(_python(CAT), name="cat", stdin=True)
        return self.process


class TestPipelineTeardown:
    def test_closing_body_reaps_both_children(self) -> None:
        provider = WriterSourceProvider()
        encoder = CatEncoder()
        pipeline = ConversionPipeline(
            ConversionRequest(url=VIDEO_URL, bitrate=128),
            metadata_service=MetadataService(FakeMetadataProvider()),
            source_provider=provider,
            encoder=encoder,
        )

        async def scenario() -> tuple[int, int]:
            await pipeline.open()
            body = pipeline.body()
            first = await body.__anext__()
            assert first.startswith(b"x")
            await body.aclose()
            assert provider.process is not None
            assert encoder.process is not None
            return (
                await asyncio.wait_for(provider.process.wait(), WAIT_TIMEOUT),
                await asyncio.wait_for(encoder.process.wait(), WAIT_TIMEOUT),
            )

        source_code, encoder_code = asyncio.run(scenario())

        assert provider.process is not None and provider.process.returncode == source_code
        assert encoder.process is not None and encoder.process.returncode == encoder_code
        assert source_code != 0
        assert pipeline.state.action is TerminalAction.SILENT
        assert isinstance(pipeline.state.error, ClientAbortError)
