"""Infrastructure: asyncio subprocess handles.

Every external program (yt-dlp, ffmpeg) runs through this module so
that stderr is always drained and its last lines are kept for error
messages.  An undrained stderr pipe stalls the child once full.

Rules
-----
* No exception mapping here: spawn failures surface as ``OSError`` and
  the calling adapter turns them into typed errors.
* :meth:`ManagedProcess.kill` is idempotent and synchronous.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shlex
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 20


def _last_non_empty(lines: Sequence[str]) -> str | None:
    for line in reversed(lines):
        if line.strip():
            return line.strip()
    return None


# ---------------------------------------------------------------------------
# Long-running processes
# ---------------------------------------------------------------------------

class ManagedProcess:
    """A spawned child with piped stdout and a drained stderr."""

    def __init__(self, proc: asyncio.subprocess.Process, *, name: str) -> None:
        self.name: str = name
        self._proc = proc
        self._stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        self._stderr_task: asyncio.Task[None] | None = None
        if proc.stderr is not None:
            self._stderr_task = asyncio.create_task(self._drain_stderr(proc.stderr))

    @classmethod
    async def spawn(
        cls,
        argv: Sequence[str],
        *,
        name: str,
        stdin: bool = False,
    ) -> ManagedProcess:
        """Start *argv*; raises ``OSError`` when it cannot be executed."""
        logger.debug("Starting %s: %s", name, shlex.join(argv))
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE if stdin else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        return cls(proc, name=name)

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode

    @property
    def stderr_tail(self) -> tuple[str, ...]:
        return tuple(self._stderr_tail)

    @property
    def last_error_line(self) -> str | None:
        """Last non-empty stderr line, the most useful error detail."""
        return _last_non_empty(self._stderr_tail)

    # ------------------------------------------------------------------
    # I/O
    # ------------------------------------------------------------------

    async def read(self, size: int) -> bytes:
        if self._proc.stdout is None:
            return b""
        return await self._proc.stdout.read(size)

    async def write(self, data: bytes) -> None:
        stdin = self._proc.stdin
        if stdin is None or stdin.is_closing():
            raise BrokenPipeError(f"{self.name} input is closed")
        stdin.write(data)
        await stdin.drain()

    def close_input(self) -> None:
        stdin = self._proc.stdin
        if stdin is not None and not stdin.is_closing():
            stdin.close()

    async def wait(self) -> int:
        """Wait for exit; stderr is fully drained before returning."""
        code = await self._proc.wait()
        if self._stderr_task is not None:
            await asyncio.gather(self._stderr_task, return_exceptions=True)
        return code

    def kill(self) -> None:
        """Terminate immediately (SIGKILL).  No-op once the child has exited."""
        if self._proc.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            self._proc.kill()
            logger.debug("Killed %s (pid %s)", self.name, self._proc.pid)

    async def _drain_stderr(self, stream: asyncio.StreamReader) -> None:
        while True:
            try:
                line = await stream.readline()
            except ValueError:
                # Line longer than the reader limit; keep draining raw.
                line = await stream.read(64 * 1024)
            if not line:
                return
            text = line.decode("utf-8", "replace").strip()
            if text:
                self._stderr_tail.append(text)
                logger.debug("[%s] %s", self.name, text)


# ---------------------------------------------------------------------------
# Short-lived captured runs
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class CapturedRun:
    """Outcome of a process run to completion."""

    returncode: int
    stdout: bytes
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def last_error_line(self) -> str | None:
        return _last_non_empty(self.stderr.splitlines())


async def run_capture(argv: Sequence[str], *, name: str) -> CapturedRun:
    """Run *argv* to completion, capturing stdout and stderr.

    The child is killed if the awaiting task is cancelled.  Raises
    ``OSError`` when the program cannot be executed.
    """
    logger.debug("Running %s: %s", name, shlex.join(argv))
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await proc.communicate()
    except asyncio.CancelledError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        raise
    return CapturedRun(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout or b"",
        stderr=(stderr or b"").decode("utf-8", "replace"),
    )
