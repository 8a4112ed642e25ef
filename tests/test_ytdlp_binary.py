"""Tests for the local-binary backend (infra/ytdlp_args.py, infra/ytdlp_binary.py).

Process spawning is patched — no yt-dlp executable is needed.
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import SAMPLE_INFO, VIDEO_URL
from yt2mp3.exceptions import (
    AuthRequiredError,
    ExtractorNotFoundError,
    MetadataExtractionError,
    RateLimitedError,
    SourceUnavailableError,
)
from yt2mp3.infra import ytdlp_binary as module
from yt2mp3.infra.cookies import CookieJar
from yt2mp3.infra.process import CapturedRun
from yt2mp3.infra.ytdlp_args import metadata_command, split_args, stream_command
from yt2mp3.infra.ytdlp_binary import (
    ProcessAudioSource,
    YtDlpBinaryMetadataProvider,
    YtDlpBinarySourceProvider,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _locator(path: str | None = "/usr/bin/yt-dlp") -> MagicMock:
    locator = MagicMock()
    locator.resolve = AsyncMock(return_value=path)
    if path is None:
        locator.require = AsyncMock(side_effect=ExtractorNotFoundError("yt-dlp is not available"))
    else:
        locator.require = AsyncMock(return_value=path)
    return locator


def _capture(monkeypatch: pytest.MonkeyPatch, run: CapturedRun) -> list[list[str]]:
    calls: list[list[str]] = []

    async def fake_run_capture(argv: list[str], *, name: str) -> CapturedRun:
        calls.append(list(argv))
        return run

    monkeypatch.setattr(module, "run_capture", fake_run_capture)
    return calls


def _process(*, chunks: list[bytes] | None = None, code: int = 0, error_line: str | None = None) -> MagicMock:
    process = MagicMock()
    process.read = AsyncMock(side_effect=[*(chunks or []), b""])
    process.wait = AsyncMock(return_value=code)
    process.last_error_line = error_line
    return process


# ---------------------------------------------------------------------------
# Argument construction
# ---------------------------------------------------------------------------

class TestArgs:
    def test_split_honours_quotes(self) -> None:
        raw = '--extractor-args "youtube:player_client=web,android" --force-ipv4'
        assert split_args(raw) == ["--extractor-args", "youtube:player_client=web,android", "--force-ipv4"]

    def test_split_unbalanced_quotes_falls_back(self) -> None:
        assert split_args('--proxy "socks5://x') == ["--proxy", '"socks5://x']

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_split_empty(self, raw: str | None) -> None:
        assert split_args(raw) == []

    def test_metadata_command(self) -> None:
        argv = metadata_command("yt-dlp", VIDEO_URL, cookie_args=["--cookies", "c.txt"], extra_args=["--x"])
        assert argv[:2] == ["yt-dlp", "-J"]
        assert "--no-playlist" in argv
        assert argv[-3:] == ["c.txt", "--x", VIDEO_URL]

    def test_stream_command_writes_to_stdout(self) -> None:
        argv = stream_command("yt-dlp", VIDEO_URL)
        assert argv[argv.index("-o") + 1] == "-"
        assert argv[argv.index("-f") + 1] == "bestaudio/best"
        assert argv[-1] == VIDEO_URL


# ---------------------------------------------------------------------------
# Metadata provider
# ---------------------------------------------------------------------------

class TestMetadataProvider:
    def test_parses_json(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls = _capture(monkeypatch, CapturedRun(0, json.dumps(SAMPLE_INFO).encode(), ""))
        provider = YtDlpBinaryMetadataProvider(_locator(), extra_args=["--force-ipv4"])

        info = asyncio.run(provider.fetch_info(VIDEO_URL))

        assert info == SAMPLE_INFO
        assert calls[0][0] == "/usr/bin/yt-dlp"
        assert "--force-ipv4" in calls[0]

    def test_failure_carries_stderr(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _capture(monkeypatch, CapturedRun(1, b"", "WARNING: x\nERROR: [youtube] abc: Private video\n"))
        provider = YtDlpBinaryMetadataProvider(_locator())
        with pytest.raises(MetadataExtractionError, match="Private video"):
            asyncio.run(provider.fetch_info(VIDEO_URL))

    def test_failure_without_stderr(self, monkeypatch: pytest.MonkeyPatch) -> None:
        _capture(monkeypatch, CapturedRun(2, b"", ""))
        provider = YtDlpBinaryMetadataProvider(_locator())
        with pytest.raises(MetadataExtractionError, match="code 2"):
            asyncio.run(provider.fetch_info(VIDEO_URL))

    @pytest.mark.parametrize("stdout", [b"not json", b"[1, 2]"])
    def test_bad_output(self, monkeypatch: pytest.MonkeyPatch, stdout: bytes) -> None:
        _capture(monkeypatch, CapturedRun(0, stdout, ""))
        provider = YtDlpBinaryMetadataProvider(_locator())
        with pytest.raises(MetadataExtractionError):
            asyncio.run(provider.fetch_info(VIDEO_URL))

    def test_unavailable_binary(self) -> None:
        provider = YtDlpBinaryMetadataProvider(_locator(None))
        with pytest.raises(MetadataExtractionError, match="unavailable"):
            asyncio.run(provider.fetch_info(VIDEO_URL))

    def test_spawn_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def broken(argv: list[str], *, name: str) -> CapturedRun:
            raise PermissionError("denied")

        monkeypatch.setattr(module, "run_capture", broken)
        provider = YtDlpBinaryMetadataProvider(_locator())
        with pytest.raises(MetadataExtractionError, match="could not be started"):
            asyncio.run(provider.fetch_info(VIDEO_URL))

    def test_uses_metadata_cookies(self, monkeypatch: pytest.MonkeyPatch) -> None:
        calls = _capture(monkeypatch, CapturedRun(0, b"{}", ""))
        cookies = MagicMock(spec=CookieJar)
        cookies.args.return_value = ["--cookies", "jar.txt"]
        provider = YtDlpBinaryMetadataProvider(_locator(), cookies=cookies)

        asyncio.run(provider.fetch_info(VIDEO_URL))

        cookies.args.assert_called_once_with(for_metadata=True)
        assert "jar.txt" in calls[0]


# ---------------------------------------------------------------------------
# Audio source
# ---------------------------------------------------------------------------

class TestProcessAudioSource:
    def test_chunks_until_eof(self) -> None:
        source = ProcessAudioSource(_process(chunks=[b"a", b"b"]))

        async def scenario() -> list[bytes]:
            return [chunk async for chunk in source.chunks(1024)]

        assert asyncio.run(scenario()) == [b"a", b"b"]
        assert source.passthrough is False
        assert source.content_length is None

    def test_finish_ok(self) -> None:
        asyncio.run(ProcessAudioSource(_process()).finish())

    @pytest.mark.parametrize(
        ("line", "error"),
        [
            ("ERROR: Sign in to confirm you're not a bot", AuthRequiredError),
            ("ERROR: HTTP Error 429: Too Many Requests", RateLimitedError),
            ("ERROR: Video unavailable", SourceUnavailableError),
            (None, SourceUnavailableError),
        ],
    )
    def test_finish_classifies_exit(self, line: str | None, error: type[Exception]) -> None:
        source = ProcessAudioSource(_process(code=1, error_line=line))
        with pytest.raises(error):
            asyncio.run(source.finish())

    def test_terminated_exit_is_quiet(self) -> None:
        process = _process(code=-9)
        source = ProcessAudioSource(process)
        source.terminate()
        asyncio.run(source.finish())
        process.kill.assert_called_once()


class TestSourceProvider:
    def test_spawns_stream_command(self, monkeypatch: pytest.MonkeyPatch) -> None:
        spawn = AsyncMock(return_value=_process())
        monkeypatch.setattr(module.ManagedProcess, "spawn", spawn)
        provider = YtDlpBinarySourceProvider(_locator(), extra_args=["--force-ipv4"])

        source = asyncio.run(provider.open(VIDEO_URL, 320))

        assert isinstance(source, ProcessAudioSource)
        argv = spawn.call_args.args[0]
        assert argv[0] == "/usr/bin/yt-dlp"
        assert "--force-ipv4" in argv
        assert argv[-1] == VIDEO_URL

    def test_spawn_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(module.ManagedProcess, "spawn", AsyncMock(side_effect=FileNotFoundError("yt-dlp")))
        provider = YtDlpBinarySourceProvider(_locator())
        with pytest.raises(SourceUnavailableError, match="failed to start"):
            asyncio.run(provider.open(VIDEO_URL, 320))

    def test_missing_binary(self) -> None:
        provider = YtDlpBinarySourceProvider(_locator(None))
        with pytest.raises(ExtractorNotFoundError):
            asyncio.run(provider.open(VIDEO_URL, 320))
