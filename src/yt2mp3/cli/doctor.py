"""``yt2mp3 doctor`` — environment diagnostics command.

Gathers system information and renders a Rich table summarising
whether the runtime environment can serve conversions with the
configured backend.

This module lives in the CLI layer — it may import from ``infra``
and ``core``, and it renders via Rich.  No business logic resides
here; it purely collects and displays diagnostic data.
"""

from __future__ import annotations

import asyncio
import platform
import sys

from yt2mp3.cli import exit_codes
from yt2mp3.cli.console import console
from yt2mp3.config import Backend, Settings, get_settings
from yt2mp3.infra.extractor_locator import ExtractorLocator
from yt2mp3.infra.ffmpeg_detector import detect_ffmpeg
from yt2mp3.version import __version__

OK = "[green]OK[/green]"
WARN = "[yellow]WARN[/yellow]"
FAIL = "[red]FAIL[/red]"


# ---------------------------------------------------------------------------
# Diagnostic collectors
# ---------------------------------------------------------------------------

def _python_version_check() -> tuple[str, str, str]:
    """Return (label, value, status) for the Python version row."""
    version = platform.python_version()
    ok = sys.version_info[:2] >= (3, 10)
    status = OK if ok else "[red]FAIL (>=3.10 required)[/red]"
    return "Python", version, status


def _ytdlp_library_check(settings: Settings) -> tuple[str, str, str]:
    """Return the yt-dlp Python package row.

    Missing is fatal only for the library backend; elsewhere it is
    the metadata fallback.
    """
    missing = FAIL if settings.backend is Backend.LIBRARY else WARN
    try:
        from yt_dlp.version import __version__ as ydl_ver
    except ImportError:
        return "yt-dlp lib", "NOT INSTALLED", missing
    return "yt-dlp lib", ydl_ver, OK


def _ytdlp_binary_check(settings: Settings) -> tuple[str, str, str]:
    """Return the yt-dlp executable row; never downloads."""
    locator = ExtractorLocator(
        configured_path=settings.ytdlp_path,
        bin_dir=settings.bin_dir,
        allow_download=False,
    )
    found = asyncio.run(locator.probe(allow_download=False))
    if found is not None:
        return "yt-dlp bin", found, OK
    if settings.backend is Backend.BINARY and not settings.ytdlp_download:
        return "yt-dlp bin", "not found", FAIL
    return "yt-dlp bin", "not found (downloaded on demand)", WARN


def _ffmpeg_check(settings: Settings) -> tuple[str, str, str]:
    """Return (label, value, status) for the ffmpeg row."""
    status_obj = detect_ffmpeg(settings.ffmpeg_path, bin_dir=settings.bin_dir)
    if status_obj.found:
        path_str = str(status_obj.path) if status_obj.path else "found"
        if status_obj.source:
            path_str = f"{path_str} ({status_obj.source})"
        return "ffmpeg", path_str, OK
    return "ffmpeg", status_obj.version_hint, FAIL


def _backend_check(settings: Settings) -> tuple[str, str, str]:
    if settings.backend is Backend.API and not settings.api_base_url:
        return "backend", "api (YT2MP3_API_BASE_URL unset)", FAIL
    return "backend", settings.backend.value, OK


def _os_check() -> tuple[str, str, str]:
    """Return (label, value, status) for the OS row."""
    system_raw = platform.system()
    system_display = {
        "Windows": "Windows",
        "Linux": "Linux",
        "Darwin": "macOS",
    }.get(system_raw, system_raw)
    value = f"{system_display} {platform.release()} ({platform.machine()})"
    return "OS", value, OK


def _status_plain(status: str) -> str:
    """Convert rich-markup status to plain text."""
    for word in ("FAIL", "WARN", "OK"):
        if word in status:
            return word
    return status


def _print_plain_doctor_table(checks: list[tuple[str, str, str]]) -> None:
    """Render doctor output without Rich."""
    print("\nyt2mp3 doctor", file=sys.stderr)
    print("=" * 64, file=sys.stderr)
    print(f"{'Component':<12} {'Value':<40} {'Status':<8}", file=sys.stderr)
    print("-" * 64, file=sys.stderr)
    for label, value, status in checks:
        print(f"{label:<12} {value:<40} {_status_plain(status):<8}", file=sys.stderr)
    print(file=sys.stderr)


def collect_checks(settings: Settings) -> list[tuple[str, str, str]]:
    return [
        ("yt2mp3", __version__, OK),
        _python_version_check(),
        _backend_check(settings),
        _ytdlp_library_check(settings),
        _ytdlp_binary_check(settings),
        _ffmpeg_check(settings),
        _os_check(),
    ]


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def run_doctor(settings: Settings | None = None) -> int:
    """Execute all diagnostic checks and render a summary table.

    Returns
    -------
    int
        :data:`exit_codes.SUCCESS` when all critical checks pass,
        :data:`exit_codes.GENERAL_ERROR` if a critical check fails.
    """
    settings = settings or get_settings()
    checks = collect_checks(settings)
    has_failure = any("FAIL" in status for _, _, status in checks)

    rich_available = True
    try:
        from rich.table import Table
    except ModuleNotFoundError:
        rich_available = False

    if rich_available:
        table = Table(
            title="yt2mp3 doctor",
            show_header=True,
            header_style="bold cyan",
            border_style="dim",
        )
        table.add_column("Component", style="bold", min_width=12)
        table.add_column("Value", min_width=20)
        table.add_column("Status", justify="center", min_width=8)
        for label, value, status in checks:
            table.add_row(label, value, status)
        console.print()
        console.print(table)
        console.print()
    else:
        _print_plain_doctor_table(checks)

    ffmpeg_status = detect_ffmpeg(settings.ffmpeg_path, bin_dir=settings.bin_dir)
    if not ffmpeg_status.found and ffmpeg_status.install_commands:
        console.print("ffmpeg is not installed.")
        console.print("Install using one of the following commands:\n")
        for cmd in ffmpeg_status.install_commands:
            console.print(f"  {cmd}")
        console.print()

    if has_failure:
        console.print("[bold red]Some checks failed.[/bold red]" if rich_available else "Some checks failed.")
        return exit_codes.GENERAL_ERROR

    console.print("[bold green]All checks passed.[/bold green]" if rich_available else "All checks passed.")
    return exit_codes.SUCCESS
