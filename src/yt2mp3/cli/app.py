"""CLI application entry point and command routing for yt2mp3.

This module is the error boundary for everything that runs outside a
request: startup, diagnostics and the extractor download.  It catches
:class:`~yt2mp3.exceptions.Yt2Mp3Error`, ``KeyboardInterrupt`` and any
unexpected ``Exception``, rendering user-friendly messages and
returning well-defined exit codes.  Per-request errors are handled by
the web layer.

Commands
--------
* ``yt2mp3 serve``            run the HTTP service
* ``yt2mp3 doctor``           environment diagnostics
* ``yt2mp3 fetch-extractor``  download (or locate) the yt-dlp executable
* ``yt2mp3 --version``
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import TYPE_CHECKING

from yt2mp3.cli import exit_codes
from yt2mp3.cli.console import console
from yt2mp3.exceptions import Yt2Mp3Error
from yt2mp3.version import __version__

if TYPE_CHECKING:
    from yt2mp3.config import Settings


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    """Construct the top-level argument parser."""
    parser = argparse.ArgumentParser(
        prog="yt2mp3",
        description="YouTube to MP3 streaming conversion service.",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = commands.add_parser("serve", help="Run the HTTP service.")
    serve.add_argument("--host", default=None, help="Bind address (default: settings).")
    serve.add_argument("--port", type=int, default=None, help="Listen port (default: settings).")
    serve.add_argument(
        "--backend",
        choices=["binary", "library", "api"],
        default=None,
        help="Audio source backend (default: settings).",
    )
    serve.add_argument("--log-level", default=None, help="Logging level (default: settings).")

    commands.add_parser("doctor", help="Check the runtime environment.")

    fetch = commands.add_parser(
        "fetch-extractor",
        help="Download the latest yt-dlp executable into the binaries directory.",
    )
    fetch.add_argument(
        "--force",
        action="store_true",
        help="Download even when a usable yt-dlp is already available.",
    )
    return parser


# ---------------------------------------------------------------------------
# Command dispatch
# ---------------------------------------------------------------------------

def _load_settings(**overrides: object) -> Settings:
    """Environment settings with non-``None`` command-line overrides applied."""
    from yt2mp3.config import Backend, get_settings

    updates = {key: value for key, value in overrides.items() if value is not None}
    if "backend" in updates:
        updates["backend"] = Backend(updates["backend"])
    settings = get_settings()
    return settings.model_copy(update=updates) if updates else settings


def _handle_serve(args: argparse.Namespace) -> int:
    """Start uvicorn with the configured application."""
    try:
        import uvicorn
    except ModuleNotFoundError as exc:
        from yt2mp3.exceptions import EnvironmentError

        raise EnvironmentError("uvicorn is not installed. Install with: pip install uvicorn") from exc

    from yt2mp3.utils.logging import configure_logging
    from yt2mp3.web.app import create_app

    settings = _load_settings(
        host=args.host,
        port=args.port,
        backend=args.backend,
        log_level=args.log_level,
    )
    configure_logging(settings.log_level)
    app = create_app(settings)

    console.print(
        f"[bold]yt2mp3 {__version__}[/bold] listening on "
        f"http://{settings.host}:{settings.port} (backend: {settings.backend.value})"
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
    return exit_codes.SUCCESS


def _handle_doctor() -> int:
    """Dispatch the ``doctor`` diagnostics command."""
    from yt2mp3.cli.doctor import run_doctor

    return run_doctor(_load_settings())


def _handle_fetch_extractor(args: argparse.Namespace) -> int:
    """Make sure a yt-dlp executable is available, downloading it if needed."""
    from yt2mp3.infra.extractor_locator import ExtractorLocator

    settings = _load_settings()
    locator = ExtractorLocator(
        configured_path=settings.ytdlp_path,
        bin_dir=settings.bin_dir,
        allow_download=True,
    )
    if args.force:
        import httpx

        from yt2mp3.exceptions import ExtractorNotFoundError

        try:
            path = str(locator.download())
        except (httpx.HTTPError, OSError) as exc:
            raise ExtractorNotFoundError(
                f"Could not download yt-dlp: {exc}",
                hint=f"Check network access or place the executable at {locator.vendored_path}.",
            ) from exc
    else:
        path = asyncio.run(locator.require())
    console.print(f"[bold green]yt-dlp ready:[/bold green] {path}")
    return exit_codes.SUCCESS


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    """Run the yt2mp3 CLI.

    Parameters
    ----------
    argv:
        Explicit argument list.  When ``None`` (default), ``sys.argv[1:]``
        is used.  Accepting *argv* enables deterministic testing without
        monkeypatching.

    Returns
    -------
    int
        OS process exit code.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return exit_codes.SUCCESS
    if args.command == "serve":
        return _handle_serve(args)
    if args.command == "doctor":
        return _handle_doctor()
    return _handle_fetch_extractor(args)


# ---------------------------------------------------------------------------
# Script-level error boundary
# ---------------------------------------------------------------------------

def cli() -> None:
    """Top-level error boundary invoked by the console-script entry point.

    This function wraps :func:`main` and guarantees the process never
    exits with a raw stack trace during normal usage.
    """
    try:
        code = main()
        sys.exit(code)
    except Yt2Mp3Error as exc:
        console.error(exc)
        sys.exit(exit_codes.GENERAL_ERROR)
    except KeyboardInterrupt:
        console.print("\n[yellow]Aborted by user.[/yellow]")
        sys.exit(exit_codes.KEYBOARD_INTERRUPT)
    except Exception as exc:  # noqa: BLE001
        console.print(
            "[bold red]Unexpected error.[/bold red] "
            "Please report this issue.\n"
            f"  {type(exc).__name__}: {exc}"
        )
        sys.exit(exit_codes.UNEXPECTED_ERROR)
