"""Process-wide logging setup.

Rich renders log records when it is installed; otherwise a plain
``StreamHandler`` on stderr is used so the service still starts.
"""

from __future__ import annotations

import logging
import sys

PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def _rich_handler() -> logging.Handler | None:
    try:
        from rich.console import Console
        from rich.logging import RichHandler
    except ModuleNotFoundError:
        return None
    return RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        show_path=False,
        markup=False,
    )


def configure_logging(level: str | int = "INFO") -> logging.Handler:
    """Install a single handler on the root logger and return it.

    Calling this again replaces the handler installed by a previous call.
    Unknown level names fall back to ``INFO``.
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.strip().upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO
    else:
        resolved = level

    handler = _rich_handler()
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    else:
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    handler.set_name("yt2mp3")

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == "yt2mp3":
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(resolved)
    return handler
