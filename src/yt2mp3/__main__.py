"""Allow ``python -m yt2mp3`` invocation.

This module simply delegates to the CLI error-boundary entry point so
that ``python -m yt2mp3`` behaves identically to the ``yt2mp3``
console script.
"""

from __future__ import annotations

from yt2mp3.cli.app import cli

if __name__ == "__main__":
    cli()
