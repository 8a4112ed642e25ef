"""Exit-code constants used by the CLI layer.

Every exit path of ``yt2mp3`` uses one of these values.
"""

from __future__ import annotations

SUCCESS: int = 0
"""Command completed, or the server shut down cleanly."""

GENERAL_ERROR: int = 1
"""A known Yt2Mp3Error was caught, or a doctor check failed."""

UNEXPECTED_ERROR: int = 2
"""An unhandled exception escaped all known error boundaries."""

KEYBOARD_INTERRUPT: int = 130
"""Ctrl+C.  Follows POSIX convention (128 + SIGINT=2)."""
