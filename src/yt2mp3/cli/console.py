"""CLI console helpers with optional Rich support.

Module-level imports of Rich are avoided so bootstrap paths
(``--help``, ``--version``, ``serve`` with plain logging) keep working
when Rich is not installed.  Output always goes to stderr; stdout is
left free for piping.
"""

from __future__ import annotations

import re
import sys
from typing import Any

from yt2mp3.exceptions import EnvironmentError, Yt2Mp3Error

_MARKUP_RE = re.compile(r"\[/?[a-z ]+\]")


def _load_rich_console_class() -> type[Any]:
	"""Return ``rich.console.Console`` class or raise ``EnvironmentError``."""
	try:
		from rich.console import Console
	except ModuleNotFoundError as exc:
		raise EnvironmentError(
			"rich is not installed. Install with: pip install rich",
		) from exc
	return Console


def get_rich_console() -> Any:
	"""Create a Rich console instance targeting stderr."""
	console_class = _load_rich_console_class()
	return console_class(stderr=True)


def strip_markup(text: str) -> str:
	"""Drop simple ``[style]…[/style]`` tags for plain output."""
	return _MARKUP_RE.sub("", text)


class _ConsoleProxy:
	"""Minimal ``print``-compatible proxy with a plain stderr fallback."""

	def __init__(self) -> None:
		self._rich: Any = None

	def print(self, *objects: object) -> None:
		"""Render with Rich when available, else plain stderr print."""
		if self._rich is None:
			try:
				self._rich = get_rich_console()
			except EnvironmentError:
				print(*(strip_markup(o) if isinstance(o, str) else o for o in objects), file=sys.stderr)
				return
		self._rich.print(*objects)

	def error(self, exc: Yt2Mp3Error) -> None:
		"""Render a domain error and its hint."""
		self.print(f"[bold red]Error:[/bold red] {exc}")
		if exc.hint:
			self.print(f"[yellow]Hint:[/yellow] {exc.hint}")


console = _ConsoleProxy()
