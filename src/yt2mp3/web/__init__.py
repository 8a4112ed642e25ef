"""Web layer — the HTTP surface of the service.

May import from ``core``, ``infra`` and ``utils``; nothing imports from
``web`` except the CLI ``serve`` command.
"""

from yt2mp3.web.app import create_app

__all__: list[str] = ["create_app"]
