"""yt2mp3 — stream YouTube audio to the browser as an MP3 download.

An HTTP service that resolves a video's audio stream through yt-dlp,
transcodes it with ffmpeg and relays the bytes straight to the client.
"""

from yt2mp3.version import __version__

__all__: list[str] = ["__version__"]
