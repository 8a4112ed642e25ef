"""Runtime configuration for yt2mp3.

Values come from environment variables (prefix ``YT2MP3_``) or a
``.env`` file.  A handful of settings also accept the bare names the
service has historically been deployed with (``YTDLP_PATH``, ``PORT``,
``LOG_LEVEL``).
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Backend(str, Enum):
    """Audio source backends, exactly one active per deployment."""

    BINARY = "binary"
    """Local yt-dlp executable streaming to stdout."""

    LIBRARY = "library"
    """yt-dlp Python API resolving a direct media URL."""

    API = "api"
    """Third-party HTTP API returning a download link."""


class Settings(BaseSettings):
    """Service settings."""

    model_config = SettingsConfigDict(
        env_prefix="YT2MP3_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    backend: Backend = Field(default=Backend.BINARY, description="Audio source backend")

    host: str = Field(default="0.0.0.0", description="Bind address for `yt2mp3 serve`")
    port: int = Field(
        default=3000,
        validation_alias=AliasChoices("YT2MP3_PORT", "PORT"),
        description="Listen port",
    )
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("YT2MP3_LOG_LEVEL", "LOG_LEVEL"),
        description="Logging level",
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed to call the API",
    )

    bin_dir: Path = Field(default=Path("bin"), description="Vendored binaries and cookie cache")
    ytdlp_path: str | None = Field(
        default=None,
        validation_alias=AliasChoices("YT2MP3_YTDLP_PATH", "YTDLP_PATH"),
        description="Explicit yt-dlp executable",
    )
    ytdlp_download: bool = Field(default=True, description="Download yt-dlp on demand when missing")
    ytdlp_metadata_args: str = Field(default="", description="Extra CLI arguments for `yt-dlp -J`")
    ytdlp_stream_args: str = Field(default="", description="Extra CLI arguments for the audio stream")
    ffmpeg_path: str | None = Field(default=None, description="Explicit ffmpeg executable")

    cookies_file: Path | None = Field(default=None, description="Netscape cookie jar")
    cookies: str | None = Field(default=None, description="Inline cookie jar or Cookie header")
    cookies_base64: bool = Field(default=False, description="Inline cookies are base64 encoded")
    disable_cookies: bool = Field(default=False, description="Never pass cookies to yt-dlp")
    disable_metadata_cookies: bool = Field(
        default=False,
        description="Skip cookies for metadata lookups only",
    )

    api_key: str | None = Field(default=None, description="Third-party API key")
    api_base_url: str | None = Field(default=None, description="Third-party API endpoint")
    api_host: str | None = Field(default=None, description="Third-party API host header")
    api_method: str = Field(default="GET", description="HTTP method for the API call")

    chunk_size: int = Field(default=64 * 1024, gt=0, description="Relay chunk size in bytes")

    @field_validator("cookies_file", mode="before")
    @classmethod
    def _optional_path(cls, value: str | Path | None) -> Path | None:
        if value in (None, ""):
            return None
        return Path(value)

    @field_validator("ytdlp_path", "cookies", "ffmpeg_path", "api_key", "api_base_url", "api_host", mode="before")
    @classmethod
    def _blank_is_none(cls, value: str | None) -> str | None:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("api_method", mode="before")
    @classmethod
    def _normalize_method(cls, value: str) -> str:
        method = str(value or "GET").strip().upper()
        if method not in {"GET", "POST"}:
            raise ValueError("api_method must be GET or POST")
        return method


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
