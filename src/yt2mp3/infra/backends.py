"""Wire concrete adapters together for the configured backend.

Backend choice is made once per process.  The metadata resolver always
pairs the backend's own provider with one fallback from the other yt-dlp
flavour; the API backend has no metadata endpoint and uses the library
first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from yt2mp3.config import Backend, Settings
from yt2mp3.core.metadata_service import MetadataService
from yt2mp3.core.protocols import AudioSourceProvider, Encoder
from yt2mp3.infra.api_provider import ThirdPartyApiSourceProvider
from yt2mp3.infra.cookies import CookieJar
from yt2mp3.infra.extractor_locator import ExtractorLocator
from yt2mp3.infra.ffmpeg_encoder import FfmpegEncoder
from yt2mp3.infra.ytdlp_args import split_args
from yt2mp3.infra.ytdlp_binary import YtDlpBinaryMetadataProvider, YtDlpBinarySourceProvider
from yt2mp3.infra.ytdlp_provider import YtDlpLibraryMetadataProvider, YtDlpLibrarySourceProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversionServices:
    """Everything a request needs, built once at startup."""

    settings: Settings
    locator: ExtractorLocator
    cookies: CookieJar
    metadata_service: MetadataService
    source_provider: AudioSourceProvider
    encoder: Encoder


def build_services(settings: Settings) -> ConversionServices:
    """Select and construct the adapters for ``settings.backend``."""
    locator = ExtractorLocator(
        configured_path=settings.ytdlp_path,
        bin_dir=settings.bin_dir,
        allow_download=settings.ytdlp_download,
    )
    cookies = CookieJar.from_settings(settings)

    binary_metadata = YtDlpBinaryMetadataProvider(
        locator,
        cookies=cookies,
        extra_args=split_args(settings.ytdlp_metadata_args),
    )
    library_metadata = YtDlpLibraryMetadataProvider(cookies=cookies)

    source_provider: AudioSourceProvider
    if settings.backend is Backend.BINARY:
        metadata_service = MetadataService(binary_metadata, library_metadata)
        source_provider = YtDlpBinarySourceProvider(
            locator,
            cookies=cookies,
            extra_args=split_args(settings.ytdlp_stream_args),
        )
    elif settings.backend is Backend.LIBRARY:
        metadata_service = MetadataService(library_metadata, binary_metadata)
        source_provider = YtDlpLibrarySourceProvider(cookies=cookies)
    else:
        metadata_service = MetadataService(library_metadata, binary_metadata)
        source_provider = ThirdPartyApiSourceProvider(
            settings.api_base_url,
            api_key=settings.api_key,
            api_host=settings.api_host,
            method=settings.api_method,
        )

    logger.info("Audio backend: %s", settings.backend.value)
    return ConversionServices(
        settings=settings,
        locator=locator,
        cookies=cookies,
        metadata_service=metadata_service,
        source_provider=source_provider,
        encoder=FfmpegEncoder(settings.ffmpeg_path, bin_dir=settings.bin_dir),
    )
