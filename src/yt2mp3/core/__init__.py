"""Core / service layer — business logic and pipeline orchestration.

Rules
-----
* No ``print()`` calls.
* No subprocess, filesystem or network I/O — adapters do that.
* No imports from ``cli``, ``web`` or ``infra``.
* All functions must be fully typed.
"""

from yt2mp3.core.metadata_service import MetadataService
from yt2mp3.core.models import ConversionRequest, PipelineState, VideoMetadata
from yt2mp3.core.pipeline import ConversionPipeline
from yt2mp3.core.protocols import (
    AudioSource,
    AudioSourceProvider,
    Encoder,
    EncoderProcess,
    MetadataProvider,
)

__all__: list[str] = [
    "AudioSource",
    "AudioSourceProvider",
    "ConversionPipeline",
    "ConversionRequest",
    "Encoder",
    "EncoderProcess",
    "MetadataProvider",
    "MetadataService",
    "PipelineState",
    "VideoMetadata",
]
