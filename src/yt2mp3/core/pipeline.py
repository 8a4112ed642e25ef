"""Conversion pipeline — source → encoder → HTTP body.

One :class:`ConversionPipeline` exists per HTTP request.  It owns both
child handles (audio source and encoder), the per-request
:class:`~yt2mp3.core.models.PipelineState`, and the only way into a
terminal stage.

Stages
------
``IDLE → RESOLVING → SOURCE_OPENING → STREAMING → COMPLETED | FAILED``

* :meth:`ConversionPipeline.open` resolves metadata, opens the source,
  starts the encoder and waits for the first MP3 bytes.  Any failure in
  here is raised to the caller *before* response headers exist, so the
  web layer can still answer with a JSON error.
* :meth:`ConversionPipeline.body` yields the MP3 bytes.  Once the first
  chunk is out, headers are immutable: a failure can only drop the
  connection, which is done by raising out of the generator.

Every trigger (source error, encoder error, client abort, clean end)
funnels into :meth:`fail` or :meth:`complete`.  The first caller wins;
later calls are no-ops apart from an idempotent :meth:`teardown`.

There is no timeout at this layer: a stalled extractor or encoder
holds the request open until the client disconnects.

Guarantees
----------
* No subprocess or network imports — the adapters do the I/O.
* Only :class:`~yt2mp3.exceptions.Yt2Mp3Error` subclasses escape
  :meth:`open` and :meth:`body`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from yt2mp3.core.metadata_service import MetadataService
from yt2mp3.core.models import (
    ConversionRequest,
    PipelineStage,
    PipelineState,
    TerminalAction,
    VideoMetadata,
)
from yt2mp3.core.protocols import (
    AudioSource,
    AudioSourceProvider,
    Encoder,
    EncoderProcess,
)
from yt2mp3.exceptions import (
    ClientAbortError,
    EmptyOutputError,
    EncoderFailureError,
    SourceUnavailableError,
    Yt2Mp3Error,
)

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
DISCONNECT_POLL_INTERVAL = 0.25

EMPTY_OUTPUT_MESSAGE = (
    "Conversion produced no audio. The video likely requires authentication."
)

DisconnectCheck = Callable[[], Awaitable[bool]]


class ConversionPipeline:
    """Drive one conversion from a validated request to a finished stream.

    Parameters
    ----------
    request:
        The validated conversion request.
    metadata_service:
        Resolver for title/artist tags.
    source_provider:
        The configured audio backend.
    encoder:
        Factory for MP3 encoder processes.
    chunk_size:
        Maximum relay chunk size in bytes.
    is_disconnected:
        Optional coroutine function reporting whether the client has
        gone away; polled until streaming starts.
    poll_interval:
        Seconds between disconnect probes.
    """

    def __init__(
        self,
        request: ConversionRequest,
        *,
        metadata_service: MetadataService,
        source_provider: AudioSourceProvider,
        encoder: Encoder,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        is_disconnected: DisconnectCheck | None = None,
        poll_interval: float = DISCONNECT_POLL_INTERVAL,
    ) -> None:
        self.request: ConversionRequest = request
        self.state: PipelineState = PipelineState()
        self.metadata: VideoMetadata = VideoMetadata.unknown()

        self._metadata_service = metadata_service
        self._source_provider = source_provider
        self._encoder = encoder
        self._chunk_size = chunk_size
        self._is_disconnected = is_disconnected
        self._poll_interval = poll_interval

        self._source: AudioSource | None = None
        self._encoder_proc: EncoderProcess | None = None
        self._passthrough_chunks: AsyncIterator[bytes] | None = None
        self._first_chunk: bytes = b""

        self._open_task: asyncio.Future[None] | None = None
        self._pump_task: asyncio.Task[None] | None = None
        self._watch_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def passthrough(self) -> bool:
        """``True`` when source bytes are relayed without transcoding."""
        return self._source is not None and self._source.passthrough

    @property
    def content_length(self) -> int | None:
        """Response size when it is known before streaming."""
        if self.passthrough and self._source is not None:
            return self._source.content_length
        return None

    # ------------------------------------------------------------------
    # Terminal transitions
    # ------------------------------------------------------------------

    def fail(self, error: Yt2Mp3Error) -> bool:
        """Enter ``FAILED`` unless a terminal stage was already reached.

        Returns ``True`` for the call that performed the transition.
        Teardown runs on every call, so any trigger can invoke this.
        """
        if self.state.responded:
            self.teardown()
            return False

        self.state.responded = True
        self.state.stage = PipelineStage.FAILED
        self.state.error = error

        if isinstance(error, ClientAbortError):
            self.state.action = TerminalAction.SILENT
            logger.info("Client went away; stopping conversion of %s", self.request.url)
        elif self.state.started_streaming:
            self.state.action = TerminalAction.DESTROY
            logger.warning(
                "Conversion failed mid-stream after %d bytes: %s",
                self.state.bytes_sent,
                error,
            )
        else:
            self.state.action = TerminalAction.JSON_ERROR
            logger.warning("Conversion failed: %s", error)

        self.teardown()
        return True

    def complete(self) -> bool:
        """Enter ``COMPLETED`` unless a terminal stage was already reached."""
        if self.state.responded:
            return False
        self.state.responded = True
        self.state.stage = PipelineStage.COMPLETED
        self.state.action = TerminalAction.COMPLETED
        logger.info("Streaming finished (%d bytes)", self.state.bytes_sent)
        self.teardown()
        return True

    def teardown(self) -> None:
        """Kill the encoder and source and stop helper tasks.

        Idempotent and synchronous so it is safe from any trigger,
        including a cancelled task or a closing generator.
        """
        if self._encoder_proc is not None:
            self._encoder_proc.kill()
        if self._source is not None:
            self._source.terminate()
        for task in (self._open_task, self._pump_task, self._watch_task):
            if task is None or task.done():
                continue
            if task is asyncio.current_task():
                continue
            task.cancel()

    # ------------------------------------------------------------------
    # Opening
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Resolve metadata and wire source → encoder up to the first bytes.

        Raises
        ------
        Yt2Mp3Error
            Any failure before the first byte; the pipeline is already
            in ``FAILED`` with everything torn down.
        """
        if self.state.stage is not PipelineStage.IDLE:
            raise RuntimeError("ConversionPipeline.open() called twice")

        if self._is_disconnected is not None:
            self._watch_task = asyncio.create_task(self._watch_disconnect())

        self._open_task = asyncio.ensure_future(self._prepare())
        try:
            await self._open_task
        except asyncio.CancelledError:
            # Teardown cancels the open task; surface the failure that caused it.
            if self.state.error is not None:
                raise self.state.error from None
            self.fail(ClientAbortError("Request cancelled while opening the source."))
            raise
        except Yt2Mp3Error as exc:
            self.fail(exc)
            raise
        except Exception as exc:
            error = Yt2Mp3Error(f"Conversion failed: {exc}")
            self.fail(error)
            raise error from exc

    async def _prepare(self) -> None:
        self.state.stage = PipelineStage.RESOLVING
        self.metadata = await self._metadata_service.resolve(self.request.url)

        self.state.stage = PipelineStage.SOURCE_OPENING
        self._source = await self._open_source()

        if self._source.passthrough:
            self._passthrough_chunks = self._source.chunks(self._chunk_size)
        else:
            self._encoder_proc = await self._start_encoder(self._source)
            self._pump_task = asyncio.create_task(
                self._pump(self._source, self._encoder_proc),
            )

        first = await self._next_chunk()
        if not first:
            # Raises: nothing was produced, so this can never complete.
            await self._finish()
        self._first_chunk = first

    async def _open_source(self) -> AudioSource:
        try:
            return await self._source_provider.open(
                self.request.url,
                self.request.bitrate,
            )
        except Yt2Mp3Error:
            raise
        except Exception as exc:
            raise SourceUnavailableError(
                f"Unexpected {self._source_provider.name} error: {exc}",
            ) from exc

    async def _start_encoder(self, source: AudioSource) -> EncoderProcess:
        try:
            return await self._encoder.start(
                bitrate=self.request.bitrate,
                metadata=self.metadata,
                format_hint=source.format_hint,
            )
        except Yt2Mp3Error:
            raise
        except Exception as exc:
            raise EncoderFailureError(f"Encoder failed to start: {exc}") from exc

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def body(self) -> AsyncIterator[bytes]:
        """Yield the MP3 stream; call only after :meth:`open` succeeded.

        Failures after the first byte are raised out of the generator so
        the server drops the connection.  A client abort ends the
        generator quietly.
        """
        if self.state.stage is not PipelineStage.SOURCE_OPENING or not self._first_chunk:
            raise RuntimeError("ConversionPipeline.body() requires a successful open()")

        self.state.stage = PipelineStage.STREAMING
        chunk, self._first_chunk = self._first_chunk, b""
        try:
            while chunk:
                self.state.started_streaming = True
                self.state.bytes_sent += len(chunk)
                yield chunk
                chunk = await self._next_chunk()
            await self._finish()
        except ClientAbortError:
            return
        except (asyncio.CancelledError, GeneratorExit):
            self.fail(ClientAbortError("Client disconnected during streaming."))
            raise
        except Yt2Mp3Error as exc:
            self.fail(exc)
            raise
        except Exception as exc:
            error = EncoderFailureError(f"Streaming failed: {exc}")
            self.fail(error)
            raise error from exc
        finally:
            self.teardown()

    async def _next_chunk(self) -> bytes:
        if self._passthrough_chunks is not None:
            chunk = await anext(self._passthrough_chunks, b"")
        elif self._encoder_proc is not None:
            chunk = await self._encoder_proc.read(self._chunk_size)
        else:
            chunk = b""
        if self.state.stage is PipelineStage.FAILED and self.state.error is not None:
            raise self.state.error
        return chunk

    async def _finish(self) -> None:
        """Settle the outcome once the output reached end-of-stream."""
        if self._encoder_proc is not None:
            code = await self._encoder_proc.wait()
            if self._pump_task is not None:
                await asyncio.gather(self._pump_task, return_exceptions=True)
            if self.state.stage is PipelineStage.FAILED and self.state.error is not None:
                raise self.state.error
            if code != 0:
                raise EncoderFailureError(
                    self._encoder_proc.last_error_line
                    or f"Encoder exited with code {code}",
                )
        elif self._source is not None:
            await self._source.finish()

        if self.state.bytes_sent == 0:
            raise EmptyOutputError(EMPTY_OUTPUT_MESSAGE)
        self.complete()

    async def _pump(self, source: AudioSource, encoder: EncoderProcess) -> None:
        """Relay source bytes into the encoder input as they arrive."""
        try:
            async for chunk in source.chunks(self._chunk_size):
                await encoder.write(chunk)
            await source.finish()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Encoder closed its input early")
        except Yt2Mp3Error as exc:
            self.fail(exc)
        except Exception as exc:  # noqa: BLE001
            self.fail(SourceUnavailableError(f"Audio source failed: {exc}"))
        finally:
            encoder.close_input()

    async def _watch_disconnect(self) -> None:
        # Once streaming, the server notices disconnects by cancelling body().
        check = self._is_disconnected
        if check is None:
            return
        while not self.state.responded and self.state.stage is not PipelineStage.STREAMING:
            try:
                gone = await check()
            except Exception as exc:  # noqa: BLE001
                logger.debug("Disconnect check failed, no longer watching: %s", exc)
                return
            if gone:
                self.fail(ClientAbortError("Client disconnected."))
                return
            await asyncio.sleep(self._poll_interval)
