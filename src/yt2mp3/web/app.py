"""FastAPI application: routes and the HTTP error boundary.

The error boundary is the web counterpart of :func:`yt2mp3.cli.app.cli`:
every :class:`~yt2mp3.exceptions.Yt2Mp3Error` raised before the first
body byte is rendered as ``{"error": ..., "code"?: ...}`` with the
error's status.  Failures after that point can only drop the
connection, which :class:`~yt2mp3.core.pipeline.ConversionPipeline`
does by raising out of the body generator.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel

from yt2mp3.config import Settings, get_settings
from yt2mp3.core.naming import build_filename, content_disposition
from yt2mp3.core.pipeline import ConversionPipeline
from yt2mp3.core.validation import INVALID_URL_MESSAGE, build_request
from yt2mp3.exceptions import ClientAbortError, Yt2Mp3Error
from yt2mp3.infra.backends import ConversionServices, build_services
from yt2mp3.version import __version__

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error."


class ConvertBody(BaseModel):
    """``POST /api/convert`` payload; values are validated by the core."""

    url: Any = None
    bitrate: Any = None


# ---------------------------------------------------------------------------
# Error boundary
# ---------------------------------------------------------------------------

async def _domain_error(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, Yt2Mp3Error):
        return await _unexpected_error(request, exc)
    if isinstance(exc, ClientAbortError):
        return Response(status_code=exc.status_code)
    if exc.hint:
        logger.info("%s (hint: %s)", exc, exc.hint)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def _validation_error(request: Request, exc: Exception) -> Response:
    return JSONResponse(status_code=400, content={"error": INVALID_URL_MESSAGE})


async def _unexpected_error(request: Request, exc: Exception) -> Response:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": INTERNAL_ERROR_MESSAGE})


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Settings | None = None,
    services: ConversionServices | None = None,
) -> FastAPI:
    """Build the application.

    Parameters
    ----------
    settings:
        Defaults to :func:`~yt2mp3.config.get_settings`.
    services:
        Pre-built adapters; built from *settings* when omitted.
    """
    settings = settings or (services.settings if services else get_settings())
    services = services or build_services(settings)

    app = FastAPI(title="yt2mp3", version=__version__)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "Content-Length"],
    )
    app.add_exception_handler(Yt2Mp3Error, _domain_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(Exception, _unexpected_error)

    def _health() -> dict[str, str]:
        return {
            "status": "ok",
            "backend": settings.backend.value,
            "version": __version__,
        }

    app.add_api_route("/health", _health, methods=["GET"])
    app.add_api_route("/", _health, methods=["GET"])

    @app.post("/api/convert")
    async def convert(body: ConvertBody, request: Request) -> StreamingResponse:
        conversion = build_request(body.url, body.bitrate)
        logger.info("Converting %s at %d kbps", conversion.url, conversion.bitrate)

        pipeline = ConversionPipeline(
            conversion,
            metadata_service=services.metadata_service,
            source_provider=services.source_provider,
            encoder=services.encoder,
            chunk_size=settings.chunk_size,
            is_disconnected=request.is_disconnected,
        )
        await pipeline.open()

        try:
            filename = build_filename(pipeline.metadata, conversion.url)
            headers = {"Content-Disposition": content_disposition(filename)}
            if pipeline.content_length is not None:
                headers["Content-Length"] = str(pipeline.content_length)
        except Exception:
            pipeline.teardown()
            raise
        return StreamingResponse(pipeline.body(), media_type="audio/mpeg", headers=headers)

    return app
