from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from backend.app.models.video_contracts import ConfigurationErrorResponse, ErrorResponse
from backend.app.services.youtube_service import (
    ChannelNotFoundError,
    ConfigurationError,
    YouTubeServiceError,
)

LOGGER = logging.getLogger("channel_feed.api")


def init_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ConfigurationError, configuration_error_handler)
    app.add_exception_handler(ChannelNotFoundError, channel_not_found_handler)
    app.add_exception_handler(YouTubeServiceError, youtube_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)


def _error_response(status_code: int, *, error: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, timestamp=datetime.now(UTC))
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


async def configuration_error_handler(_: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, ConfigurationError)
    LOGGER.error("configuration error: %s", exc.message)
    body = ConfigurationErrorResponse(error=exc.title, message=exc.message, details=exc.details)
    return JSONResponse(status_code=400, content=body.model_dump())


async def channel_not_found_handler(_: Request, exc: Exception) -> JSONResponse:
    LOGGER.warning("youtube channel not found: %s", exc)
    return _error_response(404, error="YouTube channel not found", message=str(exc))


async def youtube_error_handler(_: Request, exc: Exception) -> JSONResponse:
    LOGGER.error("youtube videos fetch failed", exc_info=exc)
    return _error_response(500, error="Failed to fetch YouTube videos", message=str(exc))


async def generic_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    LOGGER.error("unhandled exception", exc_info=exc)
    return _error_response(
        500,
        error="Internal Server Error",
        message="An unexpected error occurred",
    )
