from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from backend.app.config import AppSettings, validate_youtube_configuration
from backend.app.dependencies import get_settings, get_video_cache_service
from backend.app.models.video_contracts import (
    ConfigurationErrorResponse,
    DebugEnvResponse,
    ErrorResponse,
    ProcessedVideosResponse,
    preview_channel_handle,
)
from backend.app.services.video_cache_service import VideoCacheService

LOGGER = logging.getLogger("channel_feed.api")

router = APIRouter()


@router.get(
    "/api/youtube/videos",
    response_model=ProcessedVideosResponse,
    responses={
        400: {"model": ConfigurationErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    tags=["youtube"],
    operation_id="youtube_videos_list",
)
async def list_youtube_videos(
    settings: Annotated[AppSettings, Depends(get_settings)],
    cache_service: Annotated[VideoCacheService, Depends(get_video_cache_service)],
) -> ProcessedVideosResponse:
    api_key, channel_handle = validate_youtube_configuration(settings)

    LOGGER.info("youtube videos requested")
    videos = await cache_service.fetch_videos_auto(api_key, channel_handle)
    LOGGER.info(
        "youtube videos served hero=%s long=%s shorts=%s",
        "yes" if videos.hero_video is not None else "no",
        len(videos.long_videos),
        len(videos.shorts),
    )
    return ProcessedVideosResponse.from_processed(videos)


@router.get(
    "/api/debug/env",
    response_model=DebugEnvResponse,
    tags=["system"],
    operation_id="debug_env",
)
def debug_env(
    settings: Annotated[AppSettings, Depends(get_settings)],
) -> DebugEnvResponse:
    api_key = settings.youtube_api_key
    return DebugEnvResponse(
        has_api_key=api_key is not None,
        has_channel_handle=settings.youtube_channel_handle is not None,
        api_key_length=len(api_key) if api_key is not None else 0,
        channel_handle=preview_channel_handle(settings.youtube_channel_handle),
        port=settings.port,
    )
