from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from backend.app.services.youtube_service import ProcessedVideos, YouTubeVideo

DEBUG_HANDLE_PREVIEW_LENGTH = 20


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class VideoPayload(_CamelModel):
    video_id: str
    title: str
    thumbnail: str
    published_at: datetime
    duration_in_seconds: int = Field(ge=0)

    @classmethod
    def from_video(cls, video: YouTubeVideo) -> VideoPayload:
        return cls(
            video_id=video.video_id,
            title=video.title,
            thumbnail=video.thumbnail,
            published_at=video.published_at,
            duration_in_seconds=video.duration_seconds,
        )


class ProcessedVideosResponse(_CamelModel):
    hero_video: VideoPayload | None
    long_videos: list[VideoPayload]
    shorts: list[VideoPayload]

    @classmethod
    def from_processed(cls, videos: ProcessedVideos) -> ProcessedVideosResponse:
        hero = videos.hero_video
        return cls(
            hero_video=VideoPayload.from_video(hero) if hero is not None else None,
            long_videos=[VideoPayload.from_video(video) for video in videos.long_videos],
            shorts=[VideoPayload.from_video(video) for video in videos.shorts],
        )


class ConfigurationErrorResponse(BaseModel):
    error: str
    message: str
    details: str


class ErrorResponse(BaseModel):
    error: str
    message: str
    timestamp: datetime


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    port: int


class DebugEnvResponse(_CamelModel):
    has_api_key: bool
    has_channel_handle: bool
    api_key_length: int
    channel_handle: str
    port: int


def preview_channel_handle(channel_handle: str | None) -> str:
    if channel_handle is None:
        return "NOT SET"
    if len(channel_handle) > DEBUG_HANDLE_PREVIEW_LENGTH:
        return f"{channel_handle[:DEBUG_HANDLE_PREVIEW_LENGTH]}..."
    return channel_handle
