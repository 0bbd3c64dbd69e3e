from __future__ import annotations

from functools import lru_cache

from backend.app.config import AppSettings, load_settings
from backend.app.services.video_cache_service import VideoCacheService
from backend.app.services.youtube_service import ChannelResolver, YouTubeVideoFetcher
from backend.app.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


@lru_cache(maxsize=1)
def get_video_cache_service() -> VideoCacheService:
    settings = get_settings()
    return VideoCacheService(
        YouTubeVideoFetcher(ChannelResolver()),
        ttl_seconds=settings.cache_ttl_seconds,
        telemetry=get_telemetry(),
    )


def reset_cached_dependencies() -> None:
    get_video_cache_service.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
