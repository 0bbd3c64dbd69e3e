from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol

from backend.app.services.scheduler_service import SchedulerService
from backend.app.services.youtube_service import ProcessedVideos
from backend.app.telemetry import TelemetryClient

LOGGER = logging.getLogger("channel_feed.youtube.cache")
DEFAULT_CACHE_TTL_SECONDS = 5 * 60


class VideoFetcher(Protocol):
    async def fetch(self, api_key: str, channel_id_or_handle: str) -> ProcessedVideos:
        ...


class VideoCacheService:
    """Single-slot TTL cache over a video fetcher, with a background refresh loop.

    Request-path misses and background ticks both write the slot without
    coordination; whichever finishes last wins.
    """

    def __init__(
        self,
        fetcher: VideoFetcher,
        *,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        refresh_interval_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._ttl_seconds = ttl_seconds
        self._refresh_interval_seconds = (
            ttl_seconds if refresh_interval_seconds is None else refresh_interval_seconds
        )
        self._clock = clock
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._cached_videos: ProcessedVideos | None = None
        self._last_fetch_time = 0.0
        self._last_fetched_at: datetime | None = None
        self._warmup_task: asyncio.Task[None] | None = None
        self._scheduler: SchedulerService | None = None

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    @property
    def last_fetched_at(self) -> datetime | None:
        return self._last_fetched_at

    @property
    def auto_refresh_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def get_cached_videos(self) -> ProcessedVideos | None:
        if self._cached_videos is None:
            return None

        if self._clock() - self._last_fetch_time > self._ttl_seconds:
            LOGGER.info("youtube videos cache_expired ttl_seconds=%s", self._ttl_seconds)
            return None

        LOGGER.debug("youtube videos cache_hit")
        return self._cached_videos

    def set_cached_videos(self, videos: ProcessedVideos) -> None:
        self._cached_videos = videos
        self._last_fetch_time = self._clock()
        self._last_fetched_at = datetime.now(UTC)
        LOGGER.info(
            "youtube videos cache_updated long=%s shorts=%s",
            len(videos.long_videos),
            len(videos.shorts),
        )

    async def fetch_videos_auto(self, api_key: str, channel_id_or_handle: str) -> ProcessedVideos:
        cached = self.get_cached_videos()
        if cached is not None:
            self._telemetry.emit(
                "youtube.videos.cache_hit",
                age_seconds=round(self._clock() - self._last_fetch_time, 3),
                last_fetched_at=self._last_fetched_at,
            )
            return cached

        self._telemetry.emit("youtube.videos.cache_miss")
        return await self.refresh(api_key, channel_id_or_handle)

    async def refresh(self, api_key: str, channel_id_or_handle: str) -> ProcessedVideos:
        with self._telemetry.span("youtube.videos.refresh", channel=channel_id_or_handle):
            fresh = await self._fetcher.fetch(api_key, channel_id_or_handle)
        self.set_cached_videos(fresh)
        return fresh

    def start_auto_refresh(self, api_key: str, channel_id_or_handle: str) -> None:
        """Warm the cache once, then refresh it every interval regardless of freshness.

        Must be called from a running event loop.
        """
        if self.auto_refresh_running:
            return

        LOGGER.info(
            "youtube auto_refresh started interval_seconds=%s", self._refresh_interval_seconds
        )
        self._warmup_task = asyncio.create_task(
            self._warm_up(api_key, channel_id_or_handle),
            name="channel-feed-youtube-warmup",
        )

        async def _refresh_tick() -> None:
            await self.refresh(api_key, channel_id_or_handle)

        self._scheduler = SchedulerService(
            _refresh_tick,
            self._refresh_interval_seconds,
            tick_type="youtube_refresh",
            telemetry=self._telemetry,
        )
        self._scheduler.start()

    async def stop(self) -> None:
        warmup_task = self._warmup_task
        self._warmup_task = None
        if warmup_task is not None and not warmup_task.done():
            warmup_task.cancel()
            await asyncio.gather(warmup_task, return_exceptions=True)

        scheduler = self._scheduler
        self._scheduler = None
        if scheduler is not None:
            await scheduler.stop()

    async def _warm_up(self, api_key: str, channel_id_or_handle: str) -> None:
        try:
            await self.fetch_videos_auto(api_key, channel_id_or_handle)
        except Exception:
            LOGGER.warning("youtube auto_refresh warm_up failed", exc_info=True)
