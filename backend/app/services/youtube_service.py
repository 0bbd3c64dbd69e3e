from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from importlib import import_module
from typing import Any, cast

LOGGER = logging.getLogger("channel_feed.youtube")

SHORT_MAX_DURATION_SECONDS = 60
MAX_LIST_ITEMS = 3
UPLOADS_PAGE_SIZE = 50
CHANNEL_SEARCH_MAX_RESULTS = 5
CHANNEL_ID_PREFIX = "UC"
ISO8601_DURATION_PATTERN = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")


@dataclass(frozen=True)
class YouTubeVideo:
    video_id: str
    title: str
    thumbnail: str
    published_at: datetime
    duration_seconds: int


@dataclass(frozen=True)
class ProcessedVideos:
    """Snapshot served to clients.

    `hero_video` is the most recent long video and is also the first entry of
    `long_videos`; both fields are filled from the same record.
    """

    hero_video: YouTubeVideo | None
    long_videos: tuple[YouTubeVideo, ...]
    shorts: tuple[YouTubeVideo, ...]

    @classmethod
    def empty(cls) -> ProcessedVideos:
        return cls(hero_video=None, long_videos=(), shorts=())


class YouTubeServiceError(Exception):
    pass


class ConfigurationError(YouTubeServiceError):
    def __init__(
        self,
        message: str,
        *,
        details: str,
        title: str = "Configuration Error",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.title = title


class ChannelNotFoundError(YouTubeServiceError):
    pass


class YouTubeRemoteError(YouTubeServiceError):
    def __init__(self, message: str, *, stage: str) -> None:
        super().__init__(message)
        self.stage = stage


class MalformedResponseError(YouTubeServiceError):
    pass


YouTubeClientFactory = Callable[[str], Any]


def parse_iso8601_duration_seconds(raw_value: str) -> int:
    """Convert an ISO-8601 duration such as ``PT4M13S`` into seconds.

    Unmatched or unparseable input yields 0; this never raises.
    """
    try:
        matched = ISO8601_DURATION_PATTERN.search(raw_value)
        if matched is None:
            return 0

        hours = int(matched.group(1) or 0)
        minutes = int(matched.group(2) or 0)
        seconds = int(matched.group(3) or 0)
        return hours * 3_600 + minutes * 60 + seconds
    except Exception:
        return 0


def normalize_channel_handle(handle: str) -> str:
    normalized = handle.strip()
    if normalized.startswith("@"):
        normalized = normalized[1:]
    return normalized.upper()


def looks_like_channel_id(channel_id_or_handle: str) -> bool:
    return channel_id_or_handle.startswith(CHANNEL_ID_PREFIX)


def classify_videos(videos: Iterable[YouTubeVideo]) -> ProcessedVideos:
    # sorted() is stable with reverse=True, so publish-time ties keep API order.
    ordered = sorted(videos, key=lambda video: video.published_at, reverse=True)
    long_videos = [
        video for video in ordered if video.duration_seconds > SHORT_MAX_DURATION_SECONDS
    ]
    shorts = [video for video in ordered if video.duration_seconds <= SHORT_MAX_DURATION_SECONDS]

    hero_video = long_videos[0] if long_videos else None
    return ProcessedVideos(
        hero_video=hero_video,
        long_videos=tuple(long_videos[:MAX_LIST_ITEMS]),
        shorts=tuple(shorts[:MAX_LIST_ITEMS]),
    )


class YouTubeDataClient:
    """Async facade over the YouTube Data API v3 discovery client.

    Each blocking ``execute()`` runs in a worker thread; callers only suspend
    while a remote request is in flight.
    """

    def __init__(
        self,
        api_key: str,
        *,
        client_factory: YouTubeClientFactory | None = None,
    ) -> None:
        self._api_key = api_key
        self._client_factory = client_factory or _build_youtube_client
        self._client: Any | None = None

    async def search_channels(self, query: str) -> dict[str, Any]:
        return await self._execute(
            "channel_search",
            lambda client: client.search().list(
                part="snippet",
                type="channel",
                q=query,
                maxResults=CHANNEL_SEARCH_MAX_RESULTS,
            ),
        )

    async def list_channel_content_details(self, channel_id: str) -> dict[str, Any]:
        return await self._execute(
            "channel_lookup",
            lambda client: client.channels().list(part="contentDetails", id=channel_id),
        )

    async def list_playlist_items(self, playlist_id: str) -> dict[str, Any]:
        return await self._execute(
            "playlist_items",
            lambda client: client.playlistItems().list(
                part="snippet",
                playlistId=playlist_id,
                maxResults=UPLOADS_PAGE_SIZE,
            ),
        )

    async def list_videos(self, video_ids: list[str]) -> dict[str, Any]:
        return await self._execute(
            "video_details",
            lambda client: client.videos().list(
                part="snippet,contentDetails",
                id=",".join(video_ids),
            ),
        )

    async def _execute(self, stage: str, build_request: Callable[[Any], Any]) -> dict[str, Any]:
        client = await self._get_client()
        try:
            response = await asyncio.to_thread(lambda: build_request(client).execute())
        except Exception as exc:
            raise YouTubeRemoteError(
                f"YouTube {stage} request failed: {_summarize_exception_message(exc)}",
                stage=stage,
            ) from exc

        if not isinstance(response, dict):
            raise MalformedResponseError(f"YouTube {stage} response is not a JSON object")
        return _as_dict(response)

    async def _get_client(self) -> Any:
        if self._client is None:
            self._client = await asyncio.to_thread(self._client_factory, self._api_key)
        return self._client


class ChannelResolver:
    """Resolve channel handles to channel ids, memoized for the process lifetime."""

    def __init__(self, *, client_factory: YouTubeClientFactory | None = None) -> None:
        self._client_factory = client_factory
        self._channel_ids: dict[str, str] = {}

    def cached_channel_id(self, handle: str) -> str | None:
        return self._channel_ids.get(normalize_channel_handle(handle))

    async def resolve(self, api_key: str, handle: str) -> str:
        normalized = normalize_channel_handle(handle)
        cached = self._channel_ids.get(normalized)
        if cached is not None:
            LOGGER.debug("youtube channel_resolve cache_hit handle=%s", normalized)
            return cached

        client = YouTubeDataClient(api_key, client_factory=self._client_factory)
        response = await client.search_channels(f"@{normalized}")
        items = _as_list(response.get("items"))
        if not items:
            raise ChannelNotFoundError(f"Channel handle not found: @{normalized}")

        channel_id = _coerce_nonempty_string(_as_dict(_as_dict(items[0]).get("id")).get("channelId"))
        if channel_id is None:
            raise MalformedResponseError("YouTube channel search item is missing id.channelId")

        self._channel_ids[normalized] = channel_id
        LOGGER.info(
            "youtube channel_resolve resolved handle=%s channel_id=%s", normalized, channel_id
        )
        return channel_id


class YouTubeVideoFetcher:
    def __init__(
        self,
        resolver: ChannelResolver | None = None,
        *,
        client_factory: YouTubeClientFactory | None = None,
    ) -> None:
        self._client_factory = client_factory
        self._resolver = (
            resolver if resolver is not None else ChannelResolver(client_factory=client_factory)
        )

    @property
    def resolver(self) -> ChannelResolver:
        return self._resolver

    async def fetch(self, api_key: str, channel_id_or_handle: str) -> ProcessedVideos:
        if looks_like_channel_id(channel_id_or_handle):
            channel_id = channel_id_or_handle
        else:
            channel_id = await self._resolver.resolve(api_key, channel_id_or_handle)

        client = YouTubeDataClient(api_key, client_factory=self._client_factory)
        uploads_playlist_id = await self._fetch_uploads_playlist_id(client, channel_id)
        video_ids = await self._fetch_recent_video_ids(client, uploads_playlist_id)
        if not video_ids:
            LOGGER.info(
                "youtube uploads empty channel_id=%s playlist_id=%s",
                channel_id,
                uploads_playlist_id,
            )
            return ProcessedVideos.empty()

        response = await client.list_videos(video_ids)
        videos = [_video_from_item(item) for item in _require_items(response, "video_details")]
        processed = classify_videos(videos)
        LOGGER.info(
            "youtube videos fetched channel_id=%s total=%s long=%s shorts=%s hero=%s",
            channel_id,
            len(videos),
            len(processed.long_videos),
            len(processed.shorts),
            processed.hero_video.video_id if processed.hero_video is not None else None,
        )
        return processed

    async def _fetch_uploads_playlist_id(self, client: YouTubeDataClient, channel_id: str) -> str:
        response = await client.list_channel_content_details(channel_id)
        items = _as_list(response.get("items"))
        if not items:
            raise ChannelNotFoundError(f"Channel not found: {channel_id}")

        content_details = _as_dict(_as_dict(items[0]).get("contentDetails"))
        related = _as_dict(content_details.get("relatedPlaylists"))
        uploads = _coerce_nonempty_string(related.get("uploads"))
        if uploads is None:
            raise MalformedResponseError(
                f"YouTube channel {channel_id} has no uploads playlist in contentDetails"
            )
        return uploads

    async def _fetch_recent_video_ids(
        self, client: YouTubeDataClient, playlist_id: str
    ) -> list[str]:
        response = await client.list_playlist_items(playlist_id)
        video_ids: list[str] = []
        for item in _require_items(response, "playlist_items"):
            resource_id = _as_dict(_as_dict(item.get("snippet")).get("resourceId"))
            video_id = _coerce_nonempty_string(resource_id.get("videoId"))
            if video_id is None:
                raise MalformedResponseError(
                    "YouTube playlist item is missing snippet.resourceId.videoId"
                )
            video_ids.append(video_id)
        return video_ids


def _video_from_item(item: dict[str, Any]) -> YouTubeVideo:
    video_id = _coerce_nonempty_string(item.get("id"))
    if video_id is None:
        raise MalformedResponseError("YouTube video item is missing id")

    snippet = _as_dict(item.get("snippet"))
    title = snippet.get("title")
    if not isinstance(title, str):
        raise MalformedResponseError(f"YouTube video {video_id} is missing snippet.title")

    thumbnail = _select_thumbnail_url(_as_dict(snippet.get("thumbnails")))
    if thumbnail is None:
        raise MalformedResponseError(f"YouTube video {video_id} has no high/medium thumbnail")

    published_at = _parse_datetime_utc(snippet.get("publishedAt"))
    if published_at is None:
        raise MalformedResponseError(f"YouTube video {video_id} has an invalid publishedAt")

    raw_duration = _as_dict(item.get("contentDetails")).get("duration")
    if not isinstance(raw_duration, str):
        raise MalformedResponseError(
            f"YouTube video {video_id} is missing contentDetails.duration"
        )

    return YouTubeVideo(
        video_id=video_id,
        title=title,
        thumbnail=thumbnail,
        published_at=published_at,
        duration_seconds=parse_iso8601_duration_seconds(raw_duration),
    )


def _select_thumbnail_url(thumbnails: dict[str, Any]) -> str | None:
    for quality in ("high", "medium"):
        url = _coerce_nonempty_string(_as_dict(thumbnails.get(quality)).get("url"))
        if url is not None:
            return url
    return None


def _require_items(response: dict[str, Any], stage: str) -> list[dict[str, Any]]:
    raw_items = response.get("items")
    if not isinstance(raw_items, list):
        raise MalformedResponseError(f"YouTube {stage} response is missing items")
    return [_as_dict(item) for item in cast(list[Any], raw_items)]


def _build_youtube_client(api_key: str) -> Any:
    try:
        discovery_module = import_module("googleapiclient.discovery")
    except ImportError as exc:  # pragma: no cover - dependency controlled at runtime
        raise YouTubeServiceError(
            "YouTube access requires the google-api-python-client dependency"
        ) from exc

    build_fn: Any = discovery_module.build
    return build_fn("youtube", "v3", developerKey=api_key, cache_discovery=False)


def _parse_datetime_utc(raw_value: object) -> datetime | None:
    if not isinstance(raw_value, str):
        return None

    normalized = raw_value.strip().replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _coerce_nonempty_string(raw_value: object) -> str | None:
    if isinstance(raw_value, str) and raw_value.strip():
        return raw_value
    return None


def _summarize_exception_message(exc: Exception, *, max_length: int = 400) -> str:
    raw = str(exc).strip()
    if not raw:
        raw = repr(exc)
    if len(raw) <= max_length:
        return raw
    return f"{raw[: max_length - 3]}..."


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        raw_dict = cast(dict[object, object], value)
        converted: dict[str, Any] = {}
        for key, item in raw_dict.items():
            if isinstance(key, str):
                converted[key] = item
        return converted
    return {}


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        raw_list = cast(list[Any], value)
        return list(raw_list)
    return []
