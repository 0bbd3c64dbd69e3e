from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from backend.app.services.youtube_service import (
    ChannelNotFoundError,
    ChannelResolver,
    MalformedResponseError,
    ProcessedVideos,
    YouTubeRemoteError,
    YouTubeVideo,
    YouTubeVideoFetcher,
    classify_videos,
    normalize_channel_handle,
    parse_iso8601_duration_seconds,
)

BASE_TIME = datetime(2026, 1, 10, 12, 0, tzinfo=UTC)


class FakeYouTubeClient:
    """Mimics googleapiclient's `resource().list(**kwargs).execute()` chain."""

    def __init__(self, responses: dict[str, Any]) -> None:
        self._responses = responses
        self._resource = ""
        self._kwargs: dict[str, Any] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def search(self) -> FakeYouTubeClient:
        self._resource = "search"
        return self

    def channels(self) -> FakeYouTubeClient:
        self._resource = "channels"
        return self

    def playlistItems(self) -> FakeYouTubeClient:  # noqa: N802
        self._resource = "playlistItems"
        return self

    def videos(self) -> FakeYouTubeClient:
        self._resource = "videos"
        return self

    def list(self, **kwargs: Any) -> FakeYouTubeClient:
        self._kwargs = kwargs
        return self

    def execute(self) -> Any:
        self.calls.append((self._resource, self._kwargs))
        response = self._responses[self._resource]
        if isinstance(response, Exception):
            raise response
        return response

    def resources_called(self) -> list[str]:
        return [resource for resource, _ in self.calls]


def _published(hours_ago: int) -> str:
    return (BASE_TIME - timedelta(hours=hours_ago)).isoformat().replace("+00:00", "Z")


def _video_item(video_id: str, *, hours_ago: int, duration: str) -> dict[str, Any]:
    return {
        "id": video_id,
        "snippet": {
            "title": f"Video {video_id}",
            "publishedAt": _published(hours_ago),
            "thumbnails": {
                "medium": {"url": f"https://img/{video_id}/mq.jpg"},
                "high": {"url": f"https://img/{video_id}/hq.jpg"},
            },
        },
        "contentDetails": {"duration": duration},
    }


def _channel_responses(video_items: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "search": {"items": [{"id": {"kind": "youtube#channel", "channelId": "UC_healthbook"}}]},
        "channels": {"items": [{"contentDetails": {"relatedPlaylists": {"uploads": "UU_healthbook"}}}]},
        "playlistItems": {
            "items": [
                {"snippet": {"resourceId": {"videoId": item["id"]}}} for item in video_items
            ]
        },
        "videos": {"items": video_items},
    }


def _make_video(video_id: str, *, hours_ago: int, duration_seconds: int) -> YouTubeVideo:
    return YouTubeVideo(
        video_id=video_id,
        title=f"Video {video_id}",
        thumbnail=f"https://img/{video_id}/hq.jpg",
        published_at=BASE_TIME - timedelta(hours=hours_ago),
        duration_seconds=duration_seconds,
    )


def test_parse_iso8601_duration_seconds() -> None:
    assert parse_iso8601_duration_seconds("PT4M13S") == 253
    assert parse_iso8601_duration_seconds("PT1H") == 3600
    assert parse_iso8601_duration_seconds("PT1H2M3S") == 3723
    assert parse_iso8601_duration_seconds("PT45S") == 45


@pytest.mark.parametrize("raw_value", ["PT0S", "", "not a duration", "P1D", "1H2M"])
def test_parse_iso8601_duration_seconds_falls_back_to_zero(raw_value: str) -> None:
    assert parse_iso8601_duration_seconds(raw_value) == 0


def test_parse_iso8601_duration_seconds_never_raises_on_bad_input() -> None:
    assert parse_iso8601_duration_seconds(None) == 0  # type: ignore[arg-type]
    assert parse_iso8601_duration_seconds(123) == 0  # type: ignore[arg-type]


def test_normalize_channel_handle() -> None:
    assert normalize_channel_handle("@Foo") == "FOO"
    assert normalize_channel_handle("foo") == "FOO"
    assert normalize_channel_handle(" @healthbook.official ") == "HEALTHBOOK.OFFICIAL"


def test_classify_videos_partitions_sorts_and_truncates() -> None:
    videos = [
        _make_video("long_old", hours_ago=10, duration_seconds=900),
        _make_video("short_new", hours_ago=1, duration_seconds=60),
        _make_video("long_new", hours_ago=2, duration_seconds=61),
        _make_video("short_mid", hours_ago=3, duration_seconds=15),
        _make_video("long_mid", hours_ago=4, duration_seconds=3600),
        _make_video("long_oldest", hours_ago=20, duration_seconds=120),
        _make_video("short_old", hours_ago=5, duration_seconds=0),
        _make_video("short_oldest", hours_ago=30, duration_seconds=59),
    ]

    processed = classify_videos(videos)

    assert [video.video_id for video in processed.long_videos] == [
        "long_new",
        "long_mid",
        "long_old",
    ]
    assert [video.video_id for video in processed.shorts] == [
        "short_new",
        "short_mid",
        "short_old",
    ]
    assert processed.hero_video is not None
    assert processed.hero_video == processed.long_videos[0]


def test_classify_videos_without_long_videos_has_no_hero() -> None:
    processed = classify_videos(
        [
            _make_video("a", hours_ago=1, duration_seconds=30),
            _make_video("b", hours_ago=2, duration_seconds=60),
        ]
    )

    assert processed.hero_video is None
    assert processed.long_videos == ()
    assert [video.video_id for video in processed.shorts] == ["a", "b"]


def test_classify_videos_keeps_input_order_for_equal_publish_times() -> None:
    processed = classify_videos(
        [
            _make_video("first", hours_ago=1, duration_seconds=100),
            _make_video("second", hours_ago=1, duration_seconds=100),
        ]
    )
    assert [video.video_id for video in processed.long_videos] == ["first", "second"]


def test_classify_videos_empty_input() -> None:
    assert classify_videos([]) == ProcessedVideos.empty()


def test_resolver_memoizes_by_normalized_handle() -> None:
    fake_client = FakeYouTubeClient(_channel_responses([]))
    resolver = ChannelResolver(client_factory=lambda _api_key: fake_client)

    async def _run() -> tuple[str, str]:
        first = await resolver.resolve("key", "@Foo")
        second = await resolver.resolve("key", "foo")
        return first, second

    first, second = asyncio.run(_run())

    assert first == second == "UC_healthbook"
    assert fake_client.resources_called() == ["search"]
    _, search_kwargs = fake_client.calls[0]
    assert search_kwargs["q"] == "@FOO"
    assert search_kwargs["type"] == "channel"
    assert resolver.cached_channel_id("@FOO") == "UC_healthbook"


def test_resolver_raises_not_found_without_items() -> None:
    fake_client = FakeYouTubeClient({"search": {"items": []}})
    resolver = ChannelResolver(client_factory=lambda _api_key: fake_client)

    with pytest.raises(ChannelNotFoundError):
        asyncio.run(resolver.resolve("key", "@missing"))
    assert resolver.cached_channel_id("@missing") is None


def test_fetcher_healthbook_scenario() -> None:
    video_items = [
        _video_item("v1", hours_ago=1, duration="PT8M20S"),
        _video_item("v2", hours_ago=2, duration="PT30S"),
        _video_item("v3", hours_ago=3, duration="PT11M40S"),
        _video_item("v4", hours_ago=4, duration="PT45S"),
        _video_item("v5", hours_ago=5, duration="PT20S"),
    ]
    responses = _channel_responses(video_items)
    # The videos endpoint does not guarantee playlist order.
    responses["videos"] = {"items": list(reversed(video_items))}
    fake_client = FakeYouTubeClient(responses)
    fetcher = YouTubeVideoFetcher(client_factory=lambda _api_key: fake_client)

    async def _run() -> tuple[ProcessedVideos, ProcessedVideos]:
        first = await fetcher.fetch("key", "HEALTHBOOK.OFFICIAL")
        second = await fetcher.fetch("key", "@healthbook.official")
        return first, second

    processed, again = asyncio.run(_run())

    assert [video.video_id for video in processed.long_videos] == ["v1", "v3"]
    assert [video.video_id for video in processed.shorts] == ["v2", "v4", "v5"]
    assert processed.hero_video is not None
    assert processed.hero_video.video_id == "v1"
    assert processed.hero_video.duration_seconds == 500
    assert processed.hero_video.thumbnail == "https://img/v1/hq.jpg"
    assert processed.hero_video.published_at == BASE_TIME - timedelta(hours=1)
    assert again == processed
    assert fake_client.resources_called().count("search") == 1

    calls = dict(fake_client.calls)
    assert calls["channels"] == {"part": "contentDetails", "id": "UC_healthbook"}
    assert calls["playlistItems"]["playlistId"] == "UU_healthbook"
    assert calls["playlistItems"]["maxResults"] == 50
    assert calls["videos"] == {"part": "snippet,contentDetails", "id": "v1,v2,v3,v4,v5"}


def test_fetcher_uses_channel_id_without_search() -> None:
    fake_client = FakeYouTubeClient(
        _channel_responses([_video_item("v1", hours_ago=1, duration="PT2M")])
    )
    fetcher = YouTubeVideoFetcher(client_factory=lambda _api_key: fake_client)

    processed = asyncio.run(fetcher.fetch("key", "UC_healthbook"))

    assert "search" not in fake_client.resources_called()
    assert processed.hero_video is not None
    assert processed.hero_video.video_id == "v1"


def test_fetcher_falls_back_to_medium_thumbnail() -> None:
    item = _video_item("v1", hours_ago=1, duration="PT2M")
    del item["snippet"]["thumbnails"]["high"]
    fake_client = FakeYouTubeClient(_channel_responses([item]))
    fetcher = YouTubeVideoFetcher(client_factory=lambda _api_key: fake_client)

    processed = asyncio.run(fetcher.fetch("key", "UC_healthbook"))

    assert processed.hero_video is not None
    assert processed.hero_video.thumbnail == "https://img/v1/mq.jpg"


def test_fetcher_empty_uploads_skips_video_lookup() -> None:
    fake_client = FakeYouTubeClient(_channel_responses([]))
    fetcher = YouTubeVideoFetcher(client_factory=lambda _api_key: fake_client)

    processed = asyncio.run(fetcher.fetch("key", "UC_healthbook"))

    assert processed == ProcessedVideos.empty()
    assert "videos" not in fake_client.resources_called()


def test_fetcher_wraps_remote_failures() -> None:
    responses = _channel_responses([_video_item("v1", hours_ago=1, duration="PT2M")])
    responses["playlistItems"] = ConnectionError("connection reset by peer")
    fake_client = FakeYouTubeClient(responses)
    fetcher = YouTubeVideoFetcher(client_factory=lambda _api_key: fake_client)

    with pytest.raises(YouTubeRemoteError) as exc_info:
        asyncio.run(fetcher.fetch("key", "UC_healthbook"))

    assert exc_info.value.stage == "playlist_items"
    assert isinstance(exc_info.value.__cause__, ConnectionError)
    assert "videos" not in fake_client.resources_called()


def test_fetcher_rejects_malformed_payloads() -> None:
    responses = _channel_responses([_video_item("v1", hours_ago=1, duration="PT2M")])
    responses["channels"] = {"items": [{"contentDetails": {}}]}
    fetcher = YouTubeVideoFetcher(client_factory=lambda _api_key: FakeYouTubeClient(responses))

    with pytest.raises(MalformedResponseError):
        asyncio.run(fetcher.fetch("key", "UC_healthbook"))


def test_fetcher_rejects_video_without_publish_time() -> None:
    item = _video_item("v1", hours_ago=1, duration="PT2M")
    item["snippet"]["publishedAt"] = "yesterday"
    fetcher = YouTubeVideoFetcher(
        client_factory=lambda _api_key: FakeYouTubeClient(_channel_responses([item]))
    )

    with pytest.raises(MalformedResponseError):
        asyncio.run(fetcher.fetch("key", "UC_healthbook"))


def test_fetcher_unknown_channel_id_raises_not_found() -> None:
    responses = _channel_responses([])
    responses["channels"] = {"items": []}
    fetcher = YouTubeVideoFetcher(client_factory=lambda _api_key: FakeYouTubeClient(responses))

    with pytest.raises(ChannelNotFoundError):
        asyncio.run(fetcher.fetch("key", "UC_unknown"))
