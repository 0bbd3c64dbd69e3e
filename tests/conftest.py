from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from backend.app.dependencies import get_video_cache_service, reset_cached_dependencies
from backend.app.main import create_app
from backend.app.services.video_cache_service import VideoCacheService
from tests.fakes import TEST_API_KEY, TEST_CHANNEL_HANDLE, FakeFetcher

_ENV_NAMES: tuple[str, ...] = (
    "YOUTUBE_API_KEY",
    "YOUTUBE_CHANNEL_HANDLE",
    "PORT",
    "CHANNEL_FEED_YOUTUBE_API_KEY",
    "CHANNEL_FEED_YOUTUBE_CHANNEL_HANDLE",
    "CHANNEL_FEED_PORT",
    "CHANNEL_FEED_AUTO_REFRESH_ENABLED",
    "CHANNEL_FEED_CACHE_TTL_SECONDS",
    "CHANNEL_FEED_CORS_ALLOW_ORIGINS",
    "CHANNEL_FEED_TELEMETRY_SINK",
)


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:  # pyright: ignore[reportUnusedFunction]
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CHANNEL_FEED_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, fake_fetcher: FakeFetcher) -> Iterator[TestClient]:
    monkeypatch.setenv("YOUTUBE_API_KEY", TEST_API_KEY)
    monkeypatch.setenv("YOUTUBE_CHANNEL_HANDLE", TEST_CHANNEL_HANDLE)
    monkeypatch.setenv("PORT", "3002")
    monkeypatch.setenv("CHANNEL_FEED_AUTO_REFRESH_ENABLED", "0")
    monkeypatch.setenv("CHANNEL_FEED_TELEMETRY_SINK", "none")
    reset_cached_dependencies()

    app = create_app()
    cache_service = VideoCacheService(fake_fetcher)
    app.dependency_overrides[get_video_cache_service] = lambda: cache_service
    with TestClient(app) as test_client:
        yield test_client

    reset_cached_dependencies()
