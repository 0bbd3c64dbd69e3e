from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.api.error_handlers import init_exception_handlers
from backend.app.api.routes import router
from backend.app.config import AppSettings, validate_youtube_configuration
from backend.app.dependencies import get_settings, get_telemetry, get_video_cache_service
from backend.app.logging_config import configure_application_logging
from backend.app.models.video_contracts import HealthResponse
from backend.app.services.youtube_service import ConfigurationError

LOGGER = logging.getLogger("channel_feed.app")
REQUEST_ID_HEADER = "X-Request-ID"


def health_check() -> HealthResponse:
    return HealthResponse(status="ok", timestamp=datetime.now(UTC), port=get_settings().port)


def _log_environment_status(settings: AppSettings) -> None:
    api_key = settings.youtube_api_key
    LOGGER.info(
        "environment status youtube_api_key=%s youtube_channel_handle=%s port=%s",
        f"set ({len(api_key)} chars)" if api_key is not None else "NOT SET",
        settings.youtube_channel_handle or "NOT SET",
        settings.port,
    )
    if api_key is not None:
        LOGGER.info(
            "youtube api key must have YouTube Data API v3 enabled; key restrictions "
            "(IP, HTTP referrer) and exhausted quota surface as remote errors"
        )


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_application_logging(settings)
    _log_environment_status(settings)
    cache_service = get_video_cache_service()

    if settings.auto_refresh_enabled:
        try:
            api_key, channel_handle = validate_youtube_configuration(settings)
        except ConfigurationError as exc:
            LOGGER.warning("youtube auto_refresh skipped reason=%s", exc.message)
        else:
            cache_service.start_auto_refresh(api_key, channel_handle)

    try:
        yield
    finally:
        await cache_service.stop()


def _resolve_request_id(request: Request) -> str:
    incoming = request.headers.get(REQUEST_ID_HEADER, "").strip()
    return incoming or uuid4().hex


async def request_context_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Tag logs and telemetry for one request and echo its id in `X-Request-ID`."""
    request_id = _resolve_request_id(request)
    method, path = request.method, request.url.path
    context_tokens = bind_contextvars(http_request_id=request_id, http_method=method, http_path=path)
    started_at = perf_counter()
    try:
        with get_telemetry().span("http.request", request_id=request_id, method=method, path=path):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        LOGGER.info(
            "http request method=%s path=%s status=%s duration_ms=%s",
            method,
            path,
            response.status_code,
            int((perf_counter() - started_at) * 1000),
        )
        return response
    finally:
        reset_contextvars(**context_tokens)


def create_app() -> FastAPI:
    app = FastAPI(title="Channel Feed API", version="0.1.0", lifespan=app_lifespan)
    settings = get_settings()

    app.middleware("http")(request_context_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    init_exception_handlers(app)
    app.include_router(router)
    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        response_model=HealthResponse,
        tags=["system"],
        operation_id="health_check",
    )

    return app


app = create_app()
