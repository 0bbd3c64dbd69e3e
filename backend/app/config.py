from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from backend.app.services.youtube_service import ConfigurationError

DEFAULT_DATA_DIR = ".channel-feed"
MIN_API_KEY_LENGTH = 20
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = (
    "auto_refresh_enabled",
    "telemetry_enabled",
)


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _normalize_optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if normalized:
        return normalized
    return None


class AppSettings(BaseSettings):
    """
    Canonical runtime configuration.

    Options come from `CHANNEL_FEED_*` environment variables (or `.env`). The
    YouTube credentials and port also accept their bare names
    (`YOUTUBE_API_KEY`, `YOUTUBE_CHANNEL_HANDLE`, `PORT`).
    """

    model_config = SettingsConfigDict(
        env_prefix="CHANNEL_FEED_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    # YouTube source.
    youtube_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("CHANNEL_FEED_YOUTUBE_API_KEY", "YOUTUBE_API_KEY"),
        description="YouTube Data API v3 key used for every remote call.",
    )
    youtube_channel_handle: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "CHANNEL_FEED_YOUTUBE_CHANNEL_HANDLE", "YOUTUBE_CHANNEL_HANDLE"
        ),
        description="Channel handle (e.g. `@HEALTHBOOK.OFFICIAL`) or `UC...` channel id.",
    )

    # Cache and background refresh.
    cache_ttl_seconds: int = Field(
        default=300,
        ge=1,
        description="Maximum age of the cached video snapshot; also the background refresh cadence.",
    )
    auto_refresh_enabled: bool = Field(
        default=True,
        description="Warm the cache at startup and refresh it in the background.",
    )

    # HTTP server.
    host: str = Field(default="0.0.0.0", description="Bind address for the HTTP server.")
    port: int = Field(
        default=3002,
        validation_alias=AliasChoices("CHANNEL_FEED_PORT", "PORT"),
        description="Bind port for the HTTP server.",
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed by the CORS middleware (JSON list).",
    )

    # Logging.
    log_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR) / "logs",
        description="Directory for backend log files.",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level (stdout).",
    )

    # Telemetry.
    telemetry_enabled: bool = Field(
        default=True,
        description="Enable lightweight internal telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description=(
            "Telemetry sink backend. `log` emits structured telemetry locally; "
            "`none` disables sink output."
        ),
    )

    @field_validator("youtube_api_key", "youtube_channel_handle", mode="before")
    @classmethod
    def _normalize_optional_strings(cls, value: Any) -> str | None:
        return _normalize_optional_text(value)

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("CHANNEL_FEED_TELEMETRY_SINK must be a string.")
        normalized = value.strip().lower()
        if normalized in {"none", "log"}:
            return normalized
        raise ValueError("CHANNEL_FEED_TELEMETRY_SINK must be set to: none, log.")

    @field_validator("log_dir", mode="before")
    @classmethod
    def _normalize_log_dir(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)


def validate_youtube_configuration(settings: AppSettings) -> tuple[str, str]:
    """Return `(api_key, channel_id_or_handle)` or raise before any remote call."""
    api_key = settings.youtube_api_key
    if api_key is None:
        raise ConfigurationError(
            "YOUTUBE_API_KEY environment variable is missing. Please set it in your .env file.",
            details="The YouTube API key is required to fetch videos from your channel.",
        )

    channel_handle = settings.youtube_channel_handle
    if channel_handle is None:
        raise ConfigurationError(
            "YOUTUBE_CHANNEL_HANDLE environment variable is missing. "
            "Please set it in your .env file.",
            details=(
                "The YouTube channel handle (e.g., HEALTHBOOK.OFFICIAL) is required to "
                "identify which channel to fetch videos from."
            ),
        )

    if len(api_key) < MIN_API_KEY_LENGTH:
        raise ConfigurationError(
            "YOUTUBE_API_KEY appears to be invalid. Please check your .env file.",
            details=f"YouTube API keys are typically longer than {MIN_API_KEY_LENGTH} characters.",
            title="Invalid API Key",
        )

    return api_key, channel_handle


def load_settings() -> AppSettings:
    settings = AppSettings()
    return settings.model_copy(update={"log_dir": _resolve_path(settings.log_dir)})
