from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from time import perf_counter
from typing import Any, Literal, Protocol

import structlog

TelemetryValue = bool | int | float | str | None

# Substring match against lower-cased attribute names.
_REDACTED_KEY_FRAGMENTS: tuple[str, ...] = (
    "api_key",
    "apikey",
    "authorization",
    "cookie",
    "developerkey",
    "secret",
    "token",
)
_REDACTED = "[redacted]"
_MAX_STRING_LENGTH = 160


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        ...


class NoOpTelemetrySink:
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        _ = (event_name, attributes)


class StructuredLogTelemetrySink:
    """Writes each event through the `channel_feed.telemetry` logger (its own file)."""

    def __init__(self) -> None:
        self._logger = structlog.get_logger("channel_feed.telemetry")

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self._logger.info("telemetry", telemetry_event=event_name, **dict(attributes))


@dataclass(frozen=True)
class TelemetryClient:
    enabled: bool
    sink: TelemetrySink

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False, sink=NoOpTelemetrySink())

    def emit(self, event_name: str, **attributes: Any) -> None:
        if self.enabled:
            self.sink.emit(event_name=event_name, attributes=sanitize_attributes(attributes))

    @contextmanager
    def span(self, event_prefix: str, **attributes: Any) -> Iterator[None]:
        """Emit `<prefix>.start`, then `<prefix>.finish` or `<prefix>.error`.

        Both closing events carry `duration_ms`; the error is re-raised.
        """
        self.emit(f"{event_prefix}.start", **attributes)
        started_at = perf_counter()
        try:
            yield
        except Exception as exc:
            self.emit(
                f"{event_prefix}.error",
                **attributes,
                duration_ms=_elapsed_ms(started_at),
                error_type=type(exc).__name__,
            )
            raise
        self.emit(
            f"{event_prefix}.finish",
            **attributes,
            duration_ms=_elapsed_ms(started_at),
            outcome="ok",
        )


_SINK_FACTORIES: dict[str, Callable[[], TelemetrySink]] = {
    "log": StructuredLogTelemetrySink,
}


def build_telemetry_client(*, enabled: bool, sink: Literal["none", "log"]) -> TelemetryClient:
    sink_factory = _SINK_FACTORIES.get(sink)
    if not enabled or sink_factory is None:
        return TelemetryClient.disabled()
    return TelemetryClient(enabled=True, sink=sink_factory())


def sanitize_attributes(attributes: Mapping[str, Any]) -> dict[str, TelemetryValue]:
    """Lower-case keys, redact credentials and flatten values to scalars."""
    sanitized: dict[str, TelemetryValue] = {}
    for raw_key, raw_value in attributes.items():
        key = str(raw_key).strip().lower()
        if not key:
            continue
        if any(fragment in key for fragment in _REDACTED_KEY_FRAGMENTS):
            sanitized[key] = _REDACTED
        else:
            sanitized[key] = _scalar(raw_value)
    return sanitized


def _scalar(value: Any) -> TelemetryValue:
    if value is None or isinstance(value, bool | int | float):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, str):
        compact = " ".join(value.split())
        if len(compact) > _MAX_STRING_LENGTH:
            return f"{compact[:_MAX_STRING_LENGTH]}..."
        return compact
    return type(value).__name__


def _elapsed_ms(started_at: float) -> int:
    return int((perf_counter() - started_at) * 1000)
