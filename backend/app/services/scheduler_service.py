from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from uuid import uuid4

from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.telemetry import TelemetryClient

LOGGER = logging.getLogger("channel_feed.scheduler")
STOP_TIMEOUT_SECONDS = 3.0

TickCallable = Callable[[], Awaitable[None]]


class SchedulerService:
    """Run an async tick every `interval_seconds` on the current event loop.

    The first tick fires one interval after `start()`. A failing tick is logged
    and the loop keeps going.
    """

    def __init__(
        self,
        tick: TickCallable,
        interval_seconds: float,
        *,
        tick_type: str = "youtube_refresh",
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._tick = tick
        self._interval_seconds = max(0.01, interval_seconds)
        self._tick_type = tick_type
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return

        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(
            self._run_loop(self._stop_event),
            name=f"channel-feed-scheduler-{self._tick_type}",
        )
        LOGGER.info(
            "scheduler started tick_type=%s interval_seconds=%s",
            self._tick_type,
            self._interval_seconds,
        )

    async def stop(self) -> None:
        task = self._task
        if self._stop_event is not None:
            self._stop_event.set()
        self._task = None
        self._stop_event = None
        if task is None:
            return

        try:
            await asyncio.wait_for(task, timeout=STOP_TIMEOUT_SECONDS)
        except TimeoutError:
            LOGGER.warning(
                "scheduler stop timed out; in-flight tick cancelled tick_type=%s",
                self._tick_type,
            )
        LOGGER.info("scheduler stopped tick_type=%s", self._tick_type)

    async def _run_loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval_seconds)
            except TimeoutError:
                await self._run_tick()

    async def _run_tick(self) -> None:
        tick_id = uuid4().hex
        tick_tokens = bind_contextvars(scheduler_tick_id=tick_id, scheduler_tick_type=self._tick_type)
        try:
            with self._telemetry.span("scheduler.tick", tick_id=tick_id, tick_type=self._tick_type):
                await self._tick()
        except Exception:
            LOGGER.warning("scheduler tick failed tick_type=%s", self._tick_type, exc_info=True)
        finally:
            reset_contextvars(**tick_tokens)
