"""Background sampling loop for one media session.

`TrackSampler` owns at most one polling task at a time. Each iteration runs the
snapshot extractor against the tracked handle, forwards accepted snapshots to
the event sink, and stops on its own once the session has reported the same
phase for `max_same_state_count` consecutive samples. Stopping is cooperative:
the stop event wakes the interval sleep immediately and `stop()` waits a
bounded time for the task to exit before giving up on it.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from typing import Literal

from now_playing.services.event_sink import EventSink, LastSentCell
from now_playing.services.media_provider import IconHint, MediaHandle, MediaProvider
from now_playing.services.track_state import (
    PlaybackPhase,
    TrackSnapshot,
    extract_snapshot,
)
from now_playing.utils.async_utils import run_blocking

logger = logging.getLogger(__name__)

SamplerState = Literal["idle", "running", "stopping", "stopped"]

DEFAULT_POLL_INTERVAL_S = 0.5
DEFAULT_MAX_SAME_STATE_COUNT = 10
DEFAULT_STOP_TIMEOUT_S = 1.0
POLL_INTERVAL_MIN_S = 0.01
POLL_INTERVAL_MAX_S = 10.0
STOP_TIMEOUT_MIN_S = 0.05
STOP_TIMEOUT_MAX_S = 10.0


@dataclass(frozen=True)
class SamplerConfig:
    """Polling cadence and staleness limits (numeric values are clamped)."""

    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    max_same_state_count: int = DEFAULT_MAX_SAME_STATE_COUNT
    stop_timeout_s: float = DEFAULT_STOP_TIMEOUT_S

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "poll_interval_s",
            _clamp_float(
                float(self.poll_interval_s), POLL_INTERVAL_MIN_S, POLL_INTERVAL_MAX_S
            ),
        )
        object.__setattr__(
            self, "max_same_state_count", max(1, int(self.max_same_state_count))
        )
        object.__setattr__(
            self,
            "stop_timeout_s",
            _clamp_float(
                float(self.stop_timeout_s), STOP_TIMEOUT_MIN_S, STOP_TIMEOUT_MAX_S
            ),
        )


class TrackSampler:
    """Owns the cancellable polling task for the currently tracked session."""

    def __init__(
        self,
        provider: MediaProvider,
        sink: EventSink,
        last_sent: LastSentCell,
        config: SamplerConfig | None = None,
    ) -> None:
        self._provider = provider
        self._sink = sink
        self._last_sent = last_sent
        self._config = config or SamplerConfig()
        self._task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None
        self._state: SamplerState = "idle"

    @property
    def config(self) -> SamplerConfig:
        return self._config

    @property
    def state(self) -> SamplerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, handle: MediaHandle, icon_hint: IconHint = None) -> None:
        """Start polling `handle`, fully stopping any previous loop first."""
        await self.stop()
        stop_event = asyncio.Event()
        self._stop_event = stop_event
        self._state = "running"
        self._task = asyncio.create_task(
            self._poll_loop(handle, icon_hint, stop_event),
            name="now-playing-sampler",
        )

    async def stop(self) -> None:
        """Signal the loop to exit and wait (bounded) for it.

        Idempotent. The task reference is always dropped, even when the loop
        does not exit in time. Called from inside the loop itself it only
        signals.
        """
        task = self._task
        stop_event = self._stop_event
        self._task = None
        self._stop_event = None
        if task is None:
            return
        if stop_event is not None:
            stop_event.set()
        if task.done():
            self._state = "stopped"
            return
        self._state = "stopping"
        if task is asyncio.current_task():
            return
        try:
            await asyncio.wait_for(
                asyncio.shield(task), timeout=self._config.stop_timeout_s
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Sampling loop did not stop within %.2fs; cancelling it",
                self._config.stop_timeout_s,
            )
            task.cancel()
        self._state = "stopped"

    async def wait(self) -> None:
        """Wait until the current loop (if any) has exited."""
        task = self._task
        if task is None:
            return
        await asyncio.wait({task})

    async def sample_once(
        self, handle: MediaHandle, icon_hint: IconHint = None
    ) -> TrackSnapshot | None:
        """Run one extraction and emit the result without touching loop counters."""
        snapshot = await self._extract(handle, icon_hint)
        if snapshot is not None:
            self._sink.emit(snapshot)
        return snapshot

    async def _extract(
        self, handle: MediaHandle, icon_hint: IconHint
    ) -> TrackSnapshot | None:
        last_identity = self._last_sent.identity()
        return await run_blocking(
            extract_snapshot, self._provider, handle, last_identity, icon_hint
        )

    async def _poll_loop(
        self, handle: MediaHandle, icon_hint: IconHint, stop_event: asyncio.Event
    ) -> None:
        logger.info("Sampling loop started for %r", handle)
        interval = self._config.poll_interval_s
        max_same = self._config.max_same_state_count
        same_state_count = 0
        last_phase: PlaybackPhase | None = None
        reason = "stopped"
        try:
            while not stop_event.is_set():
                try:
                    snapshot = await self._extract(handle, icon_hint)
                    if stop_event.is_set():
                        break
                    if snapshot is None:
                        same_state_count = 0
                        last_phase = None
                    else:
                        self._sink.emit(snapshot)
                        if snapshot.phase == last_phase:
                            same_state_count += 1
                            if same_state_count >= max_same:
                                reason = "stale"
                                logger.info(
                                    "Phase %s unchanged for %d samples; "
                                    "stopping sampling loop",
                                    snapshot.phase,
                                    same_state_count,
                                )
                                break
                        else:
                            last_phase = snapshot.phase
                            same_state_count = 1
                except Exception as exc:
                    logger.exception("Error in sampling loop: %s", exc)
                with suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(stop_event.wait(), timeout=interval)
        finally:
            if self._task is None or self._task is asyncio.current_task():
                self._state = "stopped"
                if reason == "stale":
                    self._task = None
                    self._stop_event = None
            logger.info("Sampling loop ended for %r (%s)", handle, reason)


def _clamp_float(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(value, max_value))
