"""Session lifecycle handling between discovery signals and the sampler.

`SessionMonitor` is the single owner of the last-sent state, the event sink and
the sampling loop. It turns the two inbound signals ("media appeared",
"media removed") into sampler start/stop calls and emits the cleared marker
when the track on display goes away with its session. It also serves
on-demand "what is playing now" requests against the most recently seen
handle.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Callable

from now_playing.services.event_sink import EventSink, LastSentCell
from now_playing.services.media_provider import (
    IconHint,
    MediaHandle,
    MediaProvider,
    select_active_handle,
)
from now_playing.services.sampler import SamplerConfig, SamplerState, TrackSampler
from now_playing.services.track_state import TrackSnapshot, derive_identity
from now_playing.utils.async_utils import run_blocking

logger = logging.getLogger(__name__)


class SessionMonitor:
    """Starts/stops exactly one sampling loop in response to session signals."""

    def __init__(
        self,
        *,
        provider: MediaProvider,
        emit_event: Callable[[object], Awaitable[None]],
        config: SamplerConfig | None = None,
    ) -> None:
        self._provider = provider
        self._last_sent = LastSentCell()
        self._sink = EventSink(self._last_sent, emit_event)
        self._sampler = TrackSampler(provider, self._sink, self._last_sent, config)
        self._lock = asyncio.Lock()
        self._connected = False
        self._handle: MediaHandle | None = None
        self._icon_hint: IconHint = None

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def handle(self) -> MediaHandle | None:
        return self._handle

    @property
    def sampler_state(self) -> SamplerState:
        return self._sampler.state

    @property
    def sampling(self) -> bool:
        return self._sampler.is_running

    async def start(self) -> None:
        """Start event delivery and begin accepting session signals."""
        await self._sink.start()
        self._connected = True
        logger.info("Session monitor connected")

    async def shutdown(self) -> None:
        """Stop sampling, deliver pending events and stop accepting signals."""
        self._connected = False
        async with self._lock:
            await self._sampler.stop()
        await self._sink.shutdown()
        logger.info("Session monitor disconnected")

    async def on_media_appeared(
        self, handle: MediaHandle, icon_hint: IconHint = None
    ) -> None:
        if not self._connected:
            logger.warning(
                "Media appeared for %r but monitor is not connected", handle
            )
            return
        async with self._lock:
            self._handle = handle
            self._icon_hint = icon_hint
            await self._sampler.stop()
            await self._sampler.start(handle, icon_hint)

    async def on_media_removed(self, handle: MediaHandle) -> bool:
        """Stop sampling and clear the display if `handle` owned it.

        Returns whether a cleared event was emitted. A failed read of the
        departing session never clears.
        """
        if not self._connected:
            return False
        async with self._lock:
            await self._sampler.stop()
            if handle == self._handle:
                self._handle = None
                self._icon_hint = None
            try:
                metadata = await run_blocking(self._provider.get_metadata, handle)
            except Exception as exc:
                logger.debug("Could not read removed session %r: %s", handle, exc)
                return False
            if metadata is None:
                return False
            identity = derive_identity(metadata.title, metadata.artist, metadata.album)
            if identity != self._last_sent.identity():
                return False
            logger.info("Track %s ended with its session; clearing", identity)
            self._sink.emit(None)
            return True

    async def request_update(self, handle: MediaHandle | None = None) -> bool:
        """Run one extraction now and deliver it like a polled sample.

        Uses `handle` when given, otherwise the most recently seen handle,
        otherwise the provider's preferred active session. A running sampling
        loop keeps its own counters. Waits for any in-flight session change
        to finish first. Returns whether a snapshot was emitted.
        """
        if not self._connected:
            logger.warning("Update requested but monitor is not connected")
            return False
        async with self._lock:
            if not self._connected:
                return False
            if handle is None:
                handle = self._handle
            icon_hint = self._icon_hint if handle == self._handle else None
            if handle is None:
                handle = await run_blocking(find_active_handle, self._provider)
                if handle is None:
                    logger.info("No active media session for update request")
                    return False
            if self._handle is None:
                self._handle = handle
                self._icon_hint = icon_hint
            snapshot = await self._sampler.sample_once(handle, icon_hint)
            return snapshot is not None

    def current_snapshot(self) -> TrackSnapshot | None:
        return self._sink.current_snapshot()

    async def wait_for_sampler(self) -> None:
        """Wait until the current sampling loop exits (stopped or stale)."""
        await self._sampler.wait()

    async def flush(self) -> None:
        """Wait until every emitted event has reached the consumer."""
        await self._sink.join()


def find_active_handle(provider: MediaProvider) -> MediaHandle | None:
    """Return the provider's playing session, else a paused one, else `None`."""
    try:
        handles = provider.list_handles()
    except Exception as exc:
        logger.debug("Listing media sessions failed: %s", exc)
        return None
    return select_active_handle(provider, handles)
