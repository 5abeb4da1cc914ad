"""Last-sent state cell and ordered event delivery to the consumer.

`EventSink.emit` records the snapshot in the shared `LastSentCell` right away
and hands the event to a single dispatcher task, so the consumer sees events
one at a time and in acceptance order.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable
from contextlib import suppress
from typing import Callable

from now_playing.events import NowPlayingChanged
from now_playing.services.track_state import TrackSnapshot

logger = logging.getLogger(__name__)

DRAIN_TIMEOUT_S = 2.0


class LastSentCell:
    """Lock-guarded holder of the most recently emitted snapshot."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot: TrackSnapshot | None = None

    def identity(self) -> str | None:
        with self._lock:
            return self._snapshot.identity if self._snapshot is not None else None

    def snapshot(self) -> TrackSnapshot | None:
        with self._lock:
            return self._snapshot

    def store(self, snapshot: TrackSnapshot | None) -> None:
        with self._lock:
            self._snapshot = snapshot


class EventSink:
    """Forwards accepted snapshots (or the cleared marker) to a consumer."""

    def __init__(
        self,
        last_sent: LastSentCell,
        deliver: Callable[[object], Awaitable[None]],
    ) -> None:
        self._last_sent = last_sent
        self._deliver = deliver
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[TrackSnapshot | None] | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None

    async def start(self) -> None:
        if self._task is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._task = asyncio.create_task(
            self._dispatch_loop(self._queue), name="now-playing-delivery"
        )

    async def shutdown(self, *, drain_timeout_s: float = DRAIN_TIMEOUT_S) -> None:
        """Deliver what is already queued (bounded), then stop the dispatcher."""
        if self._task is None:
            return
        if self._queue is not None:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout_s)
            except asyncio.TimeoutError:
                logger.warning(
                    "Dropping %d undelivered now-playing events on shutdown",
                    self._queue.qsize(),
                )
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        self._queue = None
        self._loop = None

    def emit(self, snapshot: TrackSnapshot | None) -> None:
        """Record `snapshot` as last sent and queue it for delivery.

        `None` is the cleared marker: nothing should be displayed any more.
        Safe to call from worker threads; delivery still happens on the loop.
        """
        self._last_sent.store(snapshot)
        queue = self._queue
        loop = self._loop
        if queue is None or loop is None:
            logger.warning("Event sink not started; dropping now-playing event")
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            queue.put_nowait(snapshot)
        else:
            loop.call_soon_threadsafe(queue.put_nowait, snapshot)

    async def join(self) -> None:
        """Wait until every queued event has been delivered."""
        if self._queue is not None:
            await self._queue.join()

    def current_snapshot(self) -> TrackSnapshot | None:
        return self._last_sent.snapshot()

    async def _dispatch_loop(self, queue: asyncio.Queue[TrackSnapshot | None]) -> None:
        while True:
            snapshot = await queue.get()
            try:
                await self._deliver(NowPlayingChanged(snapshot))
            except Exception as exc:
                logger.exception("Now-playing consumer failed: %s", exc)
            finally:
                queue.task_done()
