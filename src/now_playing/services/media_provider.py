"""Media-session provider contracts.

The tracking engine never talks to a platform API directly. Adapters (fake,
playerctl/MPRIS) translate a platform media session into these shared read
calls. A handle is opaque to the engine: it is only passed back to the
provider that produced it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol

logger = logging.getLogger(__name__)

MediaHandle = Any
IconHint = Any


class ProviderError(RuntimeError):
    """Raised by adapters when a session cannot be read."""


@dataclass(frozen=True)
class MediaMetadata:
    """Track metadata as exposed by the media session."""

    title: str | None = None
    artist: str | None = None
    album: str | None = None
    genre: str | None = None
    duration_ms: int = 0
    art_bytes: bytes | None = None
    art_uri: str | None = None


@dataclass(frozen=True)
class PlaybackStatus:
    """Raw transport state plus position at read time."""

    raw_state: str
    position_ms: int = 0


class MediaProvider(Protocol):
    """Read-only media-session access consumed by the tracking engine.

    Every call must be safe at polling cadence and must not block
    indefinitely. `get_metadata`/`get_playback_status` return `None` when the
    session has nothing to report yet and raise on hard failures.
    """

    def get_metadata(self, handle: MediaHandle) -> MediaMetadata | None: ...

    def get_playback_status(self, handle: MediaHandle) -> PlaybackStatus | None: ...

    def get_source_package(self, handle: MediaHandle) -> str: ...

    def load_icon(self, icon_hint: IconHint) -> bytes | None: ...

    def load_art(self, art_uri: str) -> bytes | None: ...

    def list_handles(self) -> list[MediaHandle]: ...


def select_active_handle(
    provider: MediaProvider, handles: Iterable[MediaHandle]
) -> MediaHandle | None:
    """Pick the session worth tracking: playing first, then paused."""
    playing: MediaHandle | None = None
    paused: MediaHandle | None = None
    for handle in handles:
        try:
            status = provider.get_playback_status(handle)
        except Exception as exc:
            logger.debug("Skipping handle %r: %s", handle, exc)
            continue
        if status is None:
            continue
        raw = status.raw_state.strip().lower()
        if raw == "playing":
            playing = handle
        elif raw == "paused":
            paused = handle
    if playing is not None:
        return playing
    return paused
