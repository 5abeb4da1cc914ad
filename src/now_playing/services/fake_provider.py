"""Fake media-session provider for deterministic testing and demos."""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Any

from .media_provider import MediaMetadata, PlaybackStatus, ProviderError

DEFAULT_SOURCE_PACKAGE = "org.example.player"


@dataclass
class FakeSession:
    metadata: MediaMetadata | None
    raw_state: str | None = "playing"
    position_ms: int = 0
    source_package: str = DEFAULT_SOURCE_PACKAGE
    scripted_states: deque[str | None] = field(default_factory=deque)
    metadata_failures: int = 0


class FakeMediaProvider:
    """In-memory sessions keyed by handle, mutable from tests."""

    def __init__(
        self,
        *,
        icons: dict[str, bytes] | None = None,
        art: dict[str, bytes] | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, FakeSession] = {}
        self._icons = dict(icons or {})
        self._art = dict(art or {})
        self.metadata_calls = 0
        self.status_calls = 0
        self.art_loads = 0

    def add_session(
        self,
        handle: str,
        *,
        title: str | None = None,
        artist: str | None = None,
        album: str | None = None,
        genre: str | None = None,
        duration_ms: int = 0,
        state: str | None = "playing",
        position_ms: int = 0,
        art_bytes: bytes | None = None,
        art_uri: str | None = None,
        source_package: str = DEFAULT_SOURCE_PACKAGE,
    ) -> None:
        metadata = MediaMetadata(
            title=title,
            artist=artist,
            album=album,
            genre=genre,
            duration_ms=duration_ms,
            art_bytes=art_bytes,
            art_uri=art_uri,
        )
        with self._lock:
            self._sessions[handle] = FakeSession(
                metadata=metadata,
                raw_state=state,
                position_ms=position_ms,
                source_package=source_package,
            )

    def set_track(
        self,
        handle: str,
        *,
        title: str | None,
        artist: str | None,
        album: str | None,
        **fields: Any,
    ) -> None:
        """Switch the session to another track, resetting its position."""
        with self._lock:
            session = self._session(handle)
            base = session.metadata or MediaMetadata()
            session.metadata = replace(
                base, title=title, artist=artist, album=album, **fields
            )
            session.position_ms = 0

    def clear_metadata(self, handle: str) -> None:
        with self._lock:
            self._session(handle).metadata = None

    def set_state(self, handle: str, state: str | None) -> None:
        with self._lock:
            self._session(handle).raw_state = state

    def set_position(self, handle: str, position_ms: int) -> None:
        with self._lock:
            self._session(handle).position_ms = max(0, int(position_ms))

    def script_states(self, handle: str, states: Iterable[str | None]) -> None:
        """Queue raw states returned by the next status reads, in order.

        `None` entries make that read report the status as unavailable. Once
        the script runs out the session's own state is reported again.
        """
        with self._lock:
            self._session(handle).scripted_states.extend(states)

    def fail_next(self, handle: str, count: int = 1) -> None:
        with self._lock:
            self._session(handle).metadata_failures += count

    def remove(self, handle: str) -> None:
        with self._lock:
            self._sessions.pop(handle, None)

    def advance(self, ms: int) -> None:
        """Move every playing session forward by `ms`."""
        with self._lock:
            for session in self._sessions.values():
                if session.raw_state != "playing":
                    continue
                duration = session.metadata.duration_ms if session.metadata else 0
                position = session.position_ms + ms
                if duration > 0:
                    position = min(position, duration)
                session.position_ms = position

    def list_handles(self) -> list[str]:
        with self._lock:
            return sorted(self._sessions)

    def get_metadata(self, handle: str) -> MediaMetadata | None:
        with self._lock:
            self.metadata_calls += 1
            session = self._session(handle)
            if session.metadata_failures > 0:
                session.metadata_failures -= 1
                raise ProviderError(f"metadata read failed for {handle}")
            return session.metadata

    def get_playback_status(self, handle: str) -> PlaybackStatus | None:
        with self._lock:
            self.status_calls += 1
            session = self._session(handle)
            if session.scripted_states:
                raw_state = session.scripted_states.popleft()
            else:
                raw_state = session.raw_state
            if raw_state is None:
                return None
            return PlaybackStatus(raw_state=raw_state, position_ms=session.position_ms)

    def get_source_package(self, handle: str) -> str:
        with self._lock:
            return self._session(handle).source_package

    def load_icon(self, icon_hint: object) -> bytes | None:
        if not isinstance(icon_hint, str):
            return None
        return self._icons.get(icon_hint)

    def load_art(self, art_uri: str) -> bytes | None:
        with self._lock:
            self.art_loads += 1
        return self._art.get(art_uri)

    def _session(self, handle: str) -> FakeSession:
        session = self._sessions.get(handle)
        if session is None:
            raise ProviderError(f"no media session {handle!r}")
        return session


def build_demo_provider() -> FakeMediaProvider:
    """Provider with one playing session, used by `--provider fake`."""
    provider = FakeMediaProvider()
    provider.add_session(
        "demo",
        title="Demo Track",
        artist="Now Playing",
        album="Fixtures",
        genre="Test",
        duration_ms=215_000,
        position_ms=12_000,
        art_uri="https://example.invalid/cover.png",
        source_package="now_playing.demo",
    )
    return provider
