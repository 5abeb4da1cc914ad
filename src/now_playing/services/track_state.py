"""Track identity, playback phase and snapshot extraction.

`extract_snapshot` samples one media session and decides whether the sample is
worth reporting given the identity currently on display. It never raises: a
bad read is reported as `None` so the polling loop can keep going.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal

from now_playing.services.media_provider import (
    IconHint,
    MediaHandle,
    MediaProvider,
)

logger = logging.getLogger(__name__)

PlaybackPhase = Literal["playing", "paused", "stopped", "unknown"]

PHASE_CODES: dict[str, int] = {"playing": 0, "paused": 1, "stopped": 2}

_RAW_PHASES: dict[str, PlaybackPhase] = {
    "playing": "playing",
    "paused": "paused",
    "stopped": "stopped",
}


def derive_identity(title: str | None, artist: str | None, album: str | None) -> str:
    """Return the `title:artist:album` key used to compare tracks."""
    return f"{title or ''}:{artist or ''}:{album or ''}"


def map_playback_phase(raw_state: object) -> PlaybackPhase:
    """Normalize a provider raw state; anything unrecognized is `unknown`."""
    if not isinstance(raw_state, str):
        return "unknown"
    return _RAW_PHASES.get(raw_state.strip().lower(), "unknown")


@dataclass(frozen=True)
class TrackSnapshot:
    """One accepted point-in-time view of the tracked session."""

    identity: str
    source_package: str
    phase: PlaybackPhase
    album: str | None = None
    title: str | None = None
    artist: str | None = None
    genre: str | None = None
    duration_ms: int = 0
    position_ms: int = 0
    source_icon: bytes | None = None
    image: bytes | None = None
    image_uri: str | None = None
    has_artwork: bool = False

    def to_payload(self) -> dict[str, Any]:
        """Build the consumer-facing payload for this snapshot."""
        payload: dict[str, Any] = {
            "id": self.identity,
            "source": self.source_package,
            "state": PHASE_CODES[self.phase],
            "album": self.album,
            "title": self.title,
            "artist": self.artist,
            "genre": self.genre,
            "duration": self.duration_ms,
            "position": self.position_ms,
        }
        if self.has_artwork:
            payload["sourceIcon"] = self.source_icon
            if self.image is not None:
                payload["image"] = self.image
            else:
                payload["imageUri"] = self.image_uri
        return payload


def extract_snapshot(
    provider: MediaProvider,
    handle: MediaHandle,
    last_sent_identity: str | None,
    icon_hint: IconHint = None,
) -> TrackSnapshot | None:
    """Sample `handle` and return a snapshot when it should be reported.

    Returns `None` when metadata or status is unavailable, when the phase is
    unknown, when a different track shows up paused while another is on
    display, and when a track other than the displayed one reports stopped.
    Artwork is only loaded on the first sighting of a new identity.
    """
    try:
        metadata = provider.get_metadata(handle)
        if metadata is None:
            return None
        identity = derive_identity(metadata.title, metadata.artist, metadata.album)

        status = provider.get_playback_status(handle)
        if status is None:
            return None

        phase = map_playback_phase(status.raw_state)
        if phase == "unknown":
            logger.debug(
                "Filtered sample %s: raw state %r", identity, status.raw_state
            )
            return None
        if (
            phase == "paused"
            and last_sent_identity is not None
            and identity != last_sent_identity
        ):
            logger.debug(
                "Ignoring paused track %s; displaying %s", identity, last_sent_identity
            )
            return None
        if phase == "stopped" and identity != last_sent_identity:
            return None

        source_package = provider.get_source_package(handle)
        if phase == "stopped" or identity == last_sent_identity:
            return TrackSnapshot(
                identity=identity,
                source_package=source_package,
                phase=phase,
                album=metadata.album,
                title=metadata.title,
                artist=metadata.artist,
                genre=metadata.genre,
                duration_ms=metadata.duration_ms,
                position_ms=status.position_ms,
            )

        image = metadata.art_bytes
        if image is None and metadata.art_uri:
            image = _load_art(provider, metadata.art_uri)
        return TrackSnapshot(
            identity=identity,
            source_package=source_package,
            phase=phase,
            album=metadata.album,
            title=metadata.title,
            artist=metadata.artist,
            genre=metadata.genre,
            duration_ms=metadata.duration_ms,
            position_ms=status.position_ms,
            source_icon=_load_icon(provider, icon_hint),
            image=image,
            image_uri=metadata.art_uri if image is None else None,
            has_artwork=True,
        )
    except Exception as exc:
        logger.debug("Sample read failed for %r: %s", handle, exc)
        return None


def _load_art(provider: MediaProvider, art_uri: str) -> bytes | None:
    try:
        return provider.load_art(art_uri)
    except Exception as exc:
        logger.debug("Artwork load failed for %s: %s", art_uri, exc)
        return None


def _load_icon(provider: MediaProvider, icon_hint: IconHint) -> bytes | None:
    if icon_hint is None:
        return None
    try:
        return provider.load_icon(icon_hint)
    except Exception as exc:
        logger.debug("Icon load failed for %r: %s", icon_hint, exc)
        return None
