"""Tests for identity derivation, phase mapping and snapshot extraction."""

from __future__ import annotations

import logging

from now_playing.services.fake_provider import FakeMediaProvider
from now_playing.services.media_provider import ProviderError
from now_playing.services.track_state import (
    PHASE_CODES,
    TrackSnapshot,
    derive_identity,
    extract_snapshot,
    map_playback_phase,
)


def _provider(**fields) -> FakeMediaProvider:
    provider = FakeMediaProvider(icons={"app-icon": b"ICON"})
    defaults = {
        "title": "Song",
        "artist": "Artist",
        "album": "Album",
        "genre": "Rock",
        "duration_ms": 180_000,
        "position_ms": 1_000,
    }
    defaults.update(fields)
    provider.add_session("p1", **defaults)
    return provider


def test_derive_identity_is_pure_and_treats_absent_as_empty() -> None:
    assert derive_identity("A", "B", "C") == "A:B:C"
    assert derive_identity("A", "B", "C") == derive_identity("A", "B", "C")
    assert derive_identity(None, None, None) == "::"
    assert derive_identity("", None, "") == derive_identity(None, "", None)
    assert derive_identity("A", None, "C") == "A::C"


def test_map_playback_phase_is_case_insensitive() -> None:
    assert map_playback_phase("Playing") == "playing"
    assert map_playback_phase("PAUSED") == "paused"
    assert map_playback_phase(" stopped ") == "stopped"
    assert map_playback_phase("buffering") == "unknown"
    assert map_playback_phase(None) == "unknown"
    assert map_playback_phase(3) == "unknown"


def test_new_identity_playing_carries_artwork_and_icon() -> None:
    provider = _provider(art_bytes=b"ART", art_uri="https://example.invalid/a.png")

    snapshot = extract_snapshot(provider, "p1", None, "app-icon")

    assert snapshot is not None
    assert snapshot.identity == "Song:Artist:Album"
    assert snapshot.phase == "playing"
    assert snapshot.has_artwork is True
    assert snapshot.image == b"ART"
    assert snapshot.image_uri is None
    assert snapshot.source_icon == b"ICON"
    assert snapshot.position_ms == 1_000
    assert snapshot.duration_ms == 180_000


def test_image_uri_used_when_art_bytes_missing() -> None:
    provider = _provider(art_uri="https://example.invalid/a.png")

    snapshot = extract_snapshot(provider, "p1", "Other:Track:Here")

    assert snapshot is not None
    assert snapshot.image is None
    assert snapshot.image_uri == "https://example.invalid/a.png"
    payload = snapshot.to_payload()
    assert payload["imageUri"] == "https://example.invalid/a.png"
    assert "image" not in payload


def test_art_uri_is_loaded_only_for_a_new_track() -> None:
    uri = "file:///covers/a.png"
    provider = FakeMediaProvider(art={uri: b"COVER"})
    provider.add_session("p1", title="Song", artist="Artist", art_uri=uri)

    first = extract_snapshot(provider, "p1", None)
    assert first is not None
    assert first.image == b"COVER"
    assert first.image_uri is None
    for _ in range(9):
        assert extract_snapshot(provider, "p1", first.identity) is not None

    assert provider.art_loads == 1


def test_art_load_failure_keeps_the_uri() -> None:
    class ArtFailingProvider(FakeMediaProvider):
        def load_art(self, art_uri: str) -> bytes | None:
            raise ProviderError("artwork unreadable")

    provider = ArtFailingProvider()
    provider.add_session("p1", title="Song", art_uri="file:///covers/a.png")

    snapshot = extract_snapshot(provider, "p1", None)

    assert snapshot is not None
    assert snapshot.has_artwork is True
    assert snapshot.image is None
    assert snapshot.image_uri == "file:///covers/a.png"


def test_same_identity_skips_artwork() -> None:
    provider = _provider(art_bytes=b"ART")

    snapshot = extract_snapshot(provider, "p1", "Song:Artist:Album", "app-icon")

    assert snapshot is not None
    assert snapshot.has_artwork is False
    assert snapshot.image is None
    assert snapshot.source_icon is None
    payload = snapshot.to_payload()
    assert "image" not in payload
    assert "imageUri" not in payload
    assert "sourceIcon" not in payload


def test_unavailable_metadata_or_status_yields_none() -> None:
    provider = _provider()
    provider.clear_metadata("p1")
    assert extract_snapshot(provider, "p1", None) is None

    provider = _provider(state=None)
    assert extract_snapshot(provider, "p1", None) is None


def test_unknown_phase_is_filtered(caplog) -> None:
    provider = _provider(state="Buffering")

    with caplog.at_level(logging.DEBUG, logger="now_playing.services.track_state"):
        assert extract_snapshot(provider, "p1", None) is None

    assert any("Buffering" in record.message for record in caplog.records)


def test_paused_other_track_is_ignored_only_while_something_is_displayed() -> None:
    provider = _provider(state="paused")

    assert extract_snapshot(provider, "p1", "Other:Track:Here") is None
    first = extract_snapshot(provider, "p1", None)
    assert first is not None
    assert first.phase == "paused"
    assert first.has_artwork is True
    same = extract_snapshot(provider, "p1", "Song:Artist:Album")
    assert same is not None
    assert same.phase == "paused"


def test_stopped_reported_only_for_displayed_track() -> None:
    provider = _provider(state="stopped", art_bytes=b"ART")

    assert extract_snapshot(provider, "p1", None) is None
    assert extract_snapshot(provider, "p1", "Other:Track:Here") is None
    snapshot = extract_snapshot(provider, "p1", "Song:Artist:Album")
    assert snapshot is not None
    assert snapshot.phase == "stopped"
    assert snapshot.has_artwork is False


def test_provider_errors_are_absorbed() -> None:
    provider = _provider()
    provider.fail_next("p1")

    assert extract_snapshot(provider, "p1", None) is None
    assert extract_snapshot(provider, "missing", None) is None
    assert extract_snapshot(provider, "p1", None) is not None


def test_icon_failure_only_drops_icon() -> None:
    class IconFailingProvider(FakeMediaProvider):
        def load_icon(self, icon_hint: object) -> bytes | None:
            raise ProviderError("icon decode failed")

    provider = IconFailingProvider()
    provider.add_session("p1", title="Song", art_bytes=b"ART")

    snapshot = extract_snapshot(provider, "p1", None, "app-icon")

    assert snapshot is not None
    assert snapshot.source_icon is None
    assert snapshot.image == b"ART"


def test_payload_uses_wire_phase_codes() -> None:
    assert PHASE_CODES == {"playing": 0, "paused": 1, "stopped": 2}
    snapshot = TrackSnapshot(
        identity="A:B:C",
        source_package="org.example.player",
        phase="paused",
        album="C",
        title="A",
        artist="B",
        duration_ms=10,
        position_ms=5,
    )
    assert snapshot.to_payload() == {
        "id": "A:B:C",
        "source": "org.example.player",
        "state": 1,
        "album": "C",
        "title": "A",
        "artist": "B",
        "genre": None,
        "duration": 10,
        "position": 5,
    }
