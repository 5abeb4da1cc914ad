"""Tests for session lifecycle handling and the on-demand query path."""

from __future__ import annotations

import asyncio
import logging

import now_playing.services.session_monitor as session_monitor_module
from now_playing.events import NowPlayingChanged
from now_playing.services.fake_provider import FakeMediaProvider
from now_playing.services.sampler import SamplerConfig
from now_playing.services.session_monitor import SessionMonitor, find_active_handle


def _run(coro):
    """Run async monitor scenario from sync test functions."""
    return asyncio.run(coro)


def _provider() -> FakeMediaProvider:
    provider = FakeMediaProvider(icons={"icon-a": b"A"})
    provider.add_session(
        "a", title="Song A", artist="Artist", album="Album", duration_ms=90_000
    )
    provider.add_session("b", title="Song B", artist="Other", album="Record")
    return provider


async def _monitor(
    provider: FakeMediaProvider, *, max_same: int = 3
) -> tuple[SessionMonitor, list[NowPlayingChanged]]:
    events: list[NowPlayingChanged] = []

    async def emit_event(event: object) -> None:
        assert isinstance(event, NowPlayingChanged)
        events.append(event)

    monitor = SessionMonitor(
        provider=provider,
        emit_event=emit_event,
        config=SamplerConfig(poll_interval_s=0.01, max_same_state_count=max_same),
    )
    await monitor.start()
    return monitor, events


def _titles(events: list[NowPlayingChanged]) -> list[str | None]:
    return [e.snapshot.title if e.snapshot is not None else None for e in events]


def test_media_appeared_starts_sampling_with_icon() -> None:
    provider = _provider()

    async def run() -> list[NowPlayingChanged]:
        monitor, events = await _monitor(provider)
        await monitor.on_media_appeared("a", "icon-a")
        assert monitor.handle == "a"
        await asyncio.wait_for(monitor.wait_for_sampler(), timeout=5)
        assert not monitor.sampling
        await monitor.flush()
        await monitor.shutdown()
        return events

    events = _run(run())

    assert _titles(events) == ["Song A"] * 3
    first = events[0].snapshot
    assert first is not None
    assert first.source_icon == b"A"


def test_media_removed_clears_displayed_track(caplog) -> None:
    provider = _provider()

    async def run() -> list[NowPlayingChanged]:
        monitor, events = await _monitor(provider)
        await monitor.on_media_appeared("a")
        await monitor.wait_for_sampler()
        with caplog.at_level(logging.INFO):
            assert await monitor.on_media_removed("a") is True
        assert monitor.current_snapshot() is None
        assert monitor.handle is None
        await monitor.shutdown()
        return events

    events = _run(run())

    assert events[-1].cleared
    assert _titles(events) == ["Song A", "Song A", "Song A", None]
    assert any("clearing" in record.message for record in caplog.records)


def test_media_removed_keeps_display_when_track_changed() -> None:
    provider = _provider()

    async def run() -> list[NowPlayingChanged]:
        monitor, events = await _monitor(provider)
        await monitor.on_media_appeared("a")
        await monitor.wait_for_sampler()
        provider.set_track("a", title="Next Song", artist="Artist", album="Album")
        assert await monitor.on_media_removed("a") is False
        current = monitor.current_snapshot()
        assert current is not None and current.title == "Song A"
        await monitor.shutdown()
        return events

    events = _run(run())

    assert not any(event.cleared for event in events)


def test_media_removed_read_failure_never_clears() -> None:
    provider = _provider()

    async def run() -> list[NowPlayingChanged]:
        monitor, events = await _monitor(provider)
        await monitor.on_media_appeared("a")
        await monitor.wait_for_sampler()
        provider.fail_next("a")
        assert await monitor.on_media_removed("a") is False
        provider.remove("a")
        assert await monitor.on_media_removed("a") is False
        await monitor.shutdown()
        return events

    events = _run(run())

    assert not any(event.cleared for event in events)


def test_media_removed_stops_a_running_loop() -> None:
    provider = _provider()

    async def run() -> None:
        monitor, _events = await _monitor(provider, max_same=10_000)
        await monitor.on_media_appeared("a")
        await asyncio.sleep(0.05)
        assert monitor.sampling
        await monitor.on_media_removed("a")
        assert not monitor.sampling
        assert monitor.sampler_state == "stopped"
        await monitor.shutdown()

    _run(run())


def test_second_appearance_replaces_the_loop() -> None:
    provider = _provider()

    async def run() -> list[NowPlayingChanged]:
        monitor, events = await _monitor(provider, max_same=10_000)
        await monitor.on_media_appeared("a")
        await asyncio.sleep(0.05)
        await monitor.on_media_appeared("b")
        assert monitor.handle == "b"
        await monitor.flush()
        count_before = len(events)
        await asyncio.sleep(0.05)
        await monitor.shutdown()
        return events[count_before:]

    later = _run(run())

    assert later
    assert set(_titles(later)) == {"Song B"}


def test_signals_ignored_while_disconnected(caplog) -> None:
    provider = _provider()
    events: list[object] = []

    async def emit_event(event: object) -> None:
        events.append(event)

    async def run() -> None:
        monitor = SessionMonitor(provider=provider, emit_event=emit_event)
        assert not monitor.connected
        with caplog.at_level(logging.WARNING):
            await monitor.on_media_appeared("a")
        assert not monitor.sampling
        assert await monitor.on_media_removed("a") is False
        assert await monitor.request_update() is False
        await monitor.start()
        assert monitor.connected
        await monitor.shutdown()
        assert not monitor.connected

    _run(run())

    assert events == []
    assert any("not connected" in record.message for record in caplog.records)


def test_request_update_uses_most_recent_handle() -> None:
    provider = _provider()

    async def run() -> list[NowPlayingChanged]:
        monitor, events = await _monitor(provider)
        await monitor.on_media_appeared("a")
        await monitor.wait_for_sampler()
        provider.set_position("a", 42_000)
        assert await monitor.request_update() is True
        await monitor.flush()
        await monitor.shutdown()
        return events

    events = _run(run())

    last = events[-1].snapshot
    assert last is not None
    assert last.title == "Song A"
    assert last.position_ms == 42_000


def test_request_update_does_not_disturb_running_loop() -> None:
    provider = _provider()

    async def run() -> list[NowPlayingChanged]:
        monitor, events = await _monitor(provider, max_same=5)
        await monitor.on_media_appeared("a")
        for _ in range(3):
            assert await monitor.request_update() is True
        await asyncio.wait_for(monitor.wait_for_sampler(), timeout=5)
        await monitor.flush()
        await monitor.shutdown()
        return events

    assert len(_run(run())) == 8


def test_request_update_falls_back_to_active_session() -> None:
    provider = _provider()
    provider.set_state("a", "paused")

    async def run() -> list[NowPlayingChanged]:
        monitor, events = await _monitor(provider)
        assert await monitor.request_update() is True
        assert monitor.handle == "b"
        await monitor.flush()
        await monitor.shutdown()
        return events

    assert _titles(_run(run())) == ["Song B"]


def test_request_update_without_sessions_does_nothing() -> None:
    provider = FakeMediaProvider()

    async def run() -> list[NowPlayingChanged]:
        monitor, events = await _monitor(provider)
        assert await monitor.request_update() is False
        await monitor.shutdown()
        return events

    assert _run(run()) == []


def test_request_update_waits_for_an_in_flight_removal(monkeypatch) -> None:
    provider = _provider()

    async def run() -> list[NowPlayingChanged]:
        gate = asyncio.Event()

        async def gated(func, /, *args, **kwargs):
            if getattr(func, "__name__", "") == "get_metadata":
                await gate.wait()
            return func(*args, **kwargs)

        monitor, events = await _monitor(provider)
        await monitor.on_media_appeared("a")
        await monitor.wait_for_sampler()
        monkeypatch.setattr(session_monitor_module, "run_blocking", gated)

        removing = asyncio.create_task(monitor.on_media_removed("a"))
        await asyncio.sleep(0.01)
        updating = asyncio.create_task(monitor.request_update())
        await asyncio.sleep(0.01)
        assert not updating.done()

        gate.set()
        assert await removing is True
        assert await updating is True
        await monitor.flush()
        await monitor.shutdown()
        return events

    events = _run(run())

    assert _titles(events) == ["Song A"] * 3 + [None, "Song A"]


def test_find_active_handle_prefers_playing_over_paused() -> None:
    provider = FakeMediaProvider()
    provider.add_session("paused", title="P", state="paused")
    provider.add_session("stopped", title="S", state="stopped")
    assert find_active_handle(provider) == "paused"
    provider.add_session("zplaying", title="Z", state="playing")
    assert find_active_handle(provider) == "zplaying"
    assert find_active_handle(FakeMediaProvider()) is None
