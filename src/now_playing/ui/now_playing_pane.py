"""Now-playing pane: current track, progress and sampler status."""

from __future__ import annotations

from rich.text import Text
from textual.app import ComposeResult
from textual.widget import Widget
from textual.widgets import Static

from now_playing.services.track_state import TrackSnapshot

LABEL_STYLE = "bold #F2C94C"
NOTICE_STYLE = "bold #FF5A36"
PHASE_LABELS = {
    "playing": "Playing",
    "paused": "Paused",
    "stopped": "Stopped",
    "unknown": "Unknown",
}
BAR_WIDTH = 30


def format_clock(ms: int) -> str:
    """Format milliseconds as M:SS, or H:MM:SS from one hour up."""
    total_seconds = max(0, int(ms)) // 1000
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def format_position(position_ms: int, duration_ms: int) -> str:
    if duration_ms <= 0:
        return f"{format_clock(position_ms)} / --:--"
    shown = min(position_ms, duration_ms)
    return f"{format_clock(shown)} / {format_clock(duration_ms)}"


def progress_fraction(position_ms: int, duration_ms: int) -> float:
    if duration_ms <= 0:
        return 0.0
    return max(0.0, min(position_ms / duration_ms, 1.0))


def render_progress_bar(fraction: float, width: int = BAR_WIDTH) -> str:
    filled = int(round(max(0.0, min(fraction, 1.0)) * width))
    return "#" * filled + "-" * (width - filled)


def render_snapshot_text(snapshot: TrackSnapshot | None) -> Text:
    """Render the track block; `None` renders the idle placeholder."""
    if snapshot is None:
        return Text("Nothing playing", style="dim")
    text = Text()
    text.append(snapshot.title or "Unknown title", style="bold")
    text.append("\n")
    text.append(snapshot.artist or "Unknown artist")
    text.append("\n")
    text.append(snapshot.album or "Unknown album", style="italic")
    if snapshot.genre:
        text.append(f"  ({snapshot.genre})", style="dim")
    text.append("\n\n")
    text.append(
        render_progress_bar(
            progress_fraction(snapshot.position_ms, snapshot.duration_ms)
        )
    )
    text.append(" ")
    text.append(format_position(snapshot.position_ms, snapshot.duration_ms))
    return text


def render_status_text(
    snapshot: TrackSnapshot | None,
    sampler_state: str,
    notice: str | None = None,
) -> Text:
    status = Text()
    if notice:
        status.append("Notice: ", style=NOTICE_STYLE)
        status.append(notice)
        status.append(" | ")
    status.append("State: ", style=LABEL_STYLE)
    status.append(PHASE_LABELS[snapshot.phase] if snapshot is not None else "-")
    status.append(" | ")
    status.append("Source: ", style=LABEL_STYLE)
    status.append(snapshot.source_package if snapshot is not None else "-")
    status.append(" | ")
    status.append("Sampler: ", style=LABEL_STYLE)
    status.append(sampler_state)
    return status


class NowPlayingPane(Widget):
    DEFAULT_CSS = """
    NowPlayingPane {
        layout: vertical;
    }

    #np-track {
        height: 1fr;
        padding: 1 2;
        content-align: left middle;
    }

    #np-status {
        height: 1;
        padding: 0 1;
        overflow: hidden;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._track = Static(render_snapshot_text(None), id="np-track")
        self._status = Static("", id="np-status")
        self._snapshot: TrackSnapshot | None = None
        self._sampler_state = "idle"
        self._notice: str | None = None

    @property
    def snapshot(self) -> TrackSnapshot | None:
        return self._snapshot

    def compose(self) -> ComposeResult:
        yield self._track
        yield self._status

    def on_mount(self) -> None:
        self._refresh_status()

    def update_snapshot(self, snapshot: TrackSnapshot | None) -> None:
        self._snapshot = snapshot
        self._track.update(render_snapshot_text(snapshot))
        self._refresh_status()

    def set_sampler_state(self, state: str) -> None:
        if state == self._sampler_state:
            return
        self._sampler_state = state
        self._refresh_status()

    def set_notice(self, notice: str | None) -> None:
        self._notice = notice.strip() if notice else None
        self._refresh_status()

    def _refresh_status(self) -> None:
        self._status.update(
            render_status_text(self._snapshot, self._sampler_state, self._notice)
        )
