"""Events delivered from the tracking engine to its consumer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from now_playing.services.track_state import TrackSnapshot


@dataclass(frozen=True)
class NowPlayingChanged:
    """A new now-playing snapshot, or `None` when playback has ended."""

    snapshot: TrackSnapshot | None

    @property
    def cleared(self) -> bool:
        return self.snapshot is None

    def to_payload(self) -> dict[str, Any] | None:
        if self.snapshot is None:
            return None
        return self.snapshot.to_payload()
