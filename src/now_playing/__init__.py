"""now-playing: track-state polling for desktop media sessions."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

__all__ = ["__version__"]

try:
    __version__ = version("now-playing")
except PackageNotFoundError:  # pragma: no cover - running from a source tree
    __version__ = "0.0.0"
