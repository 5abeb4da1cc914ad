"""Version and platform details shown in `--help`."""

from __future__ import annotations

import platform

from . import __version__

__all__ = ["__version__", "build_help_epilog"]


def build_help_epilog() -> str:
    return f"Platform: {platform.platform()}\nVersion: {__version__}"
