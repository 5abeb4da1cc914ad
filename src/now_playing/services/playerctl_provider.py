"""Linux MPRIS provider backed by the `playerctl` command.

Handles are MPRIS player names as listed by `playerctl -l` (for example
`spotify` or `firefox.instance_1_42`). Every read is one short subprocess call
with a timeout, so this adapter is meant to run on the provider executor.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Any, Callable
from urllib.parse import unquote, urlparse

from .media_provider import MediaMetadata, PlaybackStatus, ProviderError

logger = logging.getLogger(__name__)

PLAYERCTL_TIMEOUT_S = 2.0
MAX_ART_BYTES = 5 * 1024 * 1024
MPRIS_BUS_PREFIX = "org.mpris.MediaPlayer2."

_FIELD_SEPARATOR = "\x1f"
_METADATA_FIELDS = (
    "xesam:title",
    "xesam:artist",
    "xesam:album",
    "xesam:genre",
    "mpris:length",
    "mpris:artUrl",
)
_METADATA_FORMAT = _FIELD_SEPARATOR.join(
    "{{" + name + "}}" for name in _METADATA_FIELDS
)

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


class PlayerctlMediaProvider:
    """Reads MPRIS sessions through `playerctl`."""

    def __init__(
        self,
        *,
        executable: str = "playerctl",
        timeout_s: float = PLAYERCTL_TIMEOUT_S,
        runner: Runner | None = None,
    ) -> None:
        self._executable = executable
        self._timeout_s = timeout_s
        self._runner: Runner = runner or subprocess.run
        self._available: bool | None = None

    def is_available(self) -> bool:
        """Return whether `playerctl` runs; the probe result is cached."""
        if self._available is None:
            if shutil.which(self._executable) is None:
                logger.warning("%s not found on PATH", self._executable)
                self._available = False
            else:
                try:
                    proc = self._run("--version")
                except ProviderError as exc:
                    logger.warning("%s probe failed: %s", self._executable, exc)
                    self._available = False
                else:
                    self._available = proc.returncode == 0
        return self._available

    def list_handles(self) -> list[str]:
        proc = self._run("--list-all")
        if proc.returncode != 0:
            return []
        return [line.strip() for line in proc.stdout.splitlines() if line.strip()]

    def get_metadata(self, handle: str) -> MediaMetadata | None:
        proc = self._run("--player", handle, "metadata", "--format", _METADATA_FORMAT)
        if proc.returncode != 0:
            raise ProviderError(_describe_failure(handle, "metadata", proc))
        raw = proc.stdout.rstrip("\n")
        if not raw.strip(_FIELD_SEPARATOR + " "):
            return None
        parts = raw.split(_FIELD_SEPARATOR)
        parts += [""] * (len(_METADATA_FIELDS) - len(parts))
        title, artist, album, genre, length_us, art_url = parts[: len(_METADATA_FIELDS)]
        return MediaMetadata(
            title=title or None,
            artist=artist or None,
            album=album or None,
            genre=genre or None,
            duration_ms=_microseconds_to_ms(length_us),
            art_uri=art_url or None,
        )

    def get_playback_status(self, handle: str) -> PlaybackStatus | None:
        proc = self._run("--player", handle, "status")
        if proc.returncode != 0:
            raise ProviderError(_describe_failure(handle, "status", proc))
        raw_state = proc.stdout.strip()
        if not raw_state:
            return None
        return PlaybackStatus(
            raw_state=raw_state, position_ms=self._read_position_ms(handle)
        )

    def get_source_package(self, handle: str) -> str:
        return f"{MPRIS_BUS_PREFIX}{handle}"

    def load_icon(self, icon_hint: Any) -> bytes | None:
        """Load the icon file named by `icon_hint` (a filesystem path)."""
        if not isinstance(icon_hint, (str, Path)):
            return None
        return _read_file_capped(Path(icon_hint))

    def load_art(self, art_uri: str) -> bytes | None:
        """Read `file://` artwork; remote URIs are left to the consumer."""
        return _read_local_art(art_uri)

    def _read_position_ms(self, handle: str) -> int:
        try:
            proc = self._run("--player", handle, "position")
        except ProviderError as exc:
            logger.debug("Position read failed for %s: %s", handle, exc)
            return 0
        if proc.returncode != 0:
            return 0
        try:
            return max(0, int(float(proc.stdout.strip()) * 1000))
        except ValueError:
            return 0

    def _run(self, *args: str) -> subprocess.CompletedProcess[str]:
        try:
            return self._runner(
                [self._executable, *args],
                capture_output=True,
                text=True,
                timeout=self._timeout_s,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ProviderError(f"{self._executable} is not installed") from exc
        except subprocess.TimeoutExpired as exc:
            raise ProviderError(
                f"{self._executable} {' '.join(args)} timed out"
            ) from exc
        except OSError as exc:
            raise ProviderError(f"{self._executable} failed to start: {exc}") from exc


def _describe_failure(
    handle: str, what: str, proc: subprocess.CompletedProcess[str]
) -> str:
    stderr = (proc.stderr or "").strip()
    detail = stderr.splitlines()[0] if stderr else f"exit={proc.returncode}"
    return f"{what} read failed for {handle}: {detail}"


def _microseconds_to_ms(value: str) -> int:
    try:
        return max(0, int(value.strip()) // 1000)
    except ValueError:
        return 0


def _read_local_art(art_url: str) -> bytes | None:
    if not art_url.startswith("file://"):
        return None
    return _read_file_capped(Path(unquote(urlparse(art_url).path)))


def _read_file_capped(path: Path) -> bytes | None:
    try:
        if not path.is_file() or path.stat().st_size > MAX_ART_BYTES:
            return None
        return path.read_bytes()
    except OSError as exc:
        logger.debug("Could not read image %s: %s", path, exc)
        return None
