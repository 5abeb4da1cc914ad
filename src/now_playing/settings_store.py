"""JSON persistence for monitor settings.

Loading is tolerant of missing or invalid values so a hand-edited or
partially written file degrades to safe defaults instead of aborting startup.
"""

from __future__ import annotations

import json
import logging
import math
import time
from contextlib import suppress
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonitorSettings:
    """Persisted monitor settings; CLI flags override these per run."""

    provider: str = "playerctl"
    player: str | None = None
    poll_interval_ms: int = 500
    max_same_state_count: int = 10
    stop_timeout_ms: int = 1000
    log_level: str = "INFO"


def _coerce_settings(data: dict[str, Any]) -> MonitorSettings:
    """Coerce an untyped JSON object into `MonitorSettings` with safe defaults."""

    def _positive_int_or_default(value: Any, default: int) -> int:
        if isinstance(value, bool):
            return default
        if isinstance(value, int):
            return value if value > 0 else default
        if isinstance(value, float) and math.isfinite(value) and value > 0:
            return int(value)
        return default

    def _str_or_default(value: Any, default: str) -> str:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return default

    defaults = MonitorSettings()
    player = data.get("player")
    return MonitorSettings(
        provider=_str_or_default(data.get("provider"), defaults.provider),
        player=player.strip() if isinstance(player, str) and player.strip() else None,
        poll_interval_ms=_positive_int_or_default(
            data.get("poll_interval_ms"), defaults.poll_interval_ms
        ),
        max_same_state_count=_positive_int_or_default(
            data.get("max_same_state_count"), defaults.max_same_state_count
        ),
        stop_timeout_ms=_positive_int_or_default(
            data.get("stop_timeout_ms"), defaults.stop_timeout_ms
        ),
        log_level=_str_or_default(data.get("log_level"), defaults.log_level).upper(),
    )


def load_settings_with_notice(path: Path) -> tuple[MonitorSettings, str | None]:
    """Load settings and return an optional user-facing notice."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info("Settings file missing at %s; using defaults.", path)
        return MonitorSettings(), None
    except OSError as exc:
        logger.warning(
            "Failed to read settings file %s: %s; using defaults.", path, exc
        )
        return (
            MonitorSettings(),
            "Settings were reset to defaults.\n"
            "Likely cause: settings file is unreadable due to permissions or IO "
            "issues.\n"
            f"Next step: verify access to '{path}' and restart.",
        )

    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Settings file at %s is invalid JSON; using defaults.", path)
        return (
            MonitorSettings(),
            "Settings were reset to defaults.\n"
            "Likely cause: settings file is corrupt or partially written.\n"
            f"Next step: remove or repair '{path}' and restart.",
        )

    if not isinstance(data, dict):
        logger.warning(
            "Settings file at %s is not a JSON object; using defaults.", path
        )
        return (
            MonitorSettings(),
            "Settings were reset to defaults.\n"
            "Likely cause: settings file format is invalid for this version.\n"
            f"Next step: remove '{path}' and restart.",
        )

    return _coerce_settings(data), None


def load_settings(path: Path) -> MonitorSettings:
    """Load settings from disk, falling back to defaults."""
    settings, _notice = load_settings_with_notice(path)
    return settings


def save_settings(path: Path, settings: MonitorSettings) -> None:
    """Persist settings atomically to disk via write-then-replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.{uuid4().hex}.tmp")
    payload = json.dumps(asdict(settings), indent=2, sort_keys=True)
    delay_s = 0.02
    try:
        for attempt in range(4):
            tmp_path.write_text(payload, encoding="utf-8")
            try:
                tmp_path.replace(path)
                return
            except OSError as exc:
                if not _is_retryable_windows_replace_error(exc) or attempt >= 3:
                    raise
                time.sleep(delay_s)
                delay_s = min(0.25, delay_s * 2.0)
    finally:
        with suppress(OSError):
            tmp_path.unlink()


def _is_retryable_windows_replace_error(exc: OSError) -> bool:
    """Return whether an atomic replace failure is likely transient on Windows."""
    winerror = getattr(exc, "winerror", None)
    if winerror in {32, 5, 2}:
        return True
    errno = getattr(exc, "errno", None)
    if errno in {13, 16}:
        return True
    text = str(exc).lower()
    return "used by another process" in text or "permission denied" in text
