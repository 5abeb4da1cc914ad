"""Runtime configuration normalization helpers.

CLI flags win over persisted settings, persisted settings win over built-in
defaults. The helpers here keep that precedence identical across entrypoints.
"""

from __future__ import annotations

from now_playing.services.sampler import SamplerConfig
from now_playing.settings_store import MonitorSettings

PROVIDER_NAMES = ("fake", "playerctl")
DEFAULT_PROVIDER = "playerctl"


def resolve_log_level(*, verbose: bool, quiet: bool, default: str = "INFO") -> str:
    """Resolve effective log level from CLI flags.

    Precedence is deterministic: --quiet overrides --verbose, and either flag
    overrides `default` (the persisted level).
    """
    if quiet:
        return "WARNING"
    if verbose:
        return "DEBUG"
    return default


def normalize_provider_name(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    return normalized if normalized in PROVIDER_NAMES else None


def resolve_provider_name(cli_value: str | None, persisted: str | None) -> str:
    """Pick the provider adapter: CLI flag, then settings file, then default."""
    for candidate in (cli_value, persisted):
        normalized = normalize_provider_name(candidate)
        if normalized is not None:
            return normalized
    return DEFAULT_PROVIDER


def sampler_config_from_settings(
    settings: MonitorSettings,
    *,
    interval_ms: int | None = None,
    max_same_state: int | None = None,
) -> SamplerConfig:
    """Build the sampler config from settings with optional CLI overrides."""
    poll_ms = interval_ms if interval_ms is not None else settings.poll_interval_ms
    threshold = (
        max_same_state
        if max_same_state is not None
        else settings.max_same_state_count
    )
    return SamplerConfig(
        poll_interval_s=poll_ms / 1000.0,
        max_same_state_count=threshold,
        stop_timeout_s=settings.stop_timeout_ms / 1000.0,
    )
