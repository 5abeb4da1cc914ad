"""Command-line interface for now-playing."""

from __future__ import annotations

import argparse
import asyncio
import base64
import json
import logging
import sys
from pathlib import Path
from typing import Any, TextIO

from . import __version__
from .doctor import render_report, run_doctor
from .events import NowPlayingChanged
from .logging_utils import setup_logging
from .paths import log_dir, settings_path
from .runtime_config import (
    PROVIDER_NAMES,
    resolve_log_level,
    resolve_provider_name,
    sampler_config_from_settings,
)
from .services.fake_provider import build_demo_provider
from .services.media_provider import MediaProvider
from .services.playerctl_provider import PlayerctlMediaProvider
from .services.sampler import SamplerConfig
from .services.session_monitor import SessionMonitor, find_active_handle
from .settings_store import load_settings_with_notice
from .utils.async_utils import run_blocking
from .version import build_help_epilog

logger = logging.getLogger(__name__)

COMMANDS = ("watch", "current", "doctor")
EXIT_NO_SESSION = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="now-playing",
        description="Print now-playing track changes from desktop media sessions.",
        epilog=build_help_epilog(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--quiet", action="store_true", help="Only show warnings and errors"
    )
    parser.add_argument("--log-file", help="Write logs to a file path")
    parser.add_argument(
        "--provider",
        choices=PROVIDER_NAMES,
        help="Media session provider to use (fake or playerctl).",
    )
    parser.add_argument(
        "--player", help="Media session handle to track (default: first active)."
    )
    parser.add_argument(
        "--interval-ms", type=int, help="Sampling interval in milliseconds."
    )
    parser.add_argument(
        "--max-same-state",
        type=int,
        help="Stop sampling after this many samples with an unchanged phase.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        choices=COMMANDS,
        default="watch",
        help="watch (default) streams events, current prints one snapshot, "
        "doctor checks the environment.",
    )
    return parser


def build_provider(name: str) -> MediaProvider:
    logger.info("Media provider selected: %s", name)
    if name == "fake":
        return build_demo_provider()
    return PlayerctlMediaProvider()


def format_event_line(event: NowPlayingChanged) -> str:
    """Render one delivered event as a JSON line; the cleared marker is `null`."""
    return json.dumps(event.to_payload(), default=_json_default, sort_keys=True)


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


async def _resolve_handle(provider: MediaProvider, player: str | None) -> Any:
    if player:
        return player
    return await run_blocking(find_active_handle, provider)


async def run_watch(
    provider: MediaProvider,
    *,
    player: str | None,
    config: SamplerConfig,
    out: TextIO,
) -> int:
    """Track one session and print events until the sampling loop ends."""

    async def _print_event(event: object) -> None:
        if isinstance(event, NowPlayingChanged):
            out.write(format_event_line(event) + "\n")
            out.flush()

    monitor = SessionMonitor(provider=provider, emit_event=_print_event, config=config)
    await monitor.start()
    try:
        handle = await _resolve_handle(provider, player)
        if handle is None:
            logger.warning("No active media session found")
            return EXIT_NO_SESSION
        await monitor.on_media_appeared(handle)
        await monitor.wait_for_sampler()
        await monitor.flush()
        return 0
    finally:
        await monitor.shutdown()


async def run_current(
    provider: MediaProvider,
    *,
    player: str | None,
    out: TextIO,
) -> int:
    """Run one on-demand extraction and print the resulting snapshot."""

    async def _discard(event: object) -> None:
        del event

    monitor = SessionMonitor(provider=provider, emit_event=_discard)
    await monitor.start()
    try:
        handle = await _resolve_handle(provider, player)
        if handle is None:
            logger.warning("No active media session found")
            out.write("null\n")
            return EXIT_NO_SESSION
        await monitor.request_update(handle)
        await monitor.flush()
        out.write(format_event_line(NowPlayingChanged(monitor.current_snapshot())))
        out.write("\n")
        return 0
    finally:
        await monitor.shutdown()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings, notice = load_settings_with_notice(settings_path())
        level = resolve_log_level(
            verbose=args.verbose, quiet=args.quiet, default=settings.log_level
        )
        setup_logging(
            log_dir=log_dir(),
            level=level,
            log_file=Path(args.log_file) if args.log_file else None,
            console=sys.stderr,
        )
        if notice:
            print(notice, file=sys.stderr)
        provider_name = resolve_provider_name(args.provider, settings.provider)
        if args.command == "doctor":
            report = run_doctor(provider_name)
            print(render_report(report))
            return report.exit_code
        logger.info("Starting now-playing %s", args.command)
        provider = build_provider(provider_name)
        player = args.player or settings.player
        if args.command == "current":
            return asyncio.run(run_current(provider, player=player, out=sys.stdout))
        config = sampler_config_from_settings(
            settings,
            interval_ms=args.interval_ms,
            max_same_state=args.max_same_state,
        )
        return asyncio.run(
            run_watch(provider, player=player, config=config, out=sys.stdout)
        )
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    except Exception as exc:  # pragma: no cover - top-level safety net
        logger.exception("Unhandled error: %s", exc)
        print("Unexpected error. Re-run with --verbose for details.", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
