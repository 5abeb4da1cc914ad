"""Textual TUI for now-playing."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from textual.app import App, ComposeResult
from textual.timer import Timer
from textual.widgets import Footer, Header

from . import __version__
from .cli import build_provider
from .events import NowPlayingChanged
from .logging_utils import setup_logging
from .paths import log_dir, settings_path
from .runtime_config import (
    PROVIDER_NAMES,
    resolve_log_level,
    resolve_provider_name,
    sampler_config_from_settings,
)
from .services.media_provider import MediaHandle, MediaProvider
from .services.playerctl_provider import PlayerctlMediaProvider
from .services.sampler import SamplerConfig
from .services.session_monitor import SessionMonitor, find_active_handle
from .settings_store import load_settings_with_notice
from .ui.now_playing_pane import NowPlayingPane
from .utils.async_utils import run_blocking
from .version import build_help_epilog

logger = logging.getLogger(__name__)
STATUS_REFRESH_S = 0.5


class NowPlayingApp(App):
    TITLE = "now-playing"
    CSS = """
    Screen {
        layout: vertical;
    }

    #now-playing-pane {
        height: 1fr;
        border: solid white;
    }
    """
    BINDINGS = [
        ("r", "refresh", "Refresh"),
        ("s", "restart_sampling", "Restart sampling"),
        ("q", "quit", "Quit"),
    ]

    def __init__(
        self,
        *,
        provider_name: str = "playerctl",
        player: str | None = None,
        config: SamplerConfig | None = None,
        notice: str | None = None,
        auto_init: bool = True,
    ) -> None:
        super().__init__()
        self._provider_name = provider_name
        self._player = player
        self._config = config
        self._startup_notice = notice
        self._auto_init = auto_init
        self.provider: MediaProvider | None = None
        self.monitor: SessionMonitor | None = None
        self._status_timer: Timer | None = None
        self._init_task: asyncio.Task[None] | None = None

    def compose(self) -> ComposeResult:
        yield Header()
        yield NowPlayingPane(id="now-playing-pane")
        yield Footer()

    def on_mount(self) -> None:
        pane = self.query_one(NowPlayingPane)
        if self._startup_notice:
            pane.set_notice(self._startup_notice)
        if self._auto_init:
            self._init_task = asyncio.create_task(self._initialize())

    async def _initialize(self) -> None:
        try:
            provider_name = self._provider_name
            if provider_name == "playerctl":
                available = await run_blocking(_playerctl_available)
                if not available:
                    provider_name = "fake"
                    self.notify(
                        "playerctl unavailable; showing the demo provider.\n"
                        "Next step: install playerctl, then restart.",
                        severity="warning",
                        timeout=8,
                    )
            self.provider = build_provider(provider_name)
            self.monitor = SessionMonitor(
                provider=self.provider,
                emit_event=self._handle_event,
                config=self._config,
            )
            await self.monitor.start()
            self._status_timer = self.set_interval(
                STATUS_REFRESH_S, self._update_sampler_state
            )
            await self._start_sampling()
        except Exception as exc:
            logger.exception("Failed to initialize app: %s", exc)
            self.notify(
                "Failed to start media tracking. See the log file.",
                severity="error",
                timeout=10,
            )

    async def on_unmount(self) -> None:
        if self._status_timer is not None:
            self._status_timer.stop()
            self._status_timer = None
        if self.monitor is not None:
            await self.monitor.shutdown()

    async def action_refresh(self) -> None:
        if self.monitor is None:
            return
        if not await self.monitor.request_update():
            self.notify("No media session to query.", timeout=3)

    async def action_restart_sampling(self) -> None:
        await self._start_sampling()

    async def _start_sampling(self) -> None:
        if self.monitor is None or self.provider is None:
            return
        handle = await self._resolve_handle()
        pane = self.query_one(NowPlayingPane)
        if handle is None:
            pane.set_notice("No active media session")
            return
        pane.set_notice(None)
        await self.monitor.on_media_appeared(handle)
        self._update_sampler_state()

    async def _resolve_handle(self) -> MediaHandle | None:
        if self._player:
            return self._player
        if self.monitor is not None and self.monitor.handle is not None:
            return self.monitor.handle
        assert self.provider is not None
        return await run_blocking(find_active_handle, self.provider)

    async def _handle_event(self, event: object) -> None:
        if not isinstance(event, NowPlayingChanged):
            return
        self.query_one(NowPlayingPane).update_snapshot(event.snapshot)

    def _update_sampler_state(self) -> None:
        if self.monitor is None:
            return
        self.query_one(NowPlayingPane).set_sampler_state(self.monitor.sampler_state)


def _playerctl_available() -> bool:
    return PlayerctlMediaProvider().is_available()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="now-playing-tui",
        description="Terminal now-playing display for desktop media sessions.",
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
    parser.add_argument("--player", help="Media session handle to track.")
    parser.add_argument(
        "--interval-ms", type=int, help="Sampling interval in milliseconds."
    )
    parser.add_argument(
        "--max-same-state",
        type=int,
        help="Stop sampling after this many samples with an unchanged phase.",
    )
    return parser


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
        )
        logger.info("Starting now-playing TUI")
        NowPlayingApp(
            provider_name=resolve_provider_name(args.provider, settings.provider),
            player=args.player or settings.player,
            config=sampler_config_from_settings(
                settings,
                interval_ms=args.interval_ms,
                max_same_state=args.max_same_state,
            ),
            notice=notice.splitlines()[0] if notice else None,
        ).run()
        return 0
    except Exception as exc:  # pragma: no cover - top-level safety net
        logger.exception("Fatal startup error: %s", exc)
        print(
            "Startup failed. Verify settings/log paths and re-run with --verbose.",
            file=sys.stderr,
        )
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
