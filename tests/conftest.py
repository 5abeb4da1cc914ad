"""Test configuration."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import now_playing.app as app_module  # noqa: E402
import now_playing.cli as cli_module  # noqa: E402
import now_playing.services.sampler as sampler_module  # noqa: E402
import now_playing.services.session_monitor as session_monitor_module  # noqa: E402


@pytest.fixture(autouse=True)
def run_blocking_inline(monkeypatch: pytest.MonkeyPatch):
    """Run provider reads inline in tests to avoid thread hangs in CI/sandbox."""

    async def _inline(func, /, *args, **kwargs):
        return func(*args, **kwargs)

    monkeypatch.setattr(sampler_module, "run_blocking", _inline)
    monkeypatch.setattr(session_monitor_module, "run_blocking", _inline)
    monkeypatch.setattr(cli_module, "run_blocking", _inline)
    monkeypatch.setattr(app_module, "run_blocking", _inline)
