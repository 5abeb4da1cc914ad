"""Runtime diagnostics for provider tooling and TUI readiness."""

from __future__ import annotations

import importlib
import shutil
import subprocess
from dataclasses import dataclass
from typing import Literal

DoctorStatus = Literal["ok", "missing", "error"]

PLAYERCTL_HINT = (
    "Install playerctl (e.g. `apt install playerctl`) and make sure an MPRIS "
    "player is running."
)


@dataclass(frozen=True)
class DoctorCheck:
    """One environment/tooling readiness check result."""

    name: str
    status: DoctorStatus
    required: bool
    detail: str
    hint: str | None = None


@dataclass(frozen=True)
class DoctorReport:
    """Collection of doctor checks and derived process exit contract."""

    provider: str
    checks: list[DoctorCheck]

    @property
    def exit_code(self) -> int:
        """Return non-zero when any required check failed or is missing."""
        for check in self.checks:
            if check.required and check.status != "ok":
                return 2
        return 0


def run_doctor(provider: str) -> DoctorReport:
    """Run diagnostics for the selected provider."""
    uses_playerctl = provider == "playerctl"
    checks = [
        probe_module("textual", required=True),
        probe_module("platformdirs", required=True),
        probe_playerctl(required=uses_playerctl),
    ]
    if uses_playerctl and checks[-1].status == "ok":
        checks.append(probe_mpris_players())
    return DoctorReport(provider=provider, checks=checks)


def render_report(report: DoctorReport) -> str:
    """Render terminal-friendly diagnostics report text."""
    lines = [f"now-playing doctor (provider={report.provider})", ""]
    for check in report.checks:
        state = _status_token(check.status)
        req = "required" if check.required else "optional"
        lines.append(f"{state} {check.name:<12} [{req}] {check.detail}")
        if check.hint:
            lines.append(f"      hint: {check.hint}")
    lines.append("")
    lines.append("Result: OK" if report.exit_code == 0 else "Result: FAIL")
    return "\n".join(lines)


def probe_module(name: str, *, required: bool) -> DoctorCheck:
    """Verify a Python dependency is importable."""
    try:
        module = importlib.import_module(name)
    except Exception as exc:
        return DoctorCheck(
            name=name,
            status="missing",
            required=required,
            detail=f"not importable ({exc.__class__.__name__})",
            hint="Install Python dependencies (pip install now-playing).",
        )
    version = getattr(module, "__version__", None)
    detail = f"importable ({version})" if version else "importable"
    return DoctorCheck(name=name, status="ok", required=required, detail=detail)


def probe_playerctl(*, required: bool) -> DoctorCheck:
    """Verify the playerctl binary is present and runs."""
    playerctl = shutil.which("playerctl")
    if playerctl is None:
        return DoctorCheck(
            name="playerctl",
            status="missing",
            required=required,
            detail="binary not found on PATH",
            hint=PLAYERCTL_HINT,
        )
    proc = _run([playerctl, "--version"])
    if isinstance(proc, Exception):
        return DoctorCheck(
            name="playerctl",
            status="error",
            required=required,
            detail=f"launch failed ({proc.__class__.__name__})",
            hint="Reinstall playerctl and verify PATH.",
        )
    if proc.returncode != 0:
        return DoctorCheck(
            name="playerctl",
            status="error",
            required=required,
            detail=_failure_detail("playerctl --version", proc),
            hint="Reinstall playerctl and verify PATH.",
        )
    version = proc.stdout.strip().splitlines()[0] if proc.stdout.strip() else ""
    detail = version or f"binary found at {playerctl}"
    return DoctorCheck(name="playerctl", status="ok", required=required, detail=detail)


def probe_mpris_players() -> DoctorCheck:
    """List MPRIS players visible to playerctl (informational)."""
    proc = _run(["playerctl", "--list-all"])
    if isinstance(proc, Exception) or proc.returncode != 0:
        return DoctorCheck(
            name="mpris",
            status="missing",
            required=False,
            detail="no players found",
            hint="Start a media player, then re-run doctor.",
        )
    players = [line.strip() for line in proc.stdout.splitlines() if line.strip()]
    if not players:
        return DoctorCheck(
            name="mpris",
            status="missing",
            required=False,
            detail="no players found",
            hint="Start a media player, then re-run doctor.",
        )
    return DoctorCheck(
        name="mpris", status="ok", required=False, detail=", ".join(players)
    )


def _run(args: list[str]) -> subprocess.CompletedProcess[str] | Exception:
    try:
        return subprocess.run(
            args,
            capture_output=True,
            text=True,
            timeout=2,
            check=False,
        )
    except Exception as exc:
        return exc


def _failure_detail(command: str, proc: subprocess.CompletedProcess[str]) -> str:
    stderr = (proc.stderr or "").strip()
    stderr_first = stderr.splitlines()[0] if stderr else ""
    return f"{command} failed (exit={proc.returncode})" + (
        f": {stderr_first}" if stderr_first else ""
    )


def _status_token(status: DoctorStatus) -> str:
    """Map doctor status to compact display token."""
    if status == "ok":
        return "[OK]"
    if status == "missing":
        return "[MISS]"
    return "[ERR]"
