"""Runtime diagnostics for library availability and player API reachability."""

from __future__ import annotations

import asyncio
import importlib
from dataclasses import dataclass
from typing import Literal

from beefweb_widget.errors import WidgetError
from beefweb_widget.services.beefweb_client import BeefwebClient
from beefweb_widget.utils.cancellation import CancellationScope

DoctorStatus = Literal["ok", "missing", "error"]

BEEFWEB_SETUP_HINT = (
    "Start foobar2000 with the Beefweb component and check the API URL setting."
)


@dataclass(frozen=True)
class DoctorCheck:
    """One environment readiness check result."""

    name: str
    status: DoctorStatus
    required: bool
    detail: str
    hint: str | None = None


@dataclass(frozen=True)
class DoctorReport:
    """Collection of doctor checks and derived process exit contract."""

    api_url: str
    checks: list[DoctorCheck]

    @property
    def exit_code(self) -> int:
        """Return non-zero when any required check failed or is missing."""
        for check in self.checks:
            if check.required and check.status != "ok":
                return 2
        return 0


def run_doctor(api_url: str, *, require_api: bool = True) -> DoctorReport:
    """Run diagnostics; the API probe is optional for the fake backend."""
    checks = [
        probe_module("Pillow", "PIL", required=True),
        probe_module("aiohttp", "aiohttp", required=True),
        probe_module("textual", "textual", required=False),
        probe_api(api_url, required=require_api),
    ]
    return DoctorReport(api_url=api_url, checks=checks)


def render_report(report: DoctorReport) -> str:
    """Render terminal-friendly diagnostics report text."""
    lines = [f"beefweb-widget doctor (api={report.api_url or '<unset>'})", ""]
    for check in report.checks:
        state = _status_token(check.status)
        req = "required" if check.required else "optional"
        lines.append(f"{state} {check.name:<11} [{req}] {check.detail}")
        if check.hint:
            lines.append(f"      hint: {check.hint}")
    lines.append("")
    lines.append("Result: OK" if report.exit_code == 0 else "Result: FAIL")
    return "\n".join(lines)


def probe_module(name: str, module_name: str, *, required: bool) -> DoctorCheck:
    """Verify a dependency is importable and report its version."""
    try:
        module = importlib.import_module(module_name)
    except Exception as exc:
        return DoctorCheck(
            name=name,
            status="missing",
            required=required,
            detail=f"not importable ({exc.__class__.__name__})",
            hint="Install Python dependencies (pip install beefweb-widget).",
        )
    version = getattr(module, "__version__", None)
    detail = f"importable ({version})" if version else "importable"
    return DoctorCheck(name=name, status="ok", required=required, detail=detail)


def probe_api(api_url: str, *, required: bool) -> DoctorCheck:
    """Fetch the player state once to verify the Beefweb API answers."""
    if not api_url:
        return DoctorCheck(
            name="beefweb",
            status="missing",
            required=required,
            detail="API URL is not configured",
            hint=BEEFWEB_SETUP_HINT,
        )
    try:
        state = asyncio.run(_fetch_playback_state(api_url))
    except WidgetError as exc:
        return DoctorCheck(
            name="beefweb",
            status="error",
            required=required,
            detail=f"{api_url} unreachable ({exc.__class__.__name__}: {exc})",
            hint=BEEFWEB_SETUP_HINT,
        )
    return DoctorCheck(
        name="beefweb",
        status="ok",
        required=required,
        detail=f"{api_url} reachable (playback {state})",
    )


async def _fetch_playback_state(api_url: str) -> str:
    client = BeefwebClient(api_url)
    try:
        snapshot = await client.fetch_player_state(CancellationScope(name="doctor"))
    finally:
        await client.close()
    return snapshot.playback_state


def _status_token(status: DoctorStatus) -> str:
    """Map doctor status to compact display token."""
    if status == "ok":
        return "[OK]"
    if status == "missing":
        return "[MISS]"
    return "[ERR]"
