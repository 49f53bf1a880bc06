"""Idempotency prober: ordered read-only detection strategies.

A strategy is an async callable ``(runner) -> ProbeResult | None``.  Strategies
are tried in order and the first positive signal wins; when none matches the
target is reported as not installed.  Probing never raises.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional, Sequence

from provisioner.errors import TransportError
from provisioner.models.outcomes import ProbeResult
from provisioner.services.executor import CommandRunner
from provisioner.utils.logging import get_logger

log = get_logger(__name__)

ProbeStrategy = Callable[[CommandRunner], Awaitable[Optional[ProbeResult]]]


async def first_positive(
    runner: CommandRunner,
    strategies: Sequence[ProbeStrategy],
    *,
    name: str = "target",
) -> ProbeResult:
    """Run *strategies* in order, stopping at the first positive result."""
    for strategy in strategies:
        try:
            result = await strategy(runner)
        except TransportError as exc:
            log.warning("probe.strategy_failed", target=name, error=str(exc))
            continue
        if result is not None and result.installed:
            log.info("probe.positive", target=name, method=result.method, version=result.version)
            return result
    log.info("probe.negative", target=name)
    return ProbeResult(installed=False)


async def is_active(runner: CommandRunner, unit: str) -> bool:
    """``systemctl is-active`` check; any failure counts as not running."""
    try:
        result = await runner.run(
            f"systemctl is-active {unit}",
            f"Checking if {unit} is running",
            suppress_output=True,
        )
    except TransportError:
        return False
    return result.stdout.strip() == "active"


# ── strategy factories ────────────────────────────────────────────────────

def _first_line(*texts: str) -> str:
    for text in texts:
        stripped = text.strip()
        if stripped:
            return stripped.splitlines()[0].strip()
    return ""


def binary_paths(paths: Sequence[str], version_args: str = "--version") -> ProbeStrategy:
    """Try well-known absolute binary locations."""

    async def strategy(runner: CommandRunner) -> Optional[ProbeResult]:
        for path in paths:
            result = await runner.run(
                f"{path} {version_args} 2>&1",
                f"Checking {path}",
                suppress_output=True,
            )
            version = _first_line(result.stdout, result.stderr)
            if result.ok and version:
                return ProbeResult(
                    installed=True,
                    version=version,
                    method="binary_path",
                    details={"path": path},
                )
        return None

    return strategy


def path_lookup(command: str, version_args: str = "--version") -> ProbeStrategy:
    """Resolve *command* through the non-interactive shell's PATH."""

    async def strategy(runner: CommandRunner) -> Optional[ProbeResult]:
        which = await runner.run(
            f"command -v {command}",
            f"Finding {command} command",
            suppress_output=True,
        )
        path = which.stdout.strip()
        if not which.ok or not path:
            return None
        version_result = await runner.run(
            f"{path} {version_args} 2>&1",
            f"Checking {command} version",
            suppress_output=True,
        )
        version = _first_line(version_result.stdout, version_result.stderr) if version_result.ok else ""
        return ProbeResult(
            installed=True,
            version=version or None,
            method="path_lookup",
            details={"path": path},
        )

    return strategy


def command_available(command: str) -> ProbeStrategy:
    """Presence-only check (``command -v``), no version query."""

    async def strategy(runner: CommandRunner) -> Optional[ProbeResult]:
        result = await runner.run(
            f'command -v {command} >/dev/null 2>&1 && echo "installed"',
            f"Checking {command} installation",
            suppress_output=True,
        )
        if result.ok and result.stdout.strip() == "installed":
            return ProbeResult(installed=True, method="path_lookup", details={"command": command})
        return None

    return strategy


def dpkg_record(package: str, version_prefix: Optional[str] = None) -> ProbeStrategy:
    """Look for an installed (``ii``) package record."""

    async def strategy(runner: CommandRunner) -> Optional[ProbeResult]:
        result = await runner.run(
            f'dpkg -l {package} 2>/dev/null | grep "^ii"',
            f"Checking if {package} package is installed",
            suppress_output=True,
        )
        if not result.ok:
            return None
        lines = result.stdout.strip().splitlines()
        parts = lines[0].split() if lines else []
        if len(parts) >= 3:
            version = f"{version_prefix or package}/{parts[2]}"
        else:
            version = "package-installed"
        return ProbeResult(installed=True, version=version, method="dpkg")

    return strategy


def systemd_unit(unit: str) -> ProbeStrategy:
    """Last resort: the service manager knows a unit by this name."""

    async def strategy(runner: CommandRunner) -> Optional[ProbeResult]:
        result = await runner.run(
            f"systemctl list-units --type=service --all | grep -q {unit}",
            f"Checking {unit} service",
            suppress_output=True,
        )
        if result.ok:
            return ProbeResult(installed=True, version="service-installed", method="systemd")
        return None

    return strategy


def files_exist(paths: Sequence[str], *, sudo: bool = True) -> ProbeStrategy:
    """All *paths* exist as regular files."""

    async def strategy(runner: CommandRunner) -> Optional[ProbeResult]:
        prefix = "sudo " if sudo else ""
        test = " && ".join(f"{prefix}test -f {p}" for p in paths)
        result = await runner.run(
            f'{test} && echo "exists" || echo "missing"',
            "Checking files",
            suppress_output=True,
        )
        if result.stdout.strip() == "exists":
            return ProbeResult(installed=True, method="files", details={"paths": list(paths)})
        return None

    return strategy
