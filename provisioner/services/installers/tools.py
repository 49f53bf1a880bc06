"""Command-line tool bundle: install only what ``command -v`` cannot find."""

from __future__ import annotations

from typing import Optional

from provisioner.models.outcomes import ProbeResult
from provisioner.models.targets import ToolBundleTarget
from provisioner.services import prober, shell_tokens
from provisioner.services.executor import CommandRunner
from provisioner.services.installers import apt
from provisioner.services.sequencer import Sequencer

# tool name -> (command probed on PATH, Debian package providing it)
TOOL_PACKAGES: dict[str, tuple[str, str]] = {
    "git": ("git", "git"),
    "htop": ("htop", "htop"),
    "ripgrep": ("rg", "ripgrep"),
    "build-essential": ("gcc", "build-essential"),
    "curl": ("curl", "curl"),
    "wget": ("wget", "wget"),
    "vim": ("vim", "vim-nox"),
    "mc": ("mc", "mc"),
    "unzip": ("unzip", "unzip"),
}


def resolve(tool: str) -> tuple[str, str]:
    """Return (command, package); unknown tools use their own name for both."""
    if tool in TOOL_PACKAGES:
        return TOOL_PACKAGES[tool]
    return shell_tokens.command_name(tool), shell_tokens.package(tool)


def prepare(target: ToolBundleTarget, *, connection_username: Optional[str] = None) -> ToolBundleTarget:
    tools = list(dict.fromkeys(target.tools))
    for tool in tools:
        resolve(tool)
    return target.model_copy(update={"tools": tools})


async def probe(runner: CommandRunner, target: ToolBundleTarget) -> ProbeResult:
    installed: list[str] = []
    missing: list[str] = []
    for tool in target.tools:
        command, _ = resolve(tool)
        result = await prober.first_positive(runner, [prober.command_available(command)], name=tool)
        (installed if result.installed else missing).append(tool)
    return ProbeResult(
        installed=not missing,
        method="path_lookup",
        details={"installed": installed, "missing": missing},
    )


async def install(seq: Sequencer, target: ToolBundleTarget, current: ProbeResult) -> None:
    missing = current.details.get("missing") or list(target.tools)
    packages = list(dict.fromkeys(resolve(tool)[1] for tool in missing))
    seq.runner.progress(f"Missing tools: {', '.join(missing)}")
    await seq.run([
        apt.update(),
        apt.install(packages, label=f"Installing {len(packages)} package(s): {', '.join(packages)}"),
    ])


def summarize(target: ToolBundleTarget, before: ProbeResult, after: ProbeResult) -> dict:
    return {
        "requested": list(target.tools),
        "already_present": before.details.get("installed", []),
        "newly_installed": [t for t in before.details.get("missing", []) if t not in after.details.get("missing", [])],
        "missing": after.details.get("missing", []),
    }
