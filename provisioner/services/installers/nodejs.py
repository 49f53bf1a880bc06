"""Node.js and npm from the NodeSource repository."""

from __future__ import annotations

from typing import Optional

from provisioner.models.commands import Step
from provisioner.models.outcomes import ProbeResult
from provisioner.models.targets import NodeJsTarget
from provisioner.services import prober, shell_tokens
from provisioner.services.executor import CommandRunner
from provisioner.services.installers import apt
from provisioner.services.sequencer import Sequencer


def prepare(target: NodeJsTarget, *, connection_username: Optional[str] = None) -> NodeJsTarget:
    return target.model_copy(update={"channel": shell_tokens.channel(target.channel)})


async def probe(runner: CommandRunner, target: NodeJsTarget) -> ProbeResult:
    node = await prober.first_positive(runner, [prober.path_lookup("node")], name="node")
    if not node.installed:
        return node
    npm = await prober.first_positive(runner, [prober.path_lookup("npm")], name="npm")
    return node.model_copy(update={
        "details": {**node.details, "npm_version": npm.version if npm.installed else None},
    })


async def install(seq: Sequencer, target: NodeJsTarget, current: ProbeResult) -> None:
    setup_url = f"https://deb.nodesource.com/setup_{target.channel}.x"
    await seq.run([
        apt.update(),
        apt.install(["curl"], label="Installing curl"),
        Step(
            label=f"Adding NodeSource repository ({target.channel})",
            command=f"curl -fsSL {setup_url} | sudo -E bash -",
        ),
        apt.install(["nodejs"], label="Installing Node.js"),
    ])


def summarize(target: NodeJsTarget, before: ProbeResult, after: ProbeResult) -> dict:
    return {
        "node_version": after.version,
        "npm_version": after.details.get("npm_version"),
        "channel": target.channel,
    }
