"""Installer façade: one ``ensure_installed`` entry point for every target.

Lifecycle per target::

    validate tokens -> probe -> (skip if installed)
                    -> preconditions -> sequence -> re-probe

Dispatch goes through ``_HANDLERS`` keyed by the target's ``kind``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from provisioner.errors import InstallationError
from provisioner.models.outcomes import InstallerOutcome, InstallState, ProbeResult
from provisioner.models.targets import TargetConfig
from provisioner.services.executor import CommandRunner
from provisioner.services.installers import certificate, code_server, nginx, nodejs, static_site, tools
from provisioner.services.sequencer import Sequencer
from provisioner.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class InstallerHandler:
    label: str
    prepare: Callable[..., Any]
    probe: Callable[[CommandRunner, Any], Awaitable[ProbeResult]]
    install: Callable[[Sequencer, Any, ProbeResult], Awaitable[None]]
    summarize: Callable[[Any, ProbeResult, ProbeResult], dict]
    check_preconditions: Optional[Callable[[CommandRunner, Any], Awaitable[None]]] = None


_HANDLERS: dict[str, InstallerHandler] = {
    "tools": InstallerHandler(
        label="Development tools",
        prepare=tools.prepare,
        probe=tools.probe,
        install=tools.install,
        summarize=tools.summarize,
    ),
    "nodejs": InstallerHandler(
        label="Node.js",
        prepare=nodejs.prepare,
        probe=nodejs.probe,
        install=nodejs.install,
        summarize=nodejs.summarize,
    ),
    "nginx": InstallerHandler(
        label="nginx",
        prepare=nginx.prepare,
        probe=nginx.probe,
        install=nginx.install,
        summarize=nginx.summarize,
    ),
    "certificate": InstallerHandler(
        label="SSL certificate",
        prepare=certificate.prepare,
        probe=certificate.probe,
        install=certificate.install,
        summarize=certificate.summarize,
        check_preconditions=certificate.check_preconditions,
    ),
    "code_server": InstallerHandler(
        label="VS Code Web",
        prepare=code_server.prepare,
        probe=code_server.probe,
        install=code_server.install,
        summarize=code_server.summarize,
        check_preconditions=code_server.check_preconditions,
    ),
    "static_site": InstallerHandler(
        label="Static website",
        prepare=static_site.prepare,
        probe=static_site.probe,
        install=static_site.install,
        summarize=static_site.summarize,
        check_preconditions=static_site.check_preconditions,
    ),
}


def handler_for(kind: str) -> InstallerHandler:
    handler = _HANDLERS.get(kind)
    if handler is None:
        raise InstallationError(f"unknown target kind: {kind}")
    return handler


def supported_kinds() -> list[str]:
    return list(_HANDLERS)


async def probe_target(
    runner: CommandRunner,
    target: TargetConfig,
    *,
    connection_username: Optional[str] = None,
) -> ProbeResult:
    """Read-only status of one target; never mutates the host."""
    handler = handler_for(target.kind)
    target = handler.prepare(target, connection_username=connection_username)
    return await handler.probe(runner, target)


async def ensure_installed(
    runner: CommandRunner,
    target: TargetConfig,
    *,
    connection_username: Optional[str] = None,
) -> InstallerOutcome:
    """Bring *target* to its installed state, or confirm it already is.

    Raises an ``InstallationError`` subclass on failure; nothing is
    reported as installed without a positive re-probe.
    """
    handler = handler_for(target.kind)
    progress = runner.progress
    state = InstallState.not_probed
    try:
        target = handler.prepare(target, connection_username=connection_username)

        progress(f"Checking {handler.label}...")
        before = await handler.probe(runner, target)
        state = InstallState.probed
        if before.installed:
            progress.ok(f"{handler.label} already installed{_version_suffix(before)}")
            log.info("installer.skipped", target=target.kind, version=before.version)
            return InstallerOutcome(
                target=target.kind,
                success=True,
                state=InstallState.skipped,
                summary=handler.summarize(target, before, before),
            )

        if handler.check_preconditions is not None:
            await handler.check_preconditions(runner, target)

        state = InstallState.sequencing
        log.info("installer.sequencing", target=target.kind)
        progress(f"Installing {handler.label}...")
        seq = Sequencer(runner, target.kind)
        await handler.install(seq, target, before)
        after = await seq.verify(lambda r: handler.probe(r, target))
    except InstallationError as exc:
        log.error("installer.failed", target=target.kind, state=state.value, kind=exc.kind, error=str(exc))
        progress.fail(f"{handler.label}: {exc}")
        raise

    progress.ok(f"{handler.label} installed{_version_suffix(after)}")
    log.info("installer.verified", target=target.kind, version=after.version)
    return InstallerOutcome(
        target=target.kind,
        success=True,
        state=InstallState.verified,
        summary=handler.summarize(target, before, after),
    )


def _version_suffix(result: ProbeResult) -> str:
    return f" ({result.version})" if result.version else ""
