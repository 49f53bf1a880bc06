"""Orchestrator: one session, targets in order, every outcome recorded.

An ``InstallationError`` fails only its own target.  Session-level failures
(``RemoteConnectionError``, ``TransportError``) abort the run; the session is
closed on every path.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Sequence

from provisioner.errors import InstallationError
from provisioner.models.connection import ConnectionDescriptor
from provisioner.models.outcomes import InstallerOutcome, InstallState, ProbeResult, RunReport
from provisioner.models.targets import TargetConfig
from provisioner.services.executor import CommandRunner, ProgressLog
from provisioner.services.installer import ensure_installed, probe_target
from provisioner.services.ssh_session import open_session
from provisioner.utils.logging import get_logger

log = get_logger(__name__)

SessionFactory = Callable[[ConnectionDescriptor], Any]


async def run_targets(
    descriptor: ConnectionDescriptor,
    targets: Sequence[TargetConfig],
    *,
    progress: Optional[ProgressLog] = None,
    session_factory: SessionFactory = open_session,
) -> RunReport:
    progress = progress or ProgressLog()
    report = RunReport(host=descriptor.host)
    log.info("run.start", host=descriptor.host, targets=[t.kind for t in targets])

    async with session_factory(descriptor) as session:
        runner = CommandRunner(session, progress)
        for target in targets:
            try:
                outcome = await ensure_installed(runner, target, connection_username=descriptor.username)
            except InstallationError as exc:
                outcome = InstallerOutcome(
                    target=target.kind,
                    success=False,
                    state=InstallState.failed,
                    error=str(exc),
                    error_kind=exc.kind,
                )
            report.outcomes.append(outcome)

    report.progress = list(progress.lines)
    log.info(
        "run.done",
        host=descriptor.host,
        success=report.success,
        failed=[o.target for o in report.outcomes if not o.success],
    )
    return report


async def probe_host(
    descriptor: ConnectionDescriptor,
    targets: Sequence[TargetConfig],
    *,
    session_factory: SessionFactory = open_session,
) -> dict[str, ProbeResult]:
    """Read-only status of every target, keyed by kind."""
    results: dict[str, ProbeResult] = {}
    async with session_factory(descriptor) as session:
        runner = CommandRunner(session)
        for target in targets:
            results[target.kind] = await probe_target(runner, target, connection_username=descriptor.username)
    log.info("status.done", host=descriptor.host, installed=[k for k, r in results.items() if r.installed])
    return results
