"""Installation sequencer: ordered mutating steps with stop-on-failure.

The sequencer never decides *whether* to run; the installer façade does.
It aborts at the first non-optional step that exits non-zero and requires a
re-probe after the sequence instead of trusting the last exit code.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Iterable

from provisioner.errors import StepFailure, VerificationFailure
from provisioner.models.commands import CommandResult, Step
from provisioner.models.outcomes import ProbeResult
from provisioner.services.executor import CommandRunner
from provisioner.utils.logging import get_logger

log = get_logger(__name__)


class Sequencer:
    """Executes steps for one target and keeps the executed history."""

    def __init__(self, runner: CommandRunner, target: str) -> None:
        self.runner = runner
        self.target = target
        self.executed: list[CommandResult] = []

    async def step(self, step: Step) -> CommandResult:
        result = await self.runner.run(
            step.command,
            step.label,
            suppress_output=step.suppress_output,
        )
        self.executed.append(result)
        if result.ok:
            return result
        if step.optional:
            log.warning("sequence.optional_step_failed", target=self.target, step=step.label, rc=result.exit_status)
            self.runner.progress.warn(f"{step.label} failed, continuing")
            return result
        log.error(
            "sequence.step_failed",
            target=self.target,
            step=step.label,
            rc=result.exit_status,
            stderr=result.stderr[:200],
        )
        raise StepFailure(step.label, result.exit_status, result.stderr)

    async def run(self, steps: Iterable[Step]) -> list[CommandResult]:
        """Run *steps* in order; later steps are not dispatched after a failure."""
        return [await self.step(s) for s in steps]

    async def upload(self, local_path: str, remote_path: str, label: str) -> None:
        await self.runner.upload(local_path, remote_path, label)

    async def verify(
        self,
        probe: Callable[[CommandRunner], Awaitable[ProbeResult]],
    ) -> ProbeResult:
        """Re-probe the target; a negative result is a VerificationFailure."""
        result = await probe(self.runner)
        if not result.installed:
            log.error("sequence.verification_failed", target=self.target)
            raise VerificationFailure(
                f"{self.target}: installation sequence completed but the target was not detected afterwards",
            )
        log.info("sequence.verified", target=self.target, version=result.version)
        return result
