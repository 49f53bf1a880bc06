"""Command executor: one shell command per call, classified by exit status.

A non-zero exit is a normal, inspectable ``CommandResult``; only transport
failures raise.  Every call emits human-readable progress lines unless the
caller suppresses them.
"""

from __future__ import annotations

import time
from typing import Callable, Optional, Protocol

from provisioner.models.commands import CommandResult
from provisioner.utils.logging import get_logger

log = get_logger(__name__)

OK_MARK = "[ok]"
FAIL_MARK = "[FAIL]"
WARN_MARK = "[warn]"
RUN_MARK = "==>"


class Session(Protocol):
    """What the executor needs from a remote session."""

    async def exec(self, command: str) -> tuple[int, str, str]: ...

    async def upload(self, local_path: str, remote_path: str) -> None: ...


class ProgressLog:
    """Ordered progress lines, optionally echoed to a sink as they arrive."""

    def __init__(self, sink: Optional[Callable[[str], None]] = None) -> None:
        self.lines: list[str] = []
        self._sink = sink

    def __call__(self, message: str) -> None:
        self.lines.append(message)
        if self._sink is not None:
            self._sink(message)

    def ok(self, message: str) -> None:
        self(f"{OK_MARK} {message}")

    def fail(self, message: str) -> None:
        self(f"{FAIL_MARK} {message}")

    def warn(self, message: str) -> None:
        self(f"{WARN_MARK} {message}")


class CommandRunner:
    """Runs commands over one session, strictly in issue order."""

    def __init__(self, session: Session, progress: Optional[ProgressLog] = None) -> None:
        self.session = session
        self.progress = progress or ProgressLog()

    async def run(
        self,
        command: str,
        label: str,
        *,
        suppress_output: bool = False,
    ) -> CommandResult:
        if not suppress_output:
            self.progress(f"{RUN_MARK} {label}")
        started = time.monotonic()
        status, stdout, stderr = await self.session.exec(command)
        result = CommandResult(
            command=command,
            label=label,
            exit_status=status,
            stdout=stdout,
            stderr=stderr,
            elapsed_time=time.monotonic() - started,
        )
        log.debug("exec.done", label=label, rc=status, elapsed=round(result.elapsed_time, 3))

        if suppress_output:
            return result
        if result.ok:
            self.progress.ok(label)
        else:
            self.progress.fail(f"{label} (exit code: {status})")
            if stderr.strip():
                self.progress(f"    {stderr.strip()}")
        return result

    async def upload(self, local_path: str, remote_path: str, label: str) -> None:
        self.progress(f"{RUN_MARK} {label}")
        await self.session.upload(local_path, remote_path)
        log.info("exec.uploaded", local=local_path, remote=remote_path)
        self.progress.ok(label)
