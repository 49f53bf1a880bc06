"""Command-related data structures."""

from __future__ import annotations

from pydantic import BaseModel


class CommandResult(BaseModel):
    """Result of one remote shell command."""

    command: str
    label: str = ""
    exit_status: int
    stdout: str = ""
    stderr: str = ""
    elapsed_time: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class Step(BaseModel):
    """One mutating shell command in an installation sequence."""

    label: str
    command: str
    suppress_output: bool = False
    # A failing optional step is reported as a warning and the sequence goes on
    optional: bool = False
