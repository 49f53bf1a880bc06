"""Probe results, installer outcomes and run reports."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, computed_field


class ProbeResult(BaseModel):
    """Read-only view of a target's current state on the host."""

    installed: bool = False
    version: Optional[str] = None
    running: Optional[bool] = None
    method: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)


class InstallState(str, Enum):
    not_probed = "not_probed"
    probed = "probed"
    skipped = "skipped"
    sequencing = "sequencing"
    verified = "verified"
    failed = "failed"


class InstallerOutcome(BaseModel):
    """Terminal value of one ensure-installed operation."""

    target: str
    success: bool
    state: InstallState
    summary: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    error_kind: Optional[str] = None


class RunReport(BaseModel):
    """Outcomes of every target in one orchestration run, in order."""

    host: str
    outcomes: list[InstallerOutcome] = Field(default_factory=list)
    progress: list[str] = Field(default_factory=list)

    @computed_field
    @property
    def success(self) -> bool:
        return all(o.success for o in self.outcomes)
