"""Exception hierarchy for sessions, installers and the cloud helper."""

from __future__ import annotations


class ProvisioningError(Exception):
    """Base class for every error raised by this package."""


# ── session / transport ───────────────────────────────────────────────────

class RemoteConnectionError(ProvisioningError):
    """The SSH session could not be opened (key file, auth, network)."""


class TransportError(ProvisioningError):
    """A command could not be dispatched or the channel died mid-command."""


# ── installers ────────────────────────────────────────────────────────────

class InstallationError(ProvisioningError):
    """Terminal failure of one target; recorded in that target's outcome."""

    kind = "installation_error"


class StepFailure(InstallationError):
    kind = "step_failure"

    def __init__(self, label: str, exit_status: int, stderr: str = "") -> None:
        self.label = label
        self.exit_status = exit_status
        self.stderr = stderr
        detail = stderr.strip() or "no error output"
        super().__init__(f"{label} failed (exit code {exit_status}): {detail}")


class PreconditionUnmet(InstallationError):
    kind = "precondition_unmet"


class UnsafeTokenError(PreconditionUnmet):
    """An operator-supplied value failed its allow-listed character class."""

    kind = "unsafe_token"

    def __init__(self, field: str, value: str, reason: str) -> None:
        self.field = field
        self.value = value
        super().__init__(f"invalid {field} {value!r}: {reason}")


class VerificationFailure(InstallationError):
    """Sequence exited zero but the re-probe still reports not installed."""

    kind = "verification_failure"


# ── cloud ─────────────────────────────────────────────────────────────────

class CloudError(ProvisioningError):
    pass


class CloudTimeoutError(CloudError):
    pass
