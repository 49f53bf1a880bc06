"""Debian package-manager steps shared by the installers."""

from __future__ import annotations

from typing import Iterable, Optional

from provisioner.models.commands import Step
from provisioner.services import shell_tokens


def update(label: str = "Updating package lists") -> Step:
    return Step(label=label, command="sudo apt-get update")


def install(packages: Iterable[str], label: Optional[str] = None) -> Step:
    names = [shell_tokens.package(p) for p in packages]
    if not names:
        raise ValueError("no packages to install")
    return Step(
        label=label or f"Installing {', '.join(names)}",
        command=f"sudo DEBIAN_FRONTEND=noninteractive apt-get install -y {' '.join(names)}",
    )
