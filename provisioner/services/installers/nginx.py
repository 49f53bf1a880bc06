"""nginx from the official nginx.org Debian repository."""

from __future__ import annotations

from typing import Optional

from provisioner.models.commands import Step
from provisioner.models.outcomes import ProbeResult
from provisioner.models.targets import NginxTarget
from provisioner.services import prober
from provisioner.services.executor import CommandRunner
from provisioner.services.installers import apt
from provisioner.services.sequencer import Sequencer
from provisioner.utils.logging import get_logger

log = get_logger(__name__)

BINARY_PATHS = [
    "/usr/sbin/nginx",
    "/usr/bin/nginx",
    "/usr/local/nginx/sbin/nginx",
    "/usr/local/sbin/nginx",
]
KEYRING = "/usr/share/keyrings/nginx-archive-keyring.gpg"
SIGNING_KEY_URL = "https://nginx.org/keys/nginx_signing.key"
SIGNING_KEY_FINGERPRINT = "573BFD6B3D8FBC641079A6ABABF5BD827BD9BF62"
SOURCES_LIST = "/etc/apt/sources.list.d/nginx.list"
PIN_FILE = "/etc/apt/preferences.d/99nginx"

STRATEGIES = [
    prober.binary_paths(BINARY_PATHS, version_args="-v"),
    prober.path_lookup("nginx", version_args="-v"),
    prober.dpkg_record("nginx"),
    prober.systemd_unit("nginx"),
]


def prepare(target: NginxTarget, *, connection_username: Optional[str] = None) -> NginxTarget:
    return target


async def probe(runner: CommandRunner, target: Optional[NginxTarget] = None) -> ProbeResult:
    result = await prober.first_positive(runner, STRATEGIES, name="nginx")
    if not result.installed:
        return result
    return result.model_copy(update={"running": await prober.is_active(runner, "nginx")})


async def install(seq: Sequencer, target: NginxTarget, current: ProbeResult) -> None:
    await seq.run([
        apt.update(),
        apt.install(
            ["curl", "gnupg2", "ca-certificates", "lsb-release", "debian-archive-keyring"],
            label="Installing prerequisites",
        ),
        Step(
            label="Importing nginx signing key",
            command=f"curl -fsSL {SIGNING_KEY_URL} | gpg --dearmor | sudo tee {KEYRING} >/dev/null",
        ),
        Step(label="Preparing GnuPG home", command="mkdir -p ~/.gnupg", optional=True),
    ])

    check = await seq.step(Step(
        label="Verifying signing key fingerprint",
        command=f"gpg --dry-run --quiet --no-keyring --import --import-options import-show {KEYRING}",
        optional=True,
    ))
    if check.ok and SIGNING_KEY_FINGERPRINT not in check.stdout.replace(" ", ""):
        log.warning("nginx.fingerprint_mismatch", expected=SIGNING_KEY_FINGERPRINT)
        seq.runner.progress.warn("nginx signing key fingerprint does not match the published one")

    pin = "Package: *\\nPin: origin nginx.org\\nPin: release o=nginx\\nPin-Priority: 900\\n"
    await seq.run([
        Step(
            label="Adding nginx.org repository",
            command=(
                f'echo "deb [signed-by={KEYRING}] http://nginx.org/packages/debian '
                f'`lsb_release -cs` nginx" | sudo tee {SOURCES_LIST} >/dev/null'
            ),
        ),
        Step(
            label="Pinning nginx.org packages",
            command=f'printf "{pin}" | sudo tee {PIN_FILE} >/dev/null',
        ),
        apt.update(),
        apt.install(["nginx"], label="Installing nginx"),
        Step(label="Starting nginx", command="sudo systemctl enable --now nginx"),
    ])


def summarize(target: NginxTarget, before: ProbeResult, after: ProbeResult) -> dict:
    return {
        "version": after.version,
        "running": after.running,
        "detected_by": after.method,
        **({"path": after.details["path"]} if "path" in after.details else {}),
    }
