"""Let's Encrypt certificate via certbot's nginx plugin.

nginx has to be installed and the domain has to answer plain HTTP for a
file under ``/.well-known/acme-challenge/`` before certbot is touched.
"""

from __future__ import annotations

from typing import Optional

from provisioner.errors import PreconditionUnmet
from provisioner.models.commands import Step
from provisioner.models.outcomes import ProbeResult
from provisioner.models.targets import CertificateTarget
from provisioner.services import prober, shell_tokens
from provisioner.services.executor import CommandRunner
from provisioner.services.installers import apt
from provisioner.services.installers import nginx as nginx_installer
from provisioner.services.sequencer import Sequencer
from provisioner.utils import nginx_conf
from provisioner.utils.logging import get_logger

log = get_logger(__name__)

HOOK_DIR = "/etc/letsencrypt/renewal-hooks/post"
HOOK_PATH = f"{HOOK_DIR}/nginx-reload.sh"
TEST_FILE = "domain-test.txt"


def prepare(target: CertificateTarget, *, connection_username: Optional[str] = None) -> CertificateTarget:
    return target.model_copy(update={
        "domain": shell_tokens.domain(target.domain),
        "email": shell_tokens.email(target.email),
    })


async def certificate_present(runner: CommandRunner, domain: str) -> ProbeResult:
    paths = list(nginx_conf.certificate_paths(domain))
    return await prober.first_positive(runner, [prober.files_exist(paths)], name=f"certificate:{domain}")


async def probe(runner: CommandRunner, target: CertificateTarget) -> ProbeResult:
    return await certificate_present(runner, target.domain)


async def require_nginx(runner: CommandRunner, purpose: str) -> ProbeResult:
    found = await nginx_installer.probe(runner)
    if not found.installed:
        raise PreconditionUnmet(f"nginx must be installed before {purpose}")
    return found


async def check_preconditions(runner: CommandRunner, target: CertificateTarget) -> None:
    await require_nginx(runner, f"requesting a certificate for {target.domain}")


def _http_status(status_line: str) -> Optional[str]:
    parts = status_line.split()
    if len(parts) >= 2 and parts[0].startswith("HTTP/"):
        return parts[1]
    return None


async def check_reachability(seq: Sequencer, domain: str) -> str:
    """Serve a test file through nginx and fetch it over the domain name."""
    test_path = f"{nginx_conf.ACME_CHALLENGE_DIR}/{TEST_FILE}"
    await seq.run([
        Step(label="Creating ACME challenge directory", command=f"sudo mkdir -p {nginx_conf.ACME_CHALLENGE_DIR}"),
        Step(
            label="Setting ACME directory ownership",
            command=f"sudo chown -R www-data:www-data {nginx_conf.ACME_WEBROOT}",
            optional=True,
        ),
        Step(
            label="Creating domain test file",
            command=f'echo "domain-test-{domain}" | sudo tee {test_path} >/dev/null',
        ),
    ])
    # Exit status is head's; only the status line matters
    probe_result = await seq.runner.run(
        f"curl -s -I http://{domain}/.well-known/acme-challenge/{TEST_FILE} | head -1",
        f"Testing HTTP reachability of {domain}",
        suppress_output=True,
    )
    await seq.step(Step(label="Removing domain test file", command=f"sudo rm -f {test_path}", optional=True))

    status_line = probe_result.stdout.strip()
    status = _http_status(status_line)
    if status not in ("200", "404"):
        log.warning("certificate.unreachable", domain=domain, status=status_line or None)
        raise PreconditionUnmet(
            f"{domain} is not reachable over HTTP (got {status_line or 'no response'}); "
            "check the DNS record and that port 80 is open",
        )
    seq.runner.progress.ok(f"{domain} answers HTTP ({status})")
    return status


async def install(seq: Sequencer, target: CertificateTarget, current: ProbeResult) -> None:
    await check_reachability(seq, target.domain)

    hook_tmp = "/tmp/nginx-reload-hook.sh"
    await seq.run([
        apt.update(),
        apt.install(["certbot", "python3-certbot-nginx"], label="Installing certbot and nginx plugin"),
        Step(label="Creating renewal hooks directory", command=f"sudo mkdir -p {HOOK_DIR}"),
        Step(
            label="Writing nginx reload hook",
            command=nginx_conf.heredoc(hook_tmp, nginx_conf.RENEWAL_HOOK),
            suppress_output=True,
        ),
        Step(label="Installing nginx reload hook", command=f"sudo mv {hook_tmp} {HOOK_PATH}"),
        Step(label="Making reload hook executable", command=f"sudo chmod +x {HOOK_PATH}"),
        Step(label="Checking certbot", command="certbot --version"),
        Step(
            label=f"Requesting certificate for {target.domain}",
            command=(
                f"sudo certbot certonly -d {target.domain} --nginx -n "
                f"--email {target.email} --agree-tos"
            ),
        ),
    ])


def summarize(target: CertificateTarget, before: ProbeResult, after: ProbeResult) -> dict:
    fullchain, privkey = nginx_conf.certificate_paths(target.domain)
    return {
        "domain": target.domain,
        "fullchain": fullchain,
        "privkey": privkey,
        **({"renewal_hook": HOOK_PATH} if not before.installed else {}),
    }
