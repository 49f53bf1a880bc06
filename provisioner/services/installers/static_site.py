"""Static website deployed from a local ZIP archive and served by nginx.

A marker file on the host records the SHA-256 of the deployed archive, so the
same archive is not redeployed while a changed one is.
"""

from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path
from typing import Optional

from provisioner.errors import PreconditionUnmet
from provisioner.models.commands import Step
from provisioner.models.outcomes import ProbeResult
from provisioner.models.targets import StaticSiteTarget
from provisioner.services import prober, shell_tokens
from provisioner.services.executor import CommandRunner
from provisioner.services.installers import certificate
from provisioner.services.sequencer import Sequencer
from provisioner.utils import nginx_conf

WEBROOT_BASE = "/opt/webroot"
MARKER_DIR = "/var/lib/provisioner/sites"


def archive_digest(path: str) -> Optional[str]:
    archive = Path(path).expanduser()
    if not archive.is_file():
        return None
    digest = hashlib.sha256()
    with archive.open("rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def paths(domain: str) -> dict[str, str]:
    return {
        "webroot": f"{WEBROOT_BASE}/{domain}",
        "nginx_config": f"/etc/nginx/conf.d/{domain}.conf",
        "marker": f"{MARKER_DIR}/{domain}.sha256",
    }


def prepare(target: StaticSiteTarget, *, connection_username: Optional[str] = None) -> StaticSiteTarget:
    shell_tokens.filename(Path(target.archive_path).name)
    return target.model_copy(update={"domain": shell_tokens.domain(target.domain)})


async def probe(runner: CommandRunner, target: StaticSiteTarget) -> ProbeResult:
    digest = await asyncio.to_thread(archive_digest, target.archive_path)
    where = paths(target.domain)
    deployed = await runner.run(
        f"sudo test -f {where['nginx_config']} && sudo cat {where['marker']}",
        f"Checking deployment of {target.domain}",
        suppress_output=True,
    )
    deployed_digest = deployed.stdout.strip() if deployed.ok else ""
    https = await certificate.certificate_present(runner, target.domain)
    return ProbeResult(
        installed=bool(digest) and deployed_digest == digest,
        method="marker",
        details={
            "archive_sha256": digest,
            "deployed_sha256": deployed_digest or None,
            "https": https.installed,
        },
    )


async def check_preconditions(runner: CommandRunner, target: StaticSiteTarget) -> None:
    if not Path(target.archive_path).expanduser().is_file():
        raise PreconditionUnmet(f"archive not found: {target.archive_path}")
    await certificate.require_nginx(runner, f"deploying {target.domain}")
    unzip = await prober.first_positive(runner, [prober.command_available("unzip")], name="unzip")
    if not unzip.installed:
        raise PreconditionUnmet("unzip is not installed on the host; install the tool bundle first")


async def install(seq: Sequencer, target: StaticSiteTarget, current: ProbeResult) -> None:
    where = paths(target.domain)
    webroot = where["webroot"]
    zip_name = shell_tokens.filename(Path(target.archive_path).name)
    remote_zip = f"/tmp/{zip_name}"
    tls = (await certificate.certificate_present(seq.runner, target.domain)).installed
    if tls:
        seq.runner.progress.ok(f"Certificate found for {target.domain}, enabling HTTPS")

    await seq.run([
        Step(label="Removing previous nginx configuration", command=f"sudo rm -f {where['nginx_config']}"),
        Step(label="Removing previous webroot", command=f"sudo rm -rf {webroot}"),
    ])
    await seq.upload(str(Path(target.archive_path).expanduser()), remote_zip, f"Uploading {zip_name}")

    conf_tmp = f"/tmp/{target.domain}.conf"
    rendered = nginx_conf.static_site_config(target.domain, webroot, tls=tls)
    await seq.run([
        Step(label="Creating webroot base directory", command=f"sudo mkdir -p {WEBROOT_BASE}"),
        Step(label="Setting webroot base permissions", command=f"sudo chmod 755 {WEBROOT_BASE}"),
        Step(label="Creating site directory", command=f"sudo mkdir -p {webroot}"),
        Step(label="Extracting archive", command=f"sudo unzip -o -q {remote_zip} -d {webroot}"),
        Step(label="Setting site ownership", command=f"sudo chown -R nginx:nginx {webroot}"),
        Step(label="Setting site permissions", command=f"sudo chmod -R 755 {webroot}"),
        Step(
            label="Writing nginx site configuration",
            command=nginx_conf.heredoc(conf_tmp, rendered),
            suppress_output=True,
        ),
        Step(label="Installing nginx site configuration", command=f"sudo mv {conf_tmp} {where['nginx_config']}"),
        Step(label="Setting configuration ownership", command=f"sudo chown root:root {where['nginx_config']}"),
        Step(label="Setting configuration permissions", command=f"sudo chmod 644 {where['nginx_config']}"),
        Step(label="Testing nginx configuration", command="sudo nginx -t"),
        Step(label="Reloading nginx", command="sudo systemctl reload nginx"),
        Step(label="Removing uploaded archive", command=f"sudo rm -f {remote_zip}", optional=True),
        Step(label="Creating deployment marker directory", command=f"sudo mkdir -p {MARKER_DIR}"),
        Step(
            label="Recording deployed archive",
            command=f"echo {current.details['archive_sha256']} | sudo tee {where['marker']} >/dev/null",
        ),
    ])


def summarize(target: StaticSiteTarget, before: ProbeResult, after: ProbeResult) -> dict:
    where = paths(target.domain)
    return {
        "domain": target.domain,
        "webroot": where["webroot"],
        "nginx_config": where["nginx_config"],
        "https": after.details.get("https", False),
        "archive_sha256": after.details.get("archive_sha256"),
    }
