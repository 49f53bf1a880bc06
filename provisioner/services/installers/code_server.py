"""code-server (VS Code in the browser) behind the nginx HTTPS site.

Requires nginx and a certificate for the domain.  The password is stored on
the host only as an argon2 hash in ``~/.config/code-server/config.yaml``.
"""

from __future__ import annotations

from typing import Optional

from argon2 import PasswordHasher

from provisioner.errors import InstallationError, PreconditionUnmet
from provisioner.models.commands import Step
from provisioner.models.outcomes import ProbeResult
from provisioner.models.targets import CodeServerTarget
from provisioner.services import prober, shell_tokens
from provisioner.services.executor import CommandRunner
from provisioner.services.installers import certificate
from provisioner.services.sequencer import Sequencer
from provisioner.utils import nginx_conf
from provisioner.utils.logging import get_logger

log = get_logger(__name__)

INSTALL_SCRIPT_URL = "https://code-server.dev/install.sh"


def site_config_path(domain: str) -> str:
    return f"/etc/nginx/conf.d/{domain}.conf"


def unit_name(username: str) -> str:
    return f"code-server@{username}"


def prepare(target: CodeServerTarget, *, connection_username: Optional[str] = None) -> CodeServerTarget:
    if not target.password.get_secret_value():
        raise PreconditionUnmet("code-server password must not be empty")
    account = target.username or connection_username
    if not account:
        raise PreconditionUnmet("no remote account given for code-server")
    return target.model_copy(update={
        "domain": shell_tokens.domain(target.domain),
        "path": shell_tokens.url_path(target.path),
        "username": shell_tokens.username(account),
    })


async def probe(runner: CommandRunner, target: CodeServerTarget) -> ProbeResult:
    binary = await prober.first_positive(runner, [prober.path_lookup("code-server")], name="code-server")
    if not binary.installed:
        return binary
    marker = f"location {target.path}/ {{"
    located = await runner.run(
        f'sudo grep -qF "{marker}" {site_config_path(target.domain)}',
        "Checking code-server proxy location",
        suppress_output=True,
    )
    running = await prober.is_active(runner, unit_name(target.username))
    return binary.model_copy(update={
        "installed": located.ok,
        "running": running,
        "details": {**binary.details, "proxy_location": located.ok},
    })


async def check_preconditions(runner: CommandRunner, target: CodeServerTarget) -> None:
    await certificate.require_nginx(runner, f"publishing code-server on {target.domain}")


async def _home_directory(seq: Sequencer, username: str) -> str:
    result = await seq.step(Step(
        label=f"Detecting home directory of {username}",
        command=f"getent passwd {username} | cut -d: -f6",
    ))
    home = result.stdout.strip()
    if not home:
        raise PreconditionUnmet(f"remote account {username!r} does not exist")
    return shell_tokens.absolute_path(home, "home directory")


async def _prepare_webroot(seq: Sequencer, target: CodeServerTarget, home: str) -> str:
    webroot = f"{home}/webroot/{target.domain}"
    user = target.username
    await seq.step(Step(label="Creating webroot directory", command=f"sudo mkdir -p {webroot}"))

    mode = await seq.step(Step(
        label="Checking home directory permissions",
        command=f"stat -c '%a' {home}",
        suppress_output=True,
    ))
    perms = mode.stdout.strip()
    if perms.isdigit() and int(perms[-1]) & 1 == 0:
        await seq.step(Step(label="Allowing nginx to traverse home directory", command=f"sudo chmod o+x {home}"))

    page_tmp = f"/tmp/{target.domain}-index.html"
    await seq.run([
        Step(label="Setting webroot ownership", command=f"sudo chown -R {user}:{user} {home}/webroot"),
        Step(label="Setting webroot permissions", command=f"sudo chmod -R 755 {home}/webroot"),
        Step(
            label="Writing welcome page",
            command=nginx_conf.heredoc(page_tmp, nginx_conf.welcome_page(target.domain, target.path)),
            suppress_output=True,
        ),
        Step(label="Installing welcome page", command=f"sudo mv {page_tmp} {webroot}/index.html"),
        Step(label="Setting welcome page ownership", command=f"sudo chown {user}:{user} {webroot}/index.html"),
    ])
    return webroot


async def _write_site_config(seq: Sequencer, target: CodeServerTarget, webroot: str) -> bool:
    """Create or extend the nginx site; False when nothing had to change."""
    conf_path = site_config_path(target.domain)
    exists = await seq.step(Step(
        label="Checking existing nginx site configuration",
        command=f'sudo test -f {conf_path} && echo "exists" || echo "missing"',
        suppress_output=True,
    ))
    if exists.stdout.strip() == "exists":
        current = await seq.step(Step(
            label="Reading nginx site configuration",
            command=f"sudo cat {conf_path}",
            suppress_output=True,
        ))
        if nginx_conf.has_proxy_location(current.stdout, target.path):
            seq.runner.progress.ok(f"Proxy location {target.path}/ already configured")
            return False
        try:
            rendered = nginx_conf.insert_proxy_location(current.stdout, target.path)
        except ValueError as exc:
            raise InstallationError(f"cannot extend {conf_path}: {exc}") from exc
    else:
        rendered = nginx_conf.code_server_site_config(target.domain, target.path, webroot)

    conf_tmp = f"/tmp/{target.domain}.conf"
    await seq.run([
        Step(
            label="Writing nginx site configuration",
            command=nginx_conf.heredoc(conf_tmp, rendered),
            suppress_output=True,
        ),
        Step(label="Installing nginx site configuration", command=f"sudo mv {conf_tmp} {conf_path}"),
        Step(label="Testing nginx configuration", command="sudo nginx -t"),
        Step(label="Reloading nginx", command="sudo systemctl reload nginx"),
    ])
    return True


async def install(seq: Sequencer, target: CodeServerTarget, current: ProbeResult) -> None:
    cert = await certificate.certificate_present(seq.runner, target.domain)
    if not cert.installed:
        raise PreconditionUnmet(
            f"no certificate for {target.domain}; request one before installing code-server",
        )

    user = target.username
    home = await _home_directory(seq, user)
    webroot = await _prepare_webroot(seq, target, home)

    hashed = PasswordHasher().hash(target.password.get_secret_value())
    config_dir = f"{home}/.config/code-server"
    config_tmp = "/tmp/code-server-config.yaml"
    await seq.run([
        Step(label="Installing code-server", command=f"curl -fsSL {INSTALL_SCRIPT_URL} | sudo sh"),
        Step(label="Enabling code-server service", command=f"sudo systemctl enable --now {unit_name(user)}"),
        Step(label="Creating code-server config directory", command=f"sudo -u {user} mkdir -p {config_dir}"),
        Step(
            label="Writing code-server configuration",
            command=nginx_conf.heredoc(config_tmp, nginx_conf.code_server_yaml(hashed)),
            suppress_output=True,
        ),
        Step(
            label="Installing code-server configuration",
            command=f"sudo install -o {user} -g {user} -m 600 {config_tmp} {config_dir}/config.yaml && rm -f {config_tmp}",
        ),
        Step(label="Restarting code-server", command=f"sudo systemctl restart {unit_name(user)}"),
    ])
    log.info("code_server.configured", user=user, domain=target.domain)

    changed = await _write_site_config(seq, target, webroot)
    log.info("code_server.site_config", domain=target.domain, changed=changed)


def summarize(target: CodeServerTarget, before: ProbeResult, after: ProbeResult) -> dict:
    return {
        "url": f"https://{target.domain}{target.path}",
        "username": target.username,
        "version": after.version,
        "running": after.running,
    }
