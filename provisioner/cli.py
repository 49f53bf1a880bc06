"""Command-line front end: one command per target, plus status and EC2 helpers."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

from provisioner.boundary import build_descriptor, ec2_manager, session_factory
from provisioner.config import settings
from provisioner.errors import CloudError, RemoteConnectionError, TransportError
from provisioner.models.targets import (
    DEFAULT_TOOLS,
    CertificateTarget,
    CodeServerTarget,
    NginxTarget,
    NodeJsTarget,
    StaticSiteTarget,
    TargetConfig,
    ToolBundleTarget,
)
from provisioner.services.executor import ProgressLog
from provisioner.services.orchestrator import probe_host, run_targets
from provisioner.utils.logging import setup_logging

app = typer.Typer(add_completion=False, help="Provision Debian hosts over SSH and manage EC2 instances.")

HOST = typer.Option(..., "--host", "-h", help="Hostname or IPv4 address.")
KEY = typer.Option(..., "--key", "-k", help="Path to the SSH private key.")
USERNAME = typer.Option(None, "--username", "-u", help="SSH username (default from PROV_SSH_USERNAME).")
PORT = typer.Option(None, "--port", "-p", help="SSH port (default from PROV_SSH_PORT).")
PASSPHRASE = typer.Option(None, "--passphrase", help="Passphrase for an encrypted key.", hide_input=True)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show structured logs.")) -> None:
    setup_logging("DEBUG" if verbose else "WARNING", json=settings.prov_log_json)


def _run(
    targets: list[TargetConfig],
    host: str,
    key: str,
    username: Optional[str],
    port: Optional[int],
    passphrase: Optional[str],
) -> None:
    descriptor = build_descriptor(host, key, username=username, port=port, passphrase=passphrase)
    progress = ProgressLog(sink=typer.echo)
    try:
        report = asyncio.run(run_targets(descriptor, targets, progress=progress, session_factory=session_factory()))
    except (RemoteConnectionError, TransportError) as exc:
        typer.secho(f"Connection failed: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.echo("")
    for outcome in report.outcomes:
        if outcome.success:
            typer.secho(f"{outcome.target}: {outcome.state.value}", fg=typer.colors.GREEN)
            for name, value in outcome.summary.items():
                typer.echo(f"  {name}: {value}")
        else:
            typer.secho(f"{outcome.target}: failed ({outcome.error_kind}) {outcome.error}", fg=typer.colors.RED)
    if not report.success:
        raise typer.Exit(code=1)


# ── targets ───────────────────────────────────────────────────────────────

@app.command()
def tools(
    host: str = HOST,
    key: str = KEY,
    username: Optional[str] = USERNAME,
    port: Optional[int] = PORT,
    passphrase: Optional[str] = PASSPHRASE,
    tool: Optional[list[str]] = typer.Option(None, "--tool", "-t", help="Tool to ensure (repeatable)."),
) -> None:
    """Install missing command-line development tools."""
    _run([ToolBundleTarget(tools=tool or list(DEFAULT_TOOLS))], host, key, username, port, passphrase)


@app.command()
def node(
    host: str = HOST,
    key: str = KEY,
    username: Optional[str] = USERNAME,
    port: Optional[int] = PORT,
    passphrase: Optional[str] = PASSPHRASE,
    channel: str = typer.Option("lts", help="NodeSource channel, e.g. lts or 22."),
) -> None:
    """Install Node.js and npm from NodeSource."""
    _run([NodeJsTarget(channel=channel)], host, key, username, port, passphrase)


@app.command()
def nginx(
    host: str = HOST,
    key: str = KEY,
    username: Optional[str] = USERNAME,
    port: Optional[int] = PORT,
    passphrase: Optional[str] = PASSPHRASE,
) -> None:
    """Install nginx from the nginx.org repository."""
    _run([NginxTarget()], host, key, username, port, passphrase)


@app.command()
def ssl(
    host: str = HOST,
    key: str = KEY,
    domain: str = typer.Option(..., "--domain", "-d"),
    email: str = typer.Option(..., "--email", "-e", help="Let's Encrypt account e-mail."),
    username: Optional[str] = USERNAME,
    port: Optional[int] = PORT,
    passphrase: Optional[str] = PASSPHRASE,
) -> None:
    """Request a Let's Encrypt certificate (needs nginx and DNS)."""
    _run([CertificateTarget(domain=domain, email=email)], host, key, username, port, passphrase)


@app.command()
def vscode(
    host: str = HOST,
    key: str = KEY,
    domain: str = typer.Option(..., "--domain", "-d"),
    password: str = typer.Option(..., prompt=True, hide_input=True, help="code-server login password."),
    path: str = typer.Option("/code", help="URL path code-server is published under."),
    user: Optional[str] = typer.Option(None, help="Account running code-server (default: SSH user)."),
    username: Optional[str] = USERNAME,
    port: Optional[int] = PORT,
    passphrase: Optional[str] = PASSPHRASE,
) -> None:
    """Install code-server behind the domain's HTTPS site."""
    target = CodeServerTarget(domain=domain, password=password, path=path, username=user)
    _run([target], host, key, username, port, passphrase)


@app.command()
def site(
    host: str = HOST,
    key: str = KEY,
    domain: str = typer.Option(..., "--domain", "-d"),
    archive: Path = typer.Option(..., "--archive", "-a", exists=True, dir_okay=False, help="ZIP archive to deploy."),
    username: Optional[str] = USERNAME,
    port: Optional[int] = PORT,
    passphrase: Optional[str] = PASSPHRASE,
) -> None:
    """Deploy a static website from a ZIP archive."""
    _run([StaticSiteTarget(domain=domain, archive_path=str(archive))], host, key, username, port, passphrase)


@app.command()
def status(
    host: str = HOST,
    key: str = KEY,
    username: Optional[str] = USERNAME,
    port: Optional[int] = PORT,
    passphrase: Optional[str] = PASSPHRASE,
) -> None:
    """Show what is installed, without changing anything."""
    descriptor = build_descriptor(host, key, username=username, port=port, passphrase=passphrase)
    targets = [ToolBundleTarget(), NodeJsTarget(), NginxTarget()]
    try:
        results = asyncio.run(probe_host(descriptor, targets, session_factory=session_factory()))
    except (RemoteConnectionError, TransportError) as exc:
        typer.secho(f"Connection failed: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    for kind, result in results.items():
        mark = "installed" if result.installed else "missing"
        extra = f" {result.version}" if result.version else ""
        running = "" if result.running is None else (" (running)" if result.running else " (stopped)")
        typer.echo(f"{kind}: {mark}{extra}{running}")
        if kind == "tools":
            for name in result.details.get("missing", []):
                typer.echo(f"  missing: {name}")


# ── EC2 ───────────────────────────────────────────────────────────────────

@app.command()
def aws(
    ami: Optional[str] = typer.Option(None, help="AMI id (default from AWS_AMI_ID)."),
    instance_type: Optional[str] = typer.Option(None, help="Instance type (default from AWS_INSTANCE_TYPE)."),
    key_dir: Optional[Path] = typer.Option(None, help="Directory for the generated <ip>.pem."),
) -> None:
    """Create a Debian instance with key pair and HTTP/HTTPS security group."""
    mgr = ec2_manager()
    try:
        created = mgr.create_instance(
            ami_id=ami or settings.aws_ami_id,
            instance_type=instance_type or settings.aws_instance_type,
            key_directory=str(key_dir or settings.key_directory),
            max_attempts=settings.aws_wait_attempts,
            interval=settings.aws_wait_interval_seconds,
        )
    except (CloudError, OSError) as exc:
        typer.secho(f"Instance creation failed: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(created.model_dump(), indent=2))
    typer.secho(f"Connect with: {created.ssh_command}", fg=typer.colors.GREEN)


@app.command()
def cleanup(
    instance_id: Optional[str] = typer.Option(None, "--instance-id"),
    key_name: Optional[str] = typer.Option(None, "--key-name"),
    sg_id: Optional[str] = typer.Option(None, "--sg-id"),
    all_found: bool = typer.Option(False, "--all", help="Remove every resource created by this tool."),
    key_dir: Optional[Path] = typer.Option(None, help="Directory holding <ip>.pem files."),
) -> None:
    """Terminate instances and delete key pairs and security groups."""
    mgr = ec2_manager()
    directory = str(key_dir or settings.key_directory)
    try:
        found = mgr.find_existing_resources()
    except CloudError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    if not (instance_id or key_name or sg_id or all_found):
        typer.echo(json.dumps(found.model_dump(), indent=2))
        typer.echo("Pass --instance-id/--key-name/--sg-id, or --all to remove everything listed.")
        return

    jobs: list[dict] = []
    if instance_id or key_name or sg_id:
        jobs.append({"instance_id": instance_id, "key_name": key_name, "security_group_id": sg_id})
    if all_found:
        jobs += [{"instance_id": i.instance_id} for i in found.instances]
        jobs += [{"key_name": k.key_name} for k in found.key_pairs]
        jobs += [{"security_group_id": g.group_id} for g in found.security_groups]

    failed = False
    for job in jobs:
        report = mgr.cleanup_resources(key_directory=directory, **job)
        typer.echo(json.dumps(report.model_dump(exclude_none=True), indent=2))
        failed = failed or not report.success
    if failed:
        raise typer.Exit(code=1)


@app.command()
def ami(pattern: str = typer.Option("debian-13-amd64-*", help="Image name pattern.")) -> None:
    """Find the newest Debian AMI in the configured region."""
    try:
        typer.echo(ec2_manager().find_debian_ami(pattern))
    except CloudError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
