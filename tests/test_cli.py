"""Tests for the typer command-line front end."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from provisioner import cli
from provisioner.errors import RemoteConnectionError
from provisioner.services.cloud import Ec2InstanceManager
from tests.mock_ssh import NGINX_INSTALLED, MockRemoteHost, session_factory
from tests.test_cloud import FakeEc2

runner = CliRunner()


@pytest.fixture
def remote(monkeypatch):
    host = MockRemoteHost()
    monkeypatch.setattr(cli, "session_factory", lambda: session_factory(host))
    return host


def test_tools_already_installed(remote, key_file):
    remote.add_response("command -v ", "installed\n")
    result = runner.invoke(cli.app, ["tools", "-h", "203.0.113.10", "-k", key_file])
    assert result.exit_code == 0
    assert "tools: skipped" in result.output


def test_failed_target_exits_nonzero(remote, key_file):
    result = runner.invoke(
        cli.app,
        ["ssl", "-h", "203.0.113.10", "-k", key_file, "-d", "example.com", "-e", "ops@example.com"],
    )
    assert result.exit_code == 1
    assert "certificate: failed (precondition_unmet)" in result.output


def test_connection_failure(monkeypatch, key_file):
    failing = session_factory(MockRemoteHost(), fail_with=RemoteConnectionError("SSH private key file not found"))
    monkeypatch.setattr(cli, "session_factory", lambda: failing)
    result = runner.invoke(cli.app, ["nginx", "-h", "203.0.113.10", "-k", key_file])
    assert result.exit_code == 1


def test_status(remote, key_file):
    remote.add_response(*NGINX_INSTALLED)
    result = runner.invoke(cli.app, ["status", "-h", "203.0.113.10", "-k", key_file])
    assert result.exit_code == 0
    assert "nginx: installed nginx version: nginx/1.26.2 (stopped)" in result.output
    assert "  missing: git" in result.output


def test_ami(monkeypatch):
    ec2 = FakeEc2()
    ec2.images = [{"ImageId": "ami-9", "Owner": "amazon", "CreationDate": "2025-09-01"}]
    monkeypatch.setattr(cli, "ec2_manager", lambda: Ec2InstanceManager(ec2))
    result = runner.invoke(cli.app, ["ami"])
    assert result.exit_code == 0
    assert result.output.strip() == "ami-9"


def test_cleanup_lists_when_nothing_selected(monkeypatch):
    monkeypatch.setattr(cli, "ec2_manager", lambda: Ec2InstanceManager(FakeEc2()))
    result = runner.invoke(cli.app, ["cleanup"])
    assert result.exit_code == 0
    assert "debian-trixie-2025" in result.output
    assert "--all" in result.output
