"""Tests for the probe strategies and their fallback order."""

from __future__ import annotations

import pytest

from provisioner.services import prober
from provisioner.services.installers import nginx


@pytest.mark.asyncio
async def test_no_strategy_matches_reports_not_installed(host, runner):
    result = await prober.first_positive(runner, nginx.STRATEGIES, name="nginx")
    assert result.installed is False
    assert result.version is None


@pytest.mark.asyncio
async def test_binary_path_wins_first(host, runner):
    host.add_response("/usr/sbin/nginx -v", "nginx version: nginx/1.26.2\n")
    result = await prober.first_positive(runner, nginx.STRATEGIES, name="nginx")
    assert result.installed
    assert result.method == "binary_path"
    assert result.version == "nginx version: nginx/1.26.2"
    assert host.issued("dpkg -l") == []


@pytest.mark.asyncio
async def test_falls_back_to_path_lookup(host, runner):
    host.add_response("command -v nginx", "/opt/nginx/bin/nginx\n")
    host.add_response("/opt/nginx/bin/nginx -v", "nginx version: nginx/1.24.0")
    result = await prober.first_positive(runner, nginx.STRATEGIES, name="nginx")
    assert result.method == "path_lookup"
    assert result.details["path"] == "/opt/nginx/bin/nginx"
    assert len(host.issued("/usr/sbin/nginx -v")) == 1


@pytest.mark.asyncio
async def test_falls_back_to_dpkg_record(host, runner):
    host.add_response("dpkg -l nginx", "ii  nginx  1.26.2-1~trixie  amd64  high performance web server\n")
    result = await prober.first_positive(runner, nginx.STRATEGIES, name="nginx")
    assert result.method == "dpkg"
    assert result.version == "nginx/1.26.2-1~trixie"


@pytest.mark.asyncio
async def test_systemd_unit_is_last_resort(host, runner):
    host.add_response("systemctl list-units", status=0)
    result = await prober.first_positive(runner, nginx.STRATEGIES, name="nginx")
    assert result.method == "systemd"
    assert result.version == "service-installed"


@pytest.mark.asyncio
async def test_transport_error_in_strategy_is_no_signal(host, runner):
    host.break_transport_on("/usr/sbin/nginx")
    host.add_response("dpkg -l nginx", "ii  nginx  1.26.2  amd64  web server\n")
    result = await prober.first_positive(runner, nginx.STRATEGIES, name="nginx")
    assert result.installed
    assert result.method == "dpkg"


@pytest.mark.asyncio
async def test_files_exist(host, runner):
    strategy = prober.files_exist(["/etc/a.pem", "/etc/b.pem"])
    assert await strategy(runner) is None
    host.add_response("sudo test -f /etc/a.pem && sudo test -f /etc/b.pem", "exists\n")
    result = await strategy(runner)
    assert result.installed


@pytest.mark.asyncio
async def test_is_active(host, runner):
    assert await prober.is_active(runner, "nginx") is False
    host.add_response("systemctl is-active nginx", "active\n")
    assert await prober.is_active(runner, "nginx") is True


@pytest.mark.asyncio
async def test_probing_issues_no_sudo_mutations(host, runner):
    await nginx.probe(runner)
    assert host.mutating == []
