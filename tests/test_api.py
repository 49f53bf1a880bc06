"""Integration tests exercising the full API with the fake remote host."""

from __future__ import annotations

import pytest

from provisioner.boundary import ec2_manager
from provisioner.errors import RemoteConnectionError
from provisioner.services.cloud import Ec2InstanceManager
from tests.mock_ssh import NGINX_ACTIVE, NGINX_INSTALLED, session_factory
from tests.test_cloud import FakeEc2, Sleeps

CONNECTION = {"host": "203.0.113.10", "key_path": "/keys/id_ed25519"}


@pytest.fixture
def fake_ec2():
    from provisioner.main import app as fastapi_app

    ec2 = FakeEc2(states=["pending", "running"])
    fastapi_app.dependency_overrides[ec2_manager] = lambda: Ec2InstanceManager(ec2, sleep=Sleeps())
    yield ec2
    fastapi_app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"


@pytest.mark.asyncio
async def test_host_status(client, host):
    host.add_response(*NGINX_INSTALLED)
    host.add_response(*NGINX_ACTIVE)
    resp = await client.post("/host/status", json={"connection": CONNECTION})
    assert resp.status_code == 200
    data = resp.json()
    assert data["host"] == "203.0.113.10"
    assert data["results"]["nginx"]["installed"] is True
    assert data["results"]["nginx"]["running"] is True
    assert data["results"]["tools"]["installed"] is False
    assert host.mutating == []


@pytest.mark.asyncio
async def test_host_status_unsafe_token(client):
    body = {
        "connection": CONNECTION,
        "targets": [{"kind": "certificate", "domain": "example.com;reboot", "email": "ops@example.com"}],
    }
    resp = await client.post("/host/status", json=body)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_host_status_unusable_target(client, host):
    body = {
        "connection": CONNECTION,
        "targets": [{"kind": "code_server", "domain": "example.com", "password": ""}],
    }
    resp = await client.post("/host/status", json=body)
    assert resp.status_code == 422
    assert "password" in resp.json()["detail"]
    assert host.commands == []


@pytest.mark.asyncio
async def test_install_reports_each_target(client, host):
    host.add_response("command -v ", "installed\n")
    body = {
        "connection": CONNECTION,
        "targets": [
            {"kind": "tools"},
            {"kind": "certificate", "domain": "example.com", "email": "ops@example.com"},
        ],
    }
    resp = await client.post("/install", json=body)
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is False
    tools, cert = data["outcomes"]
    assert tools["state"] == "skipped"
    assert cert["success"] is False
    assert cert["error_kind"] == "precondition_unmet"
    assert any(line.startswith("[FAIL]") for line in data["progress"])


@pytest.mark.asyncio
async def test_install_unknown_kind_rejected(client):
    resp = await client.post("/install", json={"connection": CONNECTION, "targets": [{"kind": "docker"}]})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_install_requires_targets(client):
    resp = await client.post("/install", json={"connection": CONNECTION, "targets": []})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_install_connection_failure(client, host, monkeypatch):
    import provisioner.routers.install as ri

    failing = session_factory(host, fail_with=RemoteConnectionError("SSH authentication failed for admin@x:22"))
    monkeypatch.setattr(ri, "session_factory", lambda: failing)
    resp = await client.post("/install", json={"connection": CONNECTION, "targets": [{"kind": "nginx"}]})
    assert resp.status_code == 502
    assert "authentication failed" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_api_key_enforced(client, monkeypatch):
    monkeypatch.setattr("provisioner.config.settings.prov_api_key", "secret")
    resp = await client.post("/host/status", json={"connection": CONNECTION})
    assert resp.status_code == 401
    resp = await client.get("/health")
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_rejected_api_key_is_logged(client, monkeypatch):
    events = []

    class _Recorder:
        def warning(self, event, **kw):
            events.append((event, kw))

    monkeypatch.setattr("provisioner.config.settings.prov_api_key", "secret")
    monkeypatch.setattr("provisioner.auth.log", _Recorder())
    resp = await client.post("/host/status", json={"connection": CONNECTION}, headers={"X-API-Key": "wrong"})
    assert resp.status_code == 401
    assert events == [("auth.rejected", {"path": "/host/status", "client": "127.0.0.1", "reason": "mismatch"})]


# ── cloud ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_create_instance(client, fake_ec2, tmp_path, monkeypatch):
    monkeypatch.setattr("provisioner.config.settings.key_directory", str(tmp_path))
    resp = await client.post("/cloud/instances", json={"ami_id": "ami-1"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["instance"]["public_ip"] == "198.51.100.7"
    assert data["ssh_command"].endswith("admin@198.51.100.7")
    assert (tmp_path / "198.51.100.7.pem").exists()


@pytest.mark.asyncio
async def test_create_instance_timeout(client, fake_ec2, tmp_path, monkeypatch):
    fake_ec2.states = ["pending"]
    monkeypatch.setattr("provisioner.config.settings.key_directory", str(tmp_path))
    monkeypatch.setattr("provisioner.config.settings.aws_wait_attempts", 2)
    resp = await client.post("/cloud/instances", json={})
    assert resp.status_code == 504
    assert fake_ec2.called("terminate_instances")


@pytest.mark.asyncio
async def test_list_resources(client, fake_ec2):
    resp = await client.get("/cloud/resources")
    assert resp.status_code == 200
    assert [g["group_id"] for g in resp.json()["security_groups"]] == ["sg-1"]


@pytest.mark.asyncio
async def test_cleanup_requires_something(client, fake_ec2):
    resp = await client.post("/cloud/cleanup", json={})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_cleanup(client, fake_ec2):
    resp = await client.post("/cloud/cleanup", json={"key_name": "debian-trixie-x"})
    assert resp.status_code == 200
    assert resp.json()["deleted_key_pair"] == "debian-trixie-x"
    assert resp.json()["success"] is True


@pytest.mark.asyncio
async def test_find_ami_not_found(client, fake_ec2):
    resp = await client.get("/cloud/ami")
    assert resp.status_code == 502
