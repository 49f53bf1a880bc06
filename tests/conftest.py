"""Shared pytest fixtures."""

from __future__ import annotations

import os

# Force settings to use test-safe defaults before any import
os.environ.setdefault("PROV_API_KEY", "")
os.environ.setdefault("PROV_SSH_USERNAME", "admin")
os.environ.setdefault("AWS_REGION", "eu-central-1")

import pytest
from httpx import ASGITransport, AsyncClient

from provisioner.services.executor import CommandRunner, ProgressLog
from tests.mock_ssh import MockRemoteHost, session_factory


@pytest.fixture
def host():
    """Provide a fresh MockRemoteHost."""
    return MockRemoteHost()


@pytest.fixture
def progress():
    return ProgressLog()


@pytest.fixture
def runner(host, progress):
    return CommandRunner(host, progress)


@pytest.fixture
def key_file(tmp_path):
    path = tmp_path / "id_test"
    path.write_text("not a real key\n")
    return str(path)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def client(host, monkeypatch):
    """Async test client with the fake remote host injected."""
    monkeypatch.setattr("provisioner.config.settings.prov_api_key", "")

    import provisioner.routers.health as rh
    import provisioner.routers.install as ri

    monkeypatch.setattr(rh, "session_factory", lambda: session_factory(host))
    monkeypatch.setattr(ri, "session_factory", lambda: session_factory(host))

    from provisioner.main import app as fastapi_app

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()
