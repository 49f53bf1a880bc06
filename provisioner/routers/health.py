"""Health-check and host status endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from provisioner import __version__
from provisioner.auth import require_api_key
from provisioner.boundary import build_descriptor, session_factory
from provisioner.errors import InstallationError, RemoteConnectionError, TransportError, UnsafeTokenError
from provisioner.models.responses import HealthResponse, StatusRequest, StatusResponse
from provisioner.services.orchestrator import probe_host

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def service_health() -> HealthResponse:
    """Basic liveness probe (no auth required)."""
    return HealthResponse(status="ok", version=__version__)


@router.post(
    "/host/status",
    response_model=StatusResponse,
    dependencies=[Depends(require_api_key)],
)
async def host_status(req: StatusRequest) -> StatusResponse:
    """Probe each requested target read-only; nothing is installed."""
    conn = req.connection
    descriptor = build_descriptor(
        conn.host,
        conn.key_path,
        username=conn.username,
        port=conn.port,
        passphrase=conn.passphrase.get_secret_value() if conn.passphrase else None,
    )
    try:
        results = await probe_host(descriptor, req.targets, session_factory=session_factory())
    except UnsafeTokenError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except InstallationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except (RemoteConnectionError, TransportError) as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return StatusResponse(host=descriptor.host, results=results)
