"""Install endpoint: run a list of targets against one host."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from provisioner.auth import require_api_key
from provisioner.boundary import build_descriptor, session_factory
from provisioner.errors import RemoteConnectionError, TransportError
from provisioner.models.outcomes import RunReport
from provisioner.models.responses import InstallRequest
from provisioner.services.orchestrator import run_targets
from provisioner.utils.logging import get_logger

log = get_logger(__name__)

router = APIRouter(tags=["install"], dependencies=[Depends(require_api_key)])


@router.post("/install", response_model=RunReport)
async def install(req: InstallRequest) -> RunReport:
    """Ensure every target is installed, in request order.

    Per-target failures are reported in the outcomes with HTTP 200; only a
    failed SSH session turns into an error response.
    """
    conn = req.connection
    descriptor = build_descriptor(
        conn.host,
        conn.key_path,
        username=conn.username,
        port=conn.port,
        passphrase=conn.passphrase.get_secret_value() if conn.passphrase else None,
    )
    try:
        return await run_targets(descriptor, req.targets, session_factory=session_factory())
    except (RemoteConnectionError, TransportError) as exc:
        log.error("install.session_failed", host=descriptor.host, error=str(exc))
        raise HTTPException(status_code=502, detail=str(exc)) from exc
