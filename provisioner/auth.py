"""X-API-Key dependency guarding the provisioning and cloud endpoints."""

from __future__ import annotations

import secrets

from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from provisioner.config import settings
from provisioner.utils.logging import get_logger

log = get_logger(__name__)

_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def require_api_key(
    request: Request,
    api_key: str | None = Security(_api_key_header),
) -> str:
    """Reject requests whose X-API-Key does not match ``PROV_API_KEY``.

    A blank ``PROV_API_KEY`` disables the check for local use.
    """
    if not settings.prov_api_key:
        return "no-key-configured"
    if api_key is None or not secrets.compare_digest(api_key, settings.prov_api_key):
        log.warning(
            "auth.rejected",
            path=request.url.path,
            client=request.client.host if request.client else None,
            reason="missing" if api_key is None else "mismatch",
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return api_key
