"""EC2 instance lifecycle endpoints.

boto3 is blocking, so these are plain ``def`` endpoints run in FastAPI's
threadpool.
"""

from __future__ import annotations

from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException

from provisioner.auth import require_api_key
from provisioner.boundary import ec2_manager
from provisioner.config import settings
from provisioner.errors import CloudError, CloudTimeoutError
from provisioner.models.cloud import CleanupReport, ExistingResources
from provisioner.models.responses import (
    AmiResponse,
    CleanupRequest,
    CreateInstanceRequest,
    CreateInstanceResponse,
)
from provisioner.services.cloud import Ec2InstanceManager

router = APIRouter(
    prefix="/cloud",
    tags=["cloud"],
    dependencies=[Depends(require_api_key)],
)


def _raise_cloud(exc: CloudError) -> NoReturn:
    if isinstance(exc, CloudTimeoutError):
        raise HTTPException(status_code=504, detail=str(exc)) from exc
    raise HTTPException(status_code=502, detail=str(exc)) from exc


@router.get("/ami", response_model=AmiResponse)
def find_ami(pattern: str = "debian-13-amd64-*", mgr: Ec2InstanceManager = Depends(ec2_manager)) -> AmiResponse:
    try:
        return AmiResponse(ami_id=mgr.find_debian_ami(pattern))
    except CloudError as exc:
        _raise_cloud(exc)


@router.post("/instances", response_model=CreateInstanceResponse)
def create_instance(
    req: CreateInstanceRequest,
    mgr: Ec2InstanceManager = Depends(ec2_manager),
) -> CreateInstanceResponse:
    """Create key pair, security group and instance; wait for a public IP."""
    try:
        created = mgr.create_instance(
            ami_id=req.ami_id or settings.aws_ami_id,
            instance_type=req.instance_type or settings.aws_instance_type,
            key_directory=settings.key_directory,
            max_attempts=settings.aws_wait_attempts,
            interval=settings.aws_wait_interval_seconds,
        )
    except CloudError as exc:
        _raise_cloud(exc)
    except OSError as exc:
        raise HTTPException(status_code=500, detail=f"could not save key file: {exc}") from exc
    return CreateInstanceResponse(instance=created, ssh_command=created.ssh_command)


@router.get("/resources", response_model=ExistingResources)
def list_resources(mgr: Ec2InstanceManager = Depends(ec2_manager)) -> ExistingResources:
    try:
        return mgr.find_existing_resources()
    except CloudError as exc:
        _raise_cloud(exc)


@router.post("/cleanup", response_model=CleanupReport)
def cleanup(req: CleanupRequest, mgr: Ec2InstanceManager = Depends(ec2_manager)) -> CleanupReport:
    """Best-effort teardown; individual errors are listed in the report."""
    if not (req.instance_id or req.key_name or req.security_group_id):
        raise HTTPException(status_code=422, detail="nothing to clean up")
    return mgr.cleanup_resources(
        instance_id=req.instance_id,
        key_name=req.key_name,
        security_group_id=req.security_group_id,
        key_directory=settings.key_directory,
    )
