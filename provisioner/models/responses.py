"""Common API request and response models."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, SecretStr

from provisioner.models.cloud import CreatedInstance
from provisioner.models.outcomes import ProbeResult
from provisioner.models.targets import NginxTarget, NodeJsTarget, TargetConfig, ToolBundleTarget


class HealthResponse(BaseModel):
    status: str
    version: str


class ConnectionRequest(BaseModel):
    """SSH connection; username and port fall back to configured defaults."""

    host: str = Field(min_length=1)
    key_path: str
    username: Optional[str] = None
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    passphrase: Optional[SecretStr] = None


class InstallRequest(BaseModel):
    connection: ConnectionRequest
    targets: list[TargetConfig] = Field(min_length=1)


class StatusRequest(BaseModel):
    connection: ConnectionRequest
    targets: list[TargetConfig] = Field(
        default_factory=lambda: [ToolBundleTarget(), NodeJsTarget(), NginxTarget()],
    )


class StatusResponse(BaseModel):
    host: str
    results: dict[str, ProbeResult]


class AmiResponse(BaseModel):
    ami_id: str


class CreateInstanceRequest(BaseModel):
    ami_id: Optional[str] = None
    instance_type: Optional[str] = None


class CreateInstanceResponse(BaseModel):
    instance: CreatedInstance
    ssh_command: str


class CleanupRequest(BaseModel):
    instance_id: Optional[str] = None
    key_name: Optional[str] = None
    security_group_id: Optional[str] = None


class ErrorResponse(BaseModel):
    detail: str
