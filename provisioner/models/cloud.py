"""EC2 instance lifecycle models."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, computed_field


class CreatedInstance(BaseModel):
    instance_id: str
    public_ip: str
    key_name: str
    key_file: str
    security_group_id: str
    ami_id: str
    instance_type: str

    @property
    def ssh_command(self) -> str:
        return f"ssh -i {self.key_file} admin@{self.public_ip}"


class InstanceInfo(BaseModel):
    instance_id: str
    state: str
    public_ip: Optional[str] = None
    key_name: Optional[str] = None
    launch_time: Optional[str] = None
    security_group_ids: list[str] = Field(default_factory=list)


class KeyPairInfo(BaseModel):
    key_name: str
    key_pair_id: Optional[str] = None


class SecurityGroupInfo(BaseModel):
    group_id: str
    group_name: str
    description: str = ""


class ExistingResources(BaseModel):
    instances: list[InstanceInfo] = Field(default_factory=list)
    key_pairs: list[KeyPairInfo] = Field(default_factory=list)
    security_groups: list[SecurityGroupInfo] = Field(default_factory=list)


class CleanupReport(BaseModel):
    terminated_instance: Optional[str] = None
    deleted_security_group: Optional[str] = None
    deleted_key_pair: Optional[str] = None
    removed_key_file: Optional[str] = None
    errors: list[str] = Field(default_factory=list)

    @computed_field
    @property
    def success(self) -> bool:
        return not self.errors
