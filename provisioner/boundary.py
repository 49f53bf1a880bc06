"""Builders shared by the HTTP routers and the CLI.

The only place where ``settings`` defaults are turned into the explicit
descriptors, session factories and clients the engine receives.
"""

from __future__ import annotations

from functools import partial
from typing import Optional

import boto3

from provisioner.config import settings
from provisioner.models.connection import ConnectionDescriptor
from provisioner.services.cloud import Ec2InstanceManager
from provisioner.services.ssh_session import open_session


def build_descriptor(
    host: str,
    key_path: str,
    *,
    username: Optional[str] = None,
    port: Optional[int] = None,
    passphrase: Optional[str] = None,
) -> ConnectionDescriptor:
    return ConnectionDescriptor(
        host=host,
        port=port or settings.prov_ssh_port,
        username=username or settings.prov_ssh_username,
        key_path=key_path,
        passphrase=passphrase or None,
    )


def session_factory():
    return partial(
        open_session,
        connect_timeout=settings.prov_ssh_connect_timeout,
        keepalive_seconds=settings.prov_ssh_keepalive_seconds,
    )


def ec2_manager() -> Ec2InstanceManager:
    return Ec2InstanceManager(boto3.client("ec2", **settings.boto3_kwargs()))
