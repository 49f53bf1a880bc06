"""Application settings loaded from environment variables.

Only the operator-facing layers (HTTP routers, CLI) read these.  The
orchestration engine receives explicit descriptors and target configs.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is driven by environment variables."""

    # SSH defaults applied at the operator boundary
    prov_ssh_username: str = "admin"
    prov_ssh_port: int = 22
    prov_ssh_connect_timeout: float = 15.0
    prov_ssh_keepalive_seconds: int = 30

    # API key
    prov_api_key: str = ""

    # Logging
    prov_log_level: str = "INFO"
    prov_log_json: bool = False

    # AWS
    aws_region: str = "eu-central-1"
    aws_access_key_id: str = ""
    aws_secret_access_key: SecretStr = SecretStr("")
    aws_session_token: Optional[SecretStr] = None
    aws_ami_id: str = "ami-0f439e819ba112bd7"
    aws_instance_type: str = "t3.small"
    aws_wait_attempts: int = 60
    aws_wait_interval_seconds: float = 5.0

    # Where generated <ip>.pem key files are written
    key_directory: str = Field(default=".")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def boto3_kwargs(self) -> dict:
        """Explicit client kwargs; empty credentials fall back to boto3's chain."""
        kwargs: dict = {"region_name": self.aws_region}
        if self.aws_access_key_id:
            kwargs["aws_access_key_id"] = self.aws_access_key_id
            kwargs["aws_secret_access_key"] = self.aws_secret_access_key.get_secret_value()
            if self.aws_session_token is not None:
                kwargs["aws_session_token"] = self.aws_session_token.get_secret_value()
        return kwargs


# Singleton – import this from the operator-facing layers only
settings = Settings()
