"""SSH connection descriptor."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, SecretStr


class ConnectionDescriptor(BaseModel):
    """Everything needed to open one session; immutable once built."""

    host: str = Field(min_length=1)
    port: int = Field(default=22, ge=1, le=65535)
    username: str = "admin"
    key_path: str
    passphrase: Optional[SecretStr] = None

    model_config = {"frozen": True}

    @property
    def target(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"
