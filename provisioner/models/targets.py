"""Target configurations: one tagged variant per installable thing.

``TargetConfig`` is a discriminated union on ``kind`` so that the HTTP layer,
the CLI and the orchestrator can pass any target through a single
``ensure_installed`` entry point.
"""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, SecretStr

DEFAULT_TOOLS: list[str] = [
    "git",
    "htop",
    "ripgrep",
    "build-essential",
    "curl",
    "wget",
    "vim",
    "mc",
    "unzip",
]


class ToolBundleTarget(BaseModel):
    kind: Literal["tools"] = "tools"
    tools: list[str] = Field(default_factory=lambda: list(DEFAULT_TOOLS))


class NodeJsTarget(BaseModel):
    kind: Literal["nodejs"] = "nodejs"
    channel: str = Field(default="lts", description="NodeSource setup channel, e.g. 'lts' or '22'")


class NginxTarget(BaseModel):
    kind: Literal["nginx"] = "nginx"


class CertificateTarget(BaseModel):
    kind: Literal["certificate"] = "certificate"
    domain: str
    email: str


class CodeServerTarget(BaseModel):
    kind: Literal["code_server"] = "code_server"
    domain: str
    password: SecretStr
    path: str = "/code"
    # Remote account that owns the code-server unit; filled from the
    # connection username when omitted.
    username: Optional[str] = None


class StaticSiteTarget(BaseModel):
    kind: Literal["static_site"] = "static_site"
    domain: str
    archive_path: str = Field(description="Local path of the ZIP archive to deploy")


TargetConfig = Annotated[
    Union[
        ToolBundleTarget,
        NodeJsTarget,
        NginxTarget,
        CertificateTarget,
        CodeServerTarget,
        StaticSiteTarget,
    ],
    Field(discriminator="kind"),
]
