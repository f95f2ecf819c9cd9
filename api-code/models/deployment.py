from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field

from .base import CamelModel


DeploymentSource = Literal["server-tracker"]


class DeploymentRecord(CamelModel):
    deployment_id: str = Field(..., description="Upper-cased tracker identifier.")
    environment: str = "Production"
    status: str = "Ready"
    duration: str = "n/a"
    project_name: str
    branch: str = "main"
    commit_hash: str = "unknown"
    commit_message: str = ""
    tracked_at: str = Field(..., description="ISO timestamp recorded by the tracker.")
    commit_at: Optional[str] = None
    created_relative: str = Field(default="just now", description="Human age of trackedAt.")
    author: str = "unknown"
    server_host: Optional[str] = None
    source: DeploymentSource = "server-tracker"


class DeploymentsMeta(CamelModel):
    project: str
    source: DeploymentSource = "server-tracker"
    mode: Literal["remote", "local"]
    remote_host: Optional[str] = None
    log_path: Optional[str] = None
