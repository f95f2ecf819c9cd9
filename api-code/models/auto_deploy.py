from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from domain import AutoDeployStatus

from .base import CamelModel, utc_now


class AutoDeployContext(CamelModel):
    repository_name: str
    repository_full_name: str
    branch: str
    commit_hash: str = "unknown"
    commit_message: str = ""
    pusher: str = "unknown"


class AutoDeployJob(CamelModel):
    job_id: str = Field(..., description="Random identifier used in logs and the job ledger.")
    project_slug: str
    project_name: str
    queue_key: str = Field(..., description="{projectSlug}:{branch}")
    status: AutoDeployStatus = AutoDeployStatus.QUEUED
    context: AutoDeployContext
    remote_host: Optional[str] = None
    queued_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    error: Optional[str] = None


class WebhookAck(CamelModel):
    status: str = Field(..., description="ok, ignored or queued.")
    message: Optional[str] = None
    reason: Optional[str] = None
    job_id: Optional[str] = None
    project_name: Optional[str] = None
    branch: Optional[str] = None
    repository: Optional[str] = None
