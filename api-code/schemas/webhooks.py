from __future__ import annotations

from typing import List

from pydantic import Field

from models import AutoDeployJob, CamelModel


class AutoDeployJobsMeta(CamelModel):
    count: int
    active_queues: List[str] = Field(
        default_factory=list, description="Queue keys with a pending or running deploy."
    )


class AutoDeployJobsResponse(CamelModel):
    data: List[AutoDeployJob]
    meta: AutoDeployJobsMeta


class AutoDeployJobResponse(CamelModel):
    data: AutoDeployJob
