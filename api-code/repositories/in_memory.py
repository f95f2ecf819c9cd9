from __future__ import annotations

from collections import OrderedDict
from typing import List, Optional

from domain import AutoDeployStatus, is_valid_transition
from models import AutoDeployJob, utc_now


class InMemoryAutoDeployJobRepository:
    """Process-local ledger of auto deploy jobs; history is lost on restart."""

    def __init__(self, max_jobs: int = 200) -> None:
        self._jobs: "OrderedDict[str, AutoDeployJob]" = OrderedDict()
        self.max_jobs = max_jobs

    async def create_job(self, job: AutoDeployJob) -> AutoDeployJob:
        self._jobs[job.job_id] = job
        self._evict()
        return job

    async def get_job(self, job_id: str) -> Optional[AutoDeployJob]:
        return self._jobs.get(job_id)

    async def list_recent(self, limit: int = 20) -> List[AutoDeployJob]:
        jobs = list(self._jobs.values())
        jobs.reverse()
        return jobs[:limit]

    async def mark_status(
        self,
        job_id: str,
        status: AutoDeployStatus,
        *,
        error: Optional[str] = None,
    ) -> Optional[AutoDeployJob]:
        job = self._jobs.get(job_id)
        if not job:
            return None
        current = AutoDeployStatus(job.status)
        if not is_valid_transition(current, status):
            raise RuntimeError(f"invalid status transition from {current.value} to {status.value}")

        now = utc_now()
        job.status = status
        if status == AutoDeployStatus.RUNNING:
            job.started_at = now
        if status.is_terminal:
            job.completed_at = now
            if job.started_at is not None:
                job.duration_ms = int((now - job.started_at).total_seconds() * 1000)
        if error:
            job.error = error
        return job

    def _evict(self) -> None:
        while len(self._jobs) > self.max_jobs:
            oldest_id = next(iter(self._jobs))
            self._jobs.pop(oldest_id)
