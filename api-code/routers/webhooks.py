from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from schemas import AutoDeployJobResponse, AutoDeployJobsMeta, AutoDeployJobsResponse
from services import AutoDeployService, WebhookError, clamp_limit


DEFAULT_JOBS_LIMIT = 20


def build_webhooks_router(auto_deploy_service: AutoDeployService) -> APIRouter:
    router = APIRouter(prefix="/v1/webhooks", tags=["webhooks"])

    @router.post(
        "/github",
        summary="Receive a GitHub push webhook and queue an auto deploy",
    )
    async def github_webhook(
        request: Request,
        token: Optional[str] = None,
        x_github_event: Optional[str] = Header(default=None),
        x_hub_signature_256: Optional[str] = Header(default=None),
    ) -> JSONResponse:
        raw_body = await request.body()
        try:
            status_code, ack = await auto_deploy_service.handle_webhook(
                event=x_github_event,
                raw_body=raw_body,
                token=token,
                signature=x_hub_signature_256,
            )
        except WebhookError as exc:
            raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
        return JSONResponse(
            status_code=status_code,
            content=ack.model_dump(mode="json", by_alias=True, exclude_none=True),
        )

    @router.get(
        "/jobs",
        response_model=AutoDeployJobsResponse,
        summary="Recent auto deploy jobs, newest first",
    )
    async def list_jobs(limit: Optional[str] = None) -> AutoDeployJobsResponse:
        jobs = await auto_deploy_service.list_recent_jobs(clamp_limit(limit, DEFAULT_JOBS_LIMIT))
        return AutoDeployJobsResponse(
            data=jobs,
            meta=AutoDeployJobsMeta(
                count=len(jobs),
                active_queues=auto_deploy_service.active_queue_keys,
            ),
        )

    @router.get(
        "/jobs/{job_id}",
        response_model=AutoDeployJobResponse,
        summary="Single auto deploy job",
    )
    async def get_job(job_id: str) -> AutoDeployJobResponse:
        try:
            job = await auto_deploy_service.get_job(job_id)
        except RuntimeError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return AutoDeployJobResponse(data=job)

    return router
