from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Response
from fastapi.responses import JSONResponse

from schemas import DeploymentsResponse, LatestDeploymentResponse
from services import (
    DeploymentTrackerReader,
    ProjectRegistry,
    ScreenshotError,
    ScreenshotService,
    clamp_limit,
)

from .projects import ensure_known_project


logger = logging.getLogger("control-plane.deployments")

DEFAULT_DEPLOYMENTS_LIMIT = 20


def build_deployments_router(
    registry: ProjectRegistry,
    tracker_reader: DeploymentTrackerReader,
    screenshot_service: ScreenshotService,
) -> APIRouter:
    router = APIRouter(prefix="/v1/deployments", tags=["deployments"])

    @router.get(
        "",
        response_model=DeploymentsResponse,
        summary="Recent deployments recorded by the server tracker",
    )
    async def list_deployments(
        project: Optional[str] = None,
        limit: Optional[str] = None,
    ) -> DeploymentsResponse:
        ensure_known_project(registry, project)
        safe_limit = clamp_limit(limit, DEFAULT_DEPLOYMENTS_LIMIT)
        try:
            records, meta = await tracker_reader.read(project, safe_limit)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("failed to load deployment history")
            raise HTTPException(
                status_code=500,
                detail=str(exc) or "Unable to load deployments from server tracker",
            ) from exc
        return DeploymentsResponse(data=records, meta=meta)

    @router.get(
        "/latest",
        response_model=LatestDeploymentResponse,
        summary="Most recent deployment for a project",
    )
    async def latest_deployment(project: Optional[str] = None) -> LatestDeploymentResponse:
        ensure_known_project(registry, project)
        try:
            record, meta = await tracker_reader.latest(project)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("failed to load latest deployment")
            raise HTTPException(
                status_code=500,
                detail=str(exc) or "Unable to load latest deployment from server tracker",
            ) from exc
        return LatestDeploymentResponse(data=record, meta=meta)

    @router.get(
        "/latest/screenshot",
        summary="PNG capture of the project's preview URL for the latest deployment",
        responses={200: {"content": {"image/png": {}}}},
    )
    async def latest_screenshot(
        project: Optional[str] = None,
        refresh: Optional[str] = None,
    ) -> Response:
        ensure_known_project(registry, project)
        try:
            image = await screenshot_service.latest_screenshot(project, refresh=refresh == "1")
        except ScreenshotError as exc:
            return JSONResponse(
                status_code=exc.status_code,
                content={"error": exc.message, **exc.extra},
            )
        return Response(
            content=image,
            media_type="image/png",
            headers={"Cache-Control": "no-store"},
        )

    return router
