from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException

from schemas import ProjectsMeta, ProjectsResponse, ProjectSummary
from services import ProjectRegistry


def ensure_known_project(registry: ProjectRegistry, project: Optional[str]) -> None:
    error = registry.validate_project_input(project)
    if error:
        raise HTTPException(status_code=400, detail=error)


def build_projects_router(registry: ProjectRegistry) -> APIRouter:
    router = APIRouter(prefix="/v1", tags=["projects"])

    @router.get(
        "/projects",
        response_model=ProjectsResponse,
        summary="List configured auto deploy projects",
    )
    async def list_projects() -> ProjectsResponse:
        return ProjectsResponse(
            data=[ProjectSummary.model_validate(item) for item in registry.describe()],
            meta=ProjectsMeta(
                default_project_slug=registry.default_project_slug,
                count=len(registry),
            ),
        )

    return router
