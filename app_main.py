from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Mapping, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse


PROJECT_ROOT = Path(__file__).resolve().parent
API_CODE_PATH = PROJECT_ROOT / "api-code"
if str(API_CODE_PATH) not in sys.path:
    sys.path.insert(0, str(API_CODE_PATH))

from domain import host_from_url  # noqa: E402
from env_loader import load_local_env  # noqa: E402
from repositories import InMemoryAutoDeployJobRepository  # noqa: E402
from routers import (  # noqa: E402
    build_deployments_router,
    build_health_router,
    build_logs_router,
    build_oauth_router,
    build_projects_router,
    build_webhooks_router,
)
from services import (  # noqa: E402
    AutoDeployService,
    DeploymentTrackerReader,
    GitHubOAuthService,
    ProjectAttributor,
    ProjectRegistry,
    RequestLogReader,
    ScreenshotService,
)
from settings import Settings, get_settings  # noqa: E402


logger = logging.getLogger("control-plane")


def build_app(settings: Settings, env: Optional[Mapping[str, str]] = None) -> FastAPI:
    app = FastAPI(
        title="vserver control plane",
        version="0.1.0",
        description="Deployment history, request logs and push-triggered auto deploys.",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(HTTPException)
    async def render_http_error(_request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    registry = ProjectRegistry.from_settings(settings, env=env)
    dashboard_hosts = [
        settings.control_plane_server_host,
        host_from_url(settings.resolved_public_url),
        host_from_url(settings.dashboard_public_url),
    ]
    attributor = ProjectAttributor(registry, dashboard_hosts)
    request_log_reader = RequestLogReader.from_settings(settings, registry, attributor)
    tracker_reader = DeploymentTrackerReader.from_settings(settings, registry)
    job_repository = InMemoryAutoDeployJobRepository()
    auto_deploy_service = AutoDeployService.from_settings(settings, registry, job_repository)
    screenshot_service = ScreenshotService.from_settings(settings, registry, tracker_reader)
    oauth_service = GitHubOAuthService(settings, default_project_slug=registry.default_project_slug)

    app.state.registry = registry
    app.state.auto_deploy_service = auto_deploy_service

    app.include_router(build_health_router())
    app.include_router(build_projects_router(registry))
    app.include_router(build_deployments_router(registry, tracker_reader, screenshot_service))
    app.include_router(build_logs_router(registry, request_log_reader))
    app.include_router(build_webhooks_router(auto_deploy_service))
    app.include_router(build_oauth_router(oauth_service))

    logger.info(
        "control plane ready (projects=%s, auto_deploy=%s, request_logs=%s)",
        registry.slugs,
        "enabled" if auto_deploy_service.enabled else "disabled",
        request_log_reader.mode,
    )
    return app


logging.basicConfig(level=logging.INFO)

load_local_env()
settings = get_settings()

app = build_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app_main:app", host=settings.control_plane_host, port=settings.control_plane_port)
