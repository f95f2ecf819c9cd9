from .deployments import build_deployments_router
from .health import build_health_router
from .logs import build_logs_router
from .oauth import build_oauth_router
from .projects import build_projects_router
from .webhooks import build_webhooks_router

__all__ = [
    "build_deployments_router",
    "build_health_router",
    "build_logs_router",
    "build_oauth_router",
    "build_projects_router",
    "build_webhooks_router",
]
