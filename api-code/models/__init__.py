from .auto_deploy import AutoDeployContext, AutoDeployJob, WebhookAck
from .base import CamelModel, isoformat_utc, utc_now
from .deployment import DeploymentRecord, DeploymentsMeta
from .oauth import GitHubRepository, OAuthAccessToken, OAuthConnection, OAuthState
from .project import ProjectConfig
from .request_log import ParsedRequestLogLine, RequestLogEntry, RequestLogsMeta

__all__ = [
    "AutoDeployContext",
    "AutoDeployJob",
    "CamelModel",
    "DeploymentRecord",
    "DeploymentsMeta",
    "GitHubRepository",
    "OAuthAccessToken",
    "OAuthConnection",
    "OAuthState",
    "ParsedRequestLogLine",
    "ProjectConfig",
    "RequestLogEntry",
    "RequestLogsMeta",
    "WebhookAck",
    "isoformat_utc",
    "utc_now",
]
