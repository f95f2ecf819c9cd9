from .attribution import ProjectAttributor, is_control_plane_path
from .auto_deploy_service import AutoDeployService, WebhookError
from .command_runner import CommandExecutionError, CommandTimeoutError, build_ssh_command, run_command
from .log_readers import DeploymentTrackerReader, RemoteSourceError, RequestLogReader, clamp_limit
from .oauth_service import GitHubOAuthService, OAuthError
from .project_registry import ProjectRegistry, derive_project_category, parse_projects
from .screenshot_service import ScreenshotError, ScreenshotService

__all__ = [
    "AutoDeployService",
    "CommandExecutionError",
    "CommandTimeoutError",
    "DeploymentTrackerReader",
    "GitHubOAuthService",
    "OAuthError",
    "ProjectAttributor",
    "ProjectRegistry",
    "RemoteSourceError",
    "RequestLogReader",
    "ScreenshotError",
    "ScreenshotService",
    "WebhookError",
    "build_ssh_command",
    "clamp_limit",
    "derive_project_category",
    "is_control_plane_path",
    "parse_projects",
    "run_command",
]
