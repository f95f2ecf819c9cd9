from __future__ import annotations

import os
import socket
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator


PROJECT_ROOT = Path(__file__).resolve().parent.parent
LOCAL_STATE_DIR = PROJECT_ROOT / ".local"


def _positive_int(value: object, fallback: int) -> int:
    try:
        parsed = int(float(str(value).strip()))
    except (TypeError, ValueError, OverflowError):
        return fallback
    return parsed if parsed > 0 else fallback


def _host_from_bind_address(value: str) -> str:
    value = (value or "").strip()
    if value in {"", "0.0.0.0", "::"}:
        return "localhost"
    return value


class Settings(BaseModel):
    """Runtime configuration resolved from environment variables."""

    auto_deploy_projects: str = Field(
        default="",
        alias="AUTO_DEPLOY_PROJECTS",
        description="JSON array describing the deployable projects.",
    )
    auto_deploy_enabled: bool = Field(
        default=False,
        alias="AUTO_DEPLOY_ENABLED",
        description="Accept GitHub push webhooks and run deploys.",
    )
    auto_deploy_webhook_token: str = Field(
        default="",
        alias="AUTO_DEPLOY_WEBHOOK_TOKEN",
        description="Static token expected in the webhook ?token= query parameter.",
    )
    github_webhook_secret: str = Field(
        default="",
        alias="GITHUB_WEBHOOK_SECRET",
        description="Shared secret used to verify X-Hub-Signature-256.",
    )
    auto_deploy_timeout_sec: int = Field(
        default=900,
        alias="AUTO_DEPLOY_TIMEOUT_SEC",
        description="Kill a deploy script after this many seconds.",
    )
    auto_deploy_remote_host: str = Field(
        default="",
        alias="AUTO_DEPLOY_REMOTE_HOST",
        description="Default user@host for deploy scripts (falls back to the tracker host).",
    )
    deploy_tracker_log_path: str = Field(
        default=str(LOCAL_STATE_DIR / "deployments.jsonl"),
        alias="DEPLOY_TRACKER_LOG_PATH",
        description="Local JSON-lines tracker file used when no remote host is configured.",
    )
    deploy_tracker_remote_host: str = Field(
        default="",
        alias="DEPLOY_TRACKER_REMOTE_HOST",
        description="user@host holding the tracker log.",
    )
    deploy_tracker_remote_log_path: str = Field(
        default="~/.runcloud-clone/deployments.jsonl",
        alias="DEPLOY_TRACKER_REMOTE_LOG_PATH",
        description="Tracker log path on the remote host.",
    )
    request_log_local_path: str = Field(
        default=str(LOCAL_STATE_DIR / "access.log"),
        alias="REQUEST_LOG_LOCAL_PATH",
        description="Local access log used when no remote host is configured.",
    )
    request_log_remote_host: str = Field(
        default="",
        alias="REQUEST_LOG_REMOTE_HOST",
        description="user@host holding the access log (falls back to the auto deploy host).",
    )
    request_log_remote_path: str = Field(
        default="/var/log/nginx/access.log",
        alias="REQUEST_LOG_REMOTE_PATH",
        description="Access log path on the remote host.",
    )
    request_log_tail_lines: int = Field(
        default=600,
        alias="REQUEST_LOG_TAIL_LINES",
        description="Minimum number of lines tailed from the remote access log.",
    )
    request_log_tail_multiplier: int = Field(
        default=25,
        alias="REQUEST_LOG_TAIL_MULTIPLIER",
        description="Lines tailed per requested entry.",
    )
    control_plane_server_host: str = Field(
        default_factory=socket.gethostname,
        alias="CONTROL_PLANE_SERVER_HOST",
        description="Hostname reported for records that do not carry one.",
    )
    control_plane_host: str = Field(default="0.0.0.0", alias="CONTROL_PLANE_HOST")
    control_plane_port: int = Field(default=3000, alias="CONTROL_PLANE_PORT")
    control_plane_public_url: str = Field(
        default="",
        alias="CONTROL_PLANE_PUBLIC_URL",
        description="Externally reachable base URL of this API (derived from host/port when blank).",
    )
    dashboard_public_url: str = Field(
        default="http://localhost:5173",
        alias="DASHBOARD_PUBLIC_URL",
        description="Dashboard URL used for OAuth redirects and traffic filtering.",
    )
    fallback_project_name: str = Field(
        default="KANI TAXI",
        alias="FALLBACK_PROJECT_NAME",
        description="Project shown when AUTO_DEPLOY_PROJECTS is empty.",
    )
    default_preview_url: str = Field(
        default="https://kanitaxi.com",
        alias="DEFAULT_PREVIEW_URL",
        description="Preview URL of the default project when no per-project URL is set.",
    )
    screenshot_cache_dir: str = Field(
        default=str(LOCAL_STATE_DIR / "screenshots"),
        alias="SCREENSHOT_CACHE_DIR",
    )
    screenshot_viewport: str = Field(default="1500,700", alias="SCREENSHOT_VIEWPORT")
    screenshot_wait_ms: int = Field(default=5000, alias="SCREENSHOT_WAIT_MS")
    screenshot_wait_selector: str = Field(default="", alias="SCREENSHOT_WAIT_SELECTOR")
    screenshot_timeout_sec: int = Field(default=60, alias="SCREENSHOT_TIMEOUT_SEC")
    github_client_id: str = Field(default="", alias="GITHUB_CLIENT_ID")
    github_client_secret: str = Field(default="", alias="GITHUB_CLIENT_SECRET")
    gitlab_signin_url: str = Field(
        default="https://gitlab.com/users/sign_in", alias="GITLAB_SIGNIN_URL"
    )
    bitbucket_signin_url: str = Field(
        default="https://bitbucket.org/account/signin/", alias="BITBUCKET_SIGNIN_URL"
    )
    connected_github_repos: str = Field(
        default="",
        alias="CONNECTED_GITHUB_REPOS",
        description="Comma-separated repositories shown in the GitHub repo picker.",
    )
    connected_repo_paths: str = Field(
        default="",
        alias="CONNECTED_REPO_PATHS",
        description="Comma-separated local checkouts whose origin remote is shown in the repo picker.",
    )

    model_config = {"populate_by_name": True}

    @field_validator(
        "auto_deploy_timeout_sec",
        "request_log_tail_lines",
        "request_log_tail_multiplier",
        "screenshot_wait_ms",
        "screenshot_timeout_sec",
        "control_plane_port",
        mode="before",
    )
    @classmethod
    def _coerce_positive(cls, value: object, info: ValidationInfo) -> int:
        default = cls.model_fields[info.field_name].default
        return _positive_int(value, default)

    @field_validator("auto_deploy_enabled", mode="before")
    @classmethod
    def _coerce_flag(cls, value: object) -> bool:
        if isinstance(value, bool):
            return value
        return str(value or "").strip().lower() == "true"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls.model_validate(os.environ)

    @property
    def resolved_auto_deploy_remote_host(self) -> str:
        return (self.auto_deploy_remote_host or self.deploy_tracker_remote_host or "").strip()

    @property
    def resolved_request_log_remote_host(self) -> Optional[str]:
        host = (self.request_log_remote_host or self.resolved_auto_deploy_remote_host).strip()
        return host or None

    @property
    def resolved_tracker_remote_host(self) -> Optional[str]:
        return self.deploy_tracker_remote_host.strip() or None

    @property
    def resolved_public_url(self) -> str:
        url = self.control_plane_public_url.strip()
        if url:
            return url
        return f"http://{_host_from_bind_address(self.control_plane_host)}:{self.control_plane_port}"

    @staticmethod
    def split_list(raw: str) -> list[str]:
        return [item.strip() for item in (raw or "").split(",") if item.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance built from environment variables."""
    return Settings.from_env()
