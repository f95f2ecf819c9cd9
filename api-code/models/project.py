from __future__ import annotations

from typing import Optional, Tuple

from pydantic import ConfigDict, Field

from .base import CamelModel


class ProjectConfig(CamelModel):
    """One deployable unit loaded from ``AUTO_DEPLOY_PROJECTS``."""

    model_config = ConfigDict(frozen=True)

    project_name: str = Field(..., description="Display name.")
    project_slug: str = Field(..., description="Normalized join key derived from the name.")
    repository: str = Field(..., description="owner/repo or bare repository name.")
    repository_canonical: str = Field(
        ..., description="Repository name lowercased with non-alphanumerics stripped."
    )
    branch: str = Field(default="main", description="Literal branch or '*' wildcard.")
    repo_path: str = Field(..., description="Checkout path on the target host.")
    deploy_command: str = Field(..., description="Shell command run after the checkout.")
    environment: str = Field(default="Production", description="Display label.")
    remote_host: Optional[str] = Field(
        default=None, description="user@host used for SSH execution; local when absent."
    )
    domains: Tuple[str, ...] = Field(default=(), description="Normalized live hostnames.")

    @property
    def repository_has_owner(self) -> bool:
        return "/" in self.repository
