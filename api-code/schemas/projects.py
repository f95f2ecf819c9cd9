from __future__ import annotations

from typing import List, Optional

from pydantic import Field

from models import CamelModel


class ProjectSummary(CamelModel):
    project_name: str
    project_slug: str
    repository: str
    branch: str
    environment: str
    repo_path: str
    remote_host: Optional[str] = None
    category: str = Field(..., description="First path segment under /var/www/projects/.")
    preview_url: str = ""


class ProjectsMeta(CamelModel):
    default_project_slug: str
    count: int


class ProjectsResponse(CamelModel):
    data: List[ProjectSummary]
    meta: ProjectsMeta
