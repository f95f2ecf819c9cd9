from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

PROJECT_ROOT = Path(__file__).resolve().parent.parent
API_CODE_PATH = PROJECT_ROOT / "api-code"
if str(API_CODE_PATH) not in sys.path:
    sys.path.insert(0, str(API_CODE_PATH))

from services import ProjectRegistry, parse_projects


ACME_PROJECT: Dict[str, Any] = {
    "projectName": "Acme App",
    "repository": "org/acme",
    "branch": "main",
    "repoPath": "/var/www/projects/web/acme",
    "deployCommand": "npm run deploy",
    "domain": "acme.example.com",
}

BETA_PROJECT: Dict[str, Any] = {
    "projectName": "Beta App",
    "repository": "beta-app",
    "branch": "*",
    "repoPath": "/srv/beta",
    "deployCommand": "make deploy",
    "remoteHost": "deploy@beta.internal",
}

DEFAULT_PROJECTS = (ACME_PROJECT, BETA_PROJECT)


def projects_json(projects: Sequence[Mapping[str, Any]] = DEFAULT_PROJECTS) -> str:
    return json.dumps(list(projects))


def build_registry(
    projects: Sequence[Mapping[str, Any]] = DEFAULT_PROJECTS,
    *,
    env: Optional[Mapping[str, str]] = None,
    default_preview_url: str = "",
) -> ProjectRegistry:
    return ProjectRegistry(
        parse_projects(projects_json(projects)),
        fallback_project_name="KANI TAXI",
        default_preview_url=default_preview_url,
        env=env or {},
    )
