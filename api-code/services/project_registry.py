from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from domain import (
    as_domain_list,
    canonical_repo_name,
    env_prefix,
    host_from_url,
    normalize_host,
    normalize_slug,
)
from models import ProjectConfig
from settings import Settings


logger = logging.getLogger("control-plane.registry")

DOMAIN_KEYS: Tuple[str, ...] = ("domains", "domain", "liveDomains", "liveDomain", "primaryDomain")
DOMAIN_ENV_SUFFIXES: Tuple[str, ...] = ("DOMAINS", "DOMAIN", "LIVE_DOMAINS", "LIVE_DOMAIN")
PROJECTS_ROOT_MARKER = "/var/www/projects/"


def _non_empty_string(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip()


def parse_projects(raw_projects: Optional[str], default_remote_host: str = "") -> List[ProjectConfig]:
    """Build project configs from a JSON array, skipping invalid entries individually."""
    raw = (raw_projects or "").strip()
    if not raw:
        return []

    try:
        parsed = json.loads(raw)
    except ValueError as exc:
        logger.error("AUTO_DEPLOY_PROJECTS is not valid JSON: %s", exc)
        return []
    if not isinstance(parsed, list):
        logger.error("AUTO_DEPLOY_PROJECTS must be a JSON array")
        return []

    projects: List[ProjectConfig] = []
    for index, entry in enumerate(parsed):
        if not isinstance(entry, dict):
            logger.warning("Skipping auto deploy entry index=%s: value is not an object", index)
            continue

        project_name = _non_empty_string(entry.get("projectName"))
        repository = _non_empty_string(entry.get("repository"))
        repo_path = _non_empty_string(entry.get("repoPath"))
        deploy_command = _non_empty_string(entry.get("deployCommand"))
        if not project_name or not repository or not repo_path or not deploy_command:
            logger.warning(
                "Skipping auto deploy entry index=%s project=%r repository=%r repo_path=%r: "
                "missing projectName/repository/repoPath/deployCommand",
                index,
                project_name,
                repository,
                repo_path,
            )
            continue

        repository_canonical = canonical_repo_name(repository)
        project_slug = normalize_slug(project_name)
        if not repository_canonical or not project_slug:
            logger.warning(
                "Skipping auto deploy entry index=%s repository=%r: invalid repository or name",
                index,
                repository,
            )
            continue

        domains: List[str] = []
        for key in DOMAIN_KEYS:
            domains.extend(as_domain_list(entry.get(key)))

        projects.append(
            ProjectConfig(
                project_name=project_name,
                project_slug=project_slug,
                repository=repository,
                repository_canonical=repository_canonical,
                branch=_non_empty_string(entry.get("branch")) or "main",
                repo_path=repo_path,
                deploy_command=deploy_command,
                environment=_non_empty_string(entry.get("environment")) or "Production",
                remote_host=_non_empty_string(entry.get("remoteHost")) or default_remote_host or None,
                domains=tuple(dict.fromkeys(domains)),
            )
        )
    return projects


def derive_project_category(repo_path: str) -> str:
    normalized = repo_path.strip().replace("\\", "/")
    if not normalized.startswith(PROJECTS_ROOT_MARKER):
        return "uncategorized"
    category = normalized[len(PROJECTS_ROOT_MARKER) :].split("/")[0].strip()
    return category or "uncategorized"


class ProjectRegistry:
    """Read-only table of configured projects with slug, host and repository lookups."""

    def __init__(
        self,
        projects: Sequence[ProjectConfig],
        *,
        fallback_project_name: str = "KANI TAXI",
        default_preview_url: str = "",
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._projects: Tuple[ProjectConfig, ...] = tuple(projects)
        self._by_slug: Dict[str, ProjectConfig] = {}
        for project in self._projects:
            self._by_slug.setdefault(project.project_slug, project)
        self.fallback_project_name = fallback_project_name
        self.fallback_project_slug = normalize_slug(fallback_project_name)
        self.default_preview_url = (default_preview_url or "").strip()
        self._env: Mapping[str, str] = os.environ if env is None else env
        logger.info(
            "Project registry loaded (projects=%s, default=%s)",
            [project.project_slug for project in self._projects],
            self.default_project_slug,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, env: Optional[Mapping[str, str]] = None
    ) -> "ProjectRegistry":
        projects = parse_projects(
            settings.auto_deploy_projects, settings.resolved_auto_deploy_remote_host
        )
        return cls(
            projects,
            fallback_project_name=settings.fallback_project_name,
            default_preview_url=settings.default_preview_url,
            env=env,
        )

    @property
    def projects(self) -> Tuple[ProjectConfig, ...]:
        return self._projects

    @property
    def slugs(self) -> List[str]:
        return list(self._by_slug)

    @property
    def default_project_slug(self) -> str:
        if self._projects:
            return self._projects[0].project_slug
        return self.fallback_project_slug

    @property
    def default_project_name(self) -> str:
        if self._projects:
            return self._projects[0].project_name
        return self.fallback_project_name

    def __len__(self) -> int:
        return len(self._projects)

    def get(self, project_slug: str) -> Optional[ProjectConfig]:
        return self._by_slug.get(project_slug)

    def has(self, project_slug: str) -> bool:
        return project_slug in self._by_slug

    def resolve_project_slug(self, value: Optional[str]) -> str:
        return normalize_slug(value or "") or self.default_project_slug

    def resolve_project_name(self, project_slug: str) -> str:
        project = self._by_slug.get(project_slug)
        return project.project_name if project else self.default_project_name

    def validate_project_input(self, value: Optional[str]) -> Optional[str]:
        """Error message for an unknown project parameter, ``None`` when acceptable."""
        if not value:
            return None
        normalized = normalize_slug(value)
        if not self._by_slug:
            if normalized == self.fallback_project_slug:
                return None
            return (
                f"Only {self.fallback_project_name} ({self.fallback_project_slug}) "
                "is configured right now"
            )
        if normalized in self._by_slug:
            return None
        available = ", ".join(self._by_slug)
        return f"Unknown project ({normalized}). Configured projects: {available}"

    def preview_url_env_key(self, project_slug: str) -> str:
        return f"{env_prefix(project_slug)}_PREVIEW_URL"

    def preview_url(self, project_slug: str) -> str:
        per_project = (self._env.get(self.preview_url_env_key(project_slug)) or "").strip()
        if per_project:
            return per_project
        if project_slug == self.default_project_slug:
            return self.default_preview_url
        return ""

    def preview_host(self, project_slug: str) -> str:
        return host_from_url(self.preview_url(project_slug))

    def configured_hosts(self, project_slug: str) -> List[str]:
        project = self._by_slug.get(project_slug)
        prefix = env_prefix(project_slug)
        hosts: List[str] = list(project.domains) if project else []
        for suffix in DOMAIN_ENV_SUFFIXES:
            hosts.extend(as_domain_list(self._env.get(f"{prefix}_{suffix}")))
        normalized = [normalize_host(host) for host in hosts]
        return list(dict.fromkeys(host for host in normalized if host))

    def describe(self) -> List[Dict[str, Any]]:
        return [
            {
                "project_name": project.project_name,
                "project_slug": project.project_slug,
                "repository": project.repository,
                "branch": project.branch,
                "environment": project.environment,
                "repo_path": project.repo_path,
                "remote_host": project.remote_host,
                "category": derive_project_category(project.repo_path),
                "preview_url": self.preview_url(project.project_slug),
            }
            for project in self._projects
        ]
