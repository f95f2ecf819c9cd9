from __future__ import annotations

import re
from typing import Callable, Iterable, Optional, Tuple

from domain import canonical_slug, normalize_host, normalize_slug
from models import ParsedRequestLogLine

from .project_registry import ProjectRegistry


CONTROL_PLANE_ROOTS = frozenset({"projects", "logs", "webhooks", "deployments", "oauth"})
CONTROL_PLANE_PATH = re.compile(r"^/(?:api/)?v1/([^/]+)")
_NON_ALNUM = re.compile(r"[^a-z0-9]")


def is_control_plane_path(path: str) -> bool:
    """True for paths served by this API (``/v1/logs``, ``/api/v1/projects`` ...)."""
    normalized = (path or "").strip().lower().split("?")[0]
    if not normalized:
        return False
    match = CONTROL_PLANE_PATH.match(normalized)
    if not match:
        return normalized in {"/v1", "/api/v1"}
    return match.group(1) in CONTROL_PLANE_ROOTS


Resolver = Callable[[ParsedRequestLogLine], Optional[str]]


class ProjectAttributor:
    """Assigns access log lines to a configured project.

    Resolvers run in order and the first one returning a slug wins:
    explicit hint, hostname, path/message text, then project cardinality.
    Matching is first-configured-project-wins, so a slug that is a substring
    of another slug (``app`` vs ``app-v2``) can claim the other's lines in the
    text step.
    """

    def __init__(self, registry: ProjectRegistry, dashboard_hosts: Iterable[str] = ()) -> None:
        self.registry = registry
        self.dashboard_hosts = frozenset(
            host for host in (normalize_host(value) for value in dashboard_hosts) if host
        )
        self._resolvers: Tuple[Resolver, ...] = (
            self.match_hint,
            self.match_host,
            self.match_text,
            self.match_cardinality,
        )

    def is_dashboard_request(self, host: str, path: str) -> bool:
        if is_control_plane_path(path):
            return True
        normalized = normalize_host(host)
        return bool(normalized) and normalized in self.dashboard_hosts

    def resolve(self, entry: ParsedRequestLogLine) -> str:
        """Slug of the owning project, or ``""`` when the line cannot be attributed."""
        for resolver in self._resolvers:
            slug = resolver(entry)
            if slug:
                return slug
        return ""

    def match_hint(self, entry: ParsedRequestLogLine) -> Optional[str]:
        hint = normalize_slug(entry.project_hint or "")
        if not hint:
            return None
        if self.registry.has(hint):
            return hint
        if len(self.registry) == 0 and hint == self.registry.fallback_project_slug:
            return hint
        return None

    def match_host(self, entry: ParsedRequestLogLine) -> Optional[str]:
        host = normalize_host(entry.host)
        if not host:
            return None
        labels = [_NON_ALNUM.sub("", label) for label in host.split(".")]
        labels = [label for label in labels if label]
        for project in self.registry.projects:
            slug = project.project_slug
            preview_host = self.registry.preview_host(slug)
            if preview_host and preview_host == host:
                return slug
            if host in self.registry.configured_hosts(slug):
                return slug
            slug_canonical = canonical_slug(slug)
            if slug_canonical and slug_canonical in labels:
                return slug
        if len(self.registry) == 0:
            fallback_slug = self.registry.fallback_project_slug
            fallback_host = self.registry.preview_host(fallback_slug)
            if fallback_host and fallback_host == host:
                return fallback_slug
        return None

    def match_text(self, entry: ParsedRequestLogLine) -> Optional[str]:
        haystack = f"{entry.path} {entry.message} {normalize_host(entry.host)}".lower()
        canonical_haystack = _NON_ALNUM.sub("", haystack)
        for project in self.registry.projects:
            slug = project.project_slug
            slug_canonical = canonical_slug(slug)
            if slug in haystack or (slug_canonical and slug_canonical in canonical_haystack):
                return slug
        return None

    def match_cardinality(self, entry: ParsedRequestLogLine) -> Optional[str]:
        if len(self.registry) == 1:
            return self.registry.projects[0].project_slug
        if len(self.registry) == 0:
            return self.registry.fallback_project_slug
        return None
