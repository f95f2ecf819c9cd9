from __future__ import annotations

import json
from datetime import datetime
from typing import Any, List, Optional, Tuple

from domain import normalize_slug
from models import DeploymentRecord, isoformat_utc, utc_now

from .timestamps import to_relative_time


# Raw author substrings remapped to a display name.
AUTHOR_ALIASES: Tuple[Tuple[str, str], ...] = (("hello-cms-ai", "vserver"),)


def map_author(author: str) -> str:
    lowered = author.lower()
    for needle, replacement in AUTHOR_ALIASES:
        if needle in lowered:
            return replacement
    return author


def _text(value: Any, default: Optional[str]) -> Optional[str]:
    if value is None:
        return default
    if isinstance(value, str):
        return value
    return str(value)


def parse_tracker_line(
    line: str,
    *,
    server_host: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[Tuple[str, DeploymentRecord]]:
    """Return ``(project_slug, record)`` for one tracker line, or ``None`` when malformed."""
    line = (line or "").strip()
    if not line:
        return None
    try:
        entry = json.loads(line)
    except (ValueError, RecursionError):
        return None
    if not isinstance(entry, dict):
        return None

    project_name = _text(entry.get("projectName"), "") or ""
    tracked_at = _text(entry.get("trackedAt"), None) or isoformat_utc(now or utc_now())
    record = DeploymentRecord(
        deployment_id=(_text(entry.get("deploymentId"), "unknown") or "").upper(),
        environment=_text(entry.get("environment"), "Production"),
        status=_text(entry.get("status"), "Ready"),
        duration=_text(entry.get("duration"), "n/a"),
        project_name=project_name,
        branch=_text(entry.get("branch"), "main"),
        commit_hash=_text(entry.get("commitHash"), "unknown"),
        commit_message=_text(entry.get("commitMessage"), ""),
        tracked_at=tracked_at,
        commit_at=_text(entry.get("commitAt"), None),
        created_relative=to_relative_time(tracked_at, now),
        author=map_author(_text(entry.get("author"), "unknown") or ""),
        server_host=_text(entry.get("serverHost"), server_host),
    )
    return normalize_slug(project_name), record


def parse_tracker_entries(
    raw: str,
    expected_project_slug: str,
    expected_project_name: str,
    *,
    server_host: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[DeploymentRecord]:
    """Records of one project, most recently appended first."""
    parsed: List[DeploymentRecord] = []
    for line in (raw or "").split("\n"):
        result = parse_tracker_line(line, server_host=server_host, now=now)
        if result is None:
            continue
        entry_slug, record = result
        if not entry_slug or entry_slug != expected_project_slug:
            continue
        parsed.append(record.model_copy(update={"project_name": expected_project_name}))
    parsed.reverse()
    return parsed
