from __future__ import annotations

import re
from typing import Any, Iterable, List
from urllib.parse import urlsplit


_NON_SLUG_RUN = re.compile(r"[^a-z0-9]+")
_NON_ALNUM = re.compile(r"[^a-z0-9]")
_SCHEME_PREFIX = re.compile(r"^https?://")
_PATH_SUFFIX = re.compile(r"/.*$")
_PORT_SUFFIX = re.compile(r":\d+$")
_GIT_SUFFIX = re.compile(r"\.git$", re.IGNORECASE)
_SINGLE_QUOTE_ESCAPE = "'\"'\"'"


def normalize_slug(value: Any) -> str:
    """Lowercase, collapse non-alphanumeric runs into ``-`` and trim hyphens."""
    if not isinstance(value, str):
        return ""
    slug = _NON_SLUG_RUN.sub("-", value.strip().lower())
    return slug.strip("-")


def canonical_repo_name(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    trimmed = _GIT_SUFFIX.sub("", value.strip())
    segments = [segment for segment in trimmed.split("/") if segment]
    last_segment = segments[-1] if segments else trimmed
    return _NON_ALNUM.sub("", last_segment.lower())


def canonical_slug(slug: str) -> str:
    return _NON_ALNUM.sub("", (slug or "").lower())


def normalize_host(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    host = _SCHEME_PREFIX.sub("", value.strip().lower())
    host = _PATH_SUFFIX.sub("", host)
    return _PORT_SUFFIX.sub("", host)


def host_from_url(value: Any) -> str:
    """Hostname of a URL, or the normalized value itself when it is not a URL."""
    if not isinstance(value, str):
        return ""
    raw = value.strip()
    if not raw:
        return ""
    try:
        hostname = urlsplit(raw).hostname
    except ValueError:
        hostname = None
    if hostname:
        return normalize_host(hostname)
    return normalize_host(raw)


def as_domain_list(value: Any) -> List[str]:
    values: Iterable[Any] = value if isinstance(value, (list, tuple)) else [value]
    domains: List[str] = []
    for entry in values:
        if not isinstance(entry, str):
            continue
        for part in entry.split(","):
            host = normalize_host(part)
            if host:
                domains.append(host)
    return domains


def env_prefix(project_slug: str) -> str:
    return project_slug.replace("-", "_").upper()


def shell_quote(value: str) -> str:
    """Single-quote a value for POSIX shells, escaping embedded quotes."""
    return "'" + value.replace("'", _SINGLE_QUOTE_ESCAPE) + "'"
