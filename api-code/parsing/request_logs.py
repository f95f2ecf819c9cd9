"""Access log line parsing.

Two formats are recognized, tried in order: one JSON object per line with
loosely named keys, then the nginx combined/extended log format. Lines that
match neither are rejected by returning ``None``.
"""
from __future__ import annotations

import json
import re
from typing import Any, Mapping, Optional, Sequence, Tuple

from domain import normalize_host
from models import ParsedRequestLogLine

from .timestamps import coerce_status_code, parse_nginx_timestamp, to_iso_timestamp


# Field aliases in priority order; the first key carrying a usable value wins.
REQUEST_LINE_KEYS: Tuple[str, ...] = ("request", "httpRequest")
METHOD_KEYS: Tuple[str, ...] = ("method",)
PATH_KEYS: Tuple[str, ...] = ("path", "url", "requestPath")
STATUS_KEYS: Tuple[str, ...] = ("statusCode", "status")
HOST_KEYS: Tuple[str, ...] = ("host", "hostname", "domain")
REMOTE_ADDR_KEYS: Tuple[str, ...] = ("remoteAddr", "ip", "clientIp")
TIMESTAMP_KEYS: Tuple[str, ...] = ("timestamp", "time", "loggedAt", "createdAt", "date")
PROJECT_HINT_KEYS: Tuple[str, ...] = ("projectSlug", "project", "projectName")
MESSAGE_KEYS: Tuple[str, ...] = ("message", "msg")

REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+)\s+(\S+)", re.IGNORECASE)
NGINX_LINE_PATTERN = re.compile(
    r"^(?P<remote>\S+)\s+\S+\s+\S+\s+\[(?P<time>[^\]]+)\]\s+"
    r'"(?P<request>[^"]*)"\s+(?P<status>\d{3}|-)\s+\S+(?P<rest>.*)$'
)
QUOTED_FIELD_PATTERN = re.compile(r'"([^"]*)"')
IPV4_PATTERN = re.compile(r"^\d{1,3}(\.\d{1,3}){3}$")


def parse_request_line(raw_value: str) -> Tuple[str, str]:
    """Split ``"GET /path HTTP/1.1"`` into method and path (``GET /`` fallback)."""
    match = REQUEST_LINE_PATTERN.match((raw_value or "").strip())
    if not match:
        return "GET", "/"
    return match.group(1).upper(), match.group(2)


def first_string(record: Mapping[str, Any], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = record.get(key)
        if isinstance(value, str):
            return value
    return None


def first_present(record: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def looks_like_host(value: str) -> bool:
    return value == "localhost" or bool(IPV4_PATTERN.match(value)) or "." in value


def extract_host_from_quoted_fields(quoted_fields: Sequence[str]) -> str:
    for field in quoted_fields:
        value = (field or "").strip()
        if not value or value == "-" or " " in value:
            continue
        normalized = normalize_host(value)
        if normalized and looks_like_host(normalized):
            return normalized
    return ""


def parse_json_request_log_line(line: str) -> Optional[ParsedRequestLogLine]:
    if not line.startswith("{") or not line.endswith("}"):
        return None
    try:
        record = json.loads(line)
    except (ValueError, RecursionError):
        return None
    if not isinstance(record, dict):
        return None

    default_method, default_path = parse_request_line(
        first_string(record, REQUEST_LINE_KEYS) or ""
    )
    raw_method = first_string(record, METHOD_KEYS)
    method = (raw_method.strip().upper() if raw_method is not None else "") or default_method
    raw_path = first_string(record, PATH_KEYS)
    path = (raw_path.strip() if raw_path is not None else "") or default_path
    message = first_string(record, MESSAGE_KEYS)
    if message is None:
        message = f"{method} {path}"

    return ParsedRequestLogLine(
        timestamp=to_iso_timestamp(first_present(record, TIMESTAMP_KEYS)),
        method=method or "GET",
        status_code=coerce_status_code(first_present(record, STATUS_KEYS)),
        host=first_string(record, HOST_KEYS) or "",
        path=path or "/",
        message=message.strip() or f"{method} {path or '/'}",
        remote_addr=first_string(record, REMOTE_ADDR_KEYS),
        project_hint=first_string(record, PROJECT_HINT_KEYS),
    )


def parse_nginx_request_log_line(line: str) -> Optional[ParsedRequestLogLine]:
    match = NGINX_LINE_PATTERN.match(line)
    if not match:
        return None

    method, path = parse_request_line(match.group("request"))
    quoted_fields = QUOTED_FIELD_PATTERN.findall(match.group("rest") or "")
    return ParsedRequestLogLine(
        timestamp=parse_nginx_timestamp(match.group("time")),
        method=method,
        status_code=coerce_status_code(match.group("status")),
        host=extract_host_from_quoted_fields(quoted_fields),
        path=path,
        message=f"{method} {path}",
        remote_addr=match.group("remote").strip() or None,
    )


def parse_request_log_line(line: str) -> Optional[ParsedRequestLogLine]:
    line = (line or "").strip()
    if not line:
        return None
    return parse_json_request_log_line(line) or parse_nginx_request_log_line(line)

