from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .base import CamelModel


RequestLogSource = Literal["server-access-log"]


class ParsedRequestLogLine(BaseModel):
    """A raw access log line recognized by one of the supported formats."""

    model_config = ConfigDict(frozen=True)

    timestamp: Optional[str] = None
    method: str = "GET"
    status_code: Optional[int] = None
    host: str = ""
    path: str = "/"
    message: str = ""
    remote_addr: Optional[str] = None
    project_hint: Optional[str] = None


class RequestLogEntry(CamelModel):
    log_id: str = Field(..., description="{projectSlug}-{epochMillis}-{lineIndex}")
    timestamp: str
    method: str
    status_code: Optional[int] = None
    host: str
    path: str
    message: str
    project_slug: str
    project_name: str
    remote_addr: Optional[str] = None
    source: RequestLogSource = "server-access-log"


class RequestLogsMeta(CamelModel):
    project: str
    source: RequestLogSource = "server-access-log"
    mode: Literal["remote", "local"]
    remote_host: Optional[str] = None
    log_path: str
    tailed_lines: int
