from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from domain import normalize_host, shell_quote
from models import (
    DeploymentRecord,
    DeploymentsMeta,
    RequestLogEntry,
    RequestLogsMeta,
    isoformat_utc,
    utc_now,
)
from parsing import epoch_millis, parse_request_log_line, parse_tracker_entries
from settings import Settings

from .attribution import ProjectAttributor
from .command_runner import build_ssh_command, run_command
from .project_registry import ProjectRegistry


logger = logging.getLogger("control-plane.logs")

MAX_LIMIT = 100
REMOTE_CONNECT_TIMEOUT = 5
REMOTE_READ_TIMEOUT = 60


class RemoteSourceError(RuntimeError):
    """Raised when a remote log cannot be tailed over SSH."""


def clamp_limit(raw_limit: Any, fallback: int) -> int:
    """Parse a client supplied limit and clamp it (and the fallback) to [1, 100]."""
    try:
        parsed = float(raw_limit)
    except (TypeError, ValueError):
        parsed = float(fallback)
    if not math.isfinite(parsed):
        parsed = float(fallback)
    return min(max(math.trunc(parsed), 1), MAX_LIMIT)


def quote_remote_path(path: str) -> str:
    """Shell-quote a remote path while keeping a leading ``~/`` expandable."""
    if path.startswith("~/"):
        return '"$HOME"/' + shell_quote(path[2:])
    return shell_quote(path)


def build_tail_command(path: str, lines: int) -> str:
    return f"tail -n {int(lines)} {quote_remote_path(path)} || true"


def _in_range(epoch: int, start_ms: Optional[int], end_ms: Optional[int]) -> bool:
    if start_ms is not None and epoch < start_ms:
        return False
    if end_ms is not None and epoch > end_ms:
        return False
    return True


async def read_local_text(path: Path) -> str:
    """File content, or ``""`` when the file is missing or unreadable."""
    try:
        return await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.info("Local log unavailable path=%s (%s)", path, exc)
        return ""


class _RemoteTailMixin:
    async def _run_command(
        self, command: Sequence[str], *, timeout: Optional[float] = None, description: str = ""
    ) -> Dict[str, Any]:
        return await run_command(command, timeout=timeout, description=description)

    async def _tail_remote(self, host: str, path: str, lines: int) -> str:
        command = build_ssh_command(
            host, build_tail_command(path, lines), connect_timeout=REMOTE_CONNECT_TIMEOUT
        )
        result = await self._run_command(
            command, timeout=REMOTE_READ_TIMEOUT, description=f"tail {path} on {host}"
        )
        return result.get("stdout", "")


class RequestLogReader(_RemoteTailMixin):
    """Reads, normalizes and attributes access log lines from a local or remote file."""

    def __init__(
        self,
        registry: ProjectRegistry,
        attributor: ProjectAttributor,
        *,
        local_path: Path | str,
        remote_host: Optional[str] = None,
        remote_path: str = "/var/log/nginx/access.log",
        tail_lines: int = 600,
        tail_multiplier: int = 25,
        server_host: str = "localhost",
    ) -> None:
        self.registry = registry
        self.attributor = attributor
        self.local_path = Path(local_path)
        self.remote_host = (remote_host or "").strip() or None
        self.remote_path = remote_path
        self.tail_lines = tail_lines
        self.tail_multiplier = tail_multiplier
        self.server_host = server_host

    @classmethod
    def from_settings(
        cls, settings: Settings, registry: ProjectRegistry, attributor: ProjectAttributor
    ) -> "RequestLogReader":
        return cls(
            registry,
            attributor,
            local_path=settings.request_log_local_path,
            remote_host=settings.resolved_request_log_remote_host,
            remote_path=settings.request_log_remote_path,
            tail_lines=settings.request_log_tail_lines,
            tail_multiplier=settings.request_log_tail_multiplier,
            server_host=settings.control_plane_server_host,
        )

    @property
    def mode(self) -> str:
        return "remote" if self.remote_host else "local"

    def tail_line_count(self, limit: int) -> int:
        return max(self.tail_lines, limit * self.tail_multiplier)

    def parse_entries(
        self,
        raw: str,
        project_slug: Optional[str],
        limit: int,
        start_ms: Optional[int] = None,
        end_ms: Optional[int] = None,
        *,
        now: Optional[datetime] = None,
    ) -> List[RequestLogEntry]:
        read_at = isoformat_utc(now or utc_now())
        lines = [line.strip() for line in (raw or "").split("\n")]
        lines = [line for line in lines if line]
        entries: List[Tuple[int, RequestLogEntry]] = []

        for index, line in enumerate(lines):
            parsed = parse_request_log_line(line)
            if parsed is None:
                continue
            host = normalize_host(parsed.host)
            path = parsed.path.strip() or "/"
            if self.attributor.is_dashboard_request(host, path):
                continue

            slug = self.attributor.resolve(parsed)
            if not slug or (project_slug and slug != project_slug):
                continue

            timestamp = parsed.timestamp or read_at
            epoch = epoch_millis(timestamp)
            if not _in_range(epoch, start_ms, end_ms):
                continue

            method = parsed.method.strip().upper() or "GET"
            entries.append(
                (
                    epoch,
                    RequestLogEntry(
                        log_id=f"{slug}-{epoch}-{index}",
                        timestamp=timestamp,
                        method=method,
                        status_code=parsed.status_code,
                        host=host or self.registry.preview_host(slug) or self.server_host,
                        path=path,
                        message=parsed.message.strip() or f"{method} {path}",
                        project_slug=slug,
                        project_name=self.registry.resolve_project_name(slug),
                        remote_addr=parsed.remote_addr,
                    ),
                )
            )

        entries.sort(key=lambda item: item[0], reverse=True)
        return [entry for _, entry in entries[:limit]]

    async def read(
        self,
        project: Optional[str],
        limit: int,
        start_ms: Optional[int] = None,
        end_ms: Optional[int] = None,
    ) -> Tuple[List[RequestLogEntry], RequestLogsMeta]:
        project_slug = self.registry.resolve_project_slug(project) if project else None
        tailed_lines = self.tail_line_count(limit)

        if self.remote_host:
            try:
                raw = await self._tail_remote(self.remote_host, self.remote_path, tailed_lines)
            except Exception as exc:  # pylint: disable=broad-except
                logger.exception("Remote request log tail failed host=%s", self.remote_host)
                raise RemoteSourceError(
                    f"Remote request log unreachable at {self.remote_host}. "
                    "Verify SSH access and REQUEST_LOG_REMOTE_PATH."
                ) from exc
            log_path = self.remote_path
        else:
            raw = await read_local_text(self.local_path)
            log_path = str(self.local_path)

        entries = self.parse_entries(raw, project_slug, limit, start_ms, end_ms)
        meta = RequestLogsMeta(
            project=project_slug or "all",
            mode=self.mode,
            remote_host=self.remote_host,
            log_path=log_path,
            tailed_lines=tailed_lines,
        )
        return entries, meta


class DeploymentTrackerReader(_RemoteTailMixin):
    """Reads deployment events from the tracker's JSON-lines file."""

    def __init__(
        self,
        registry: ProjectRegistry,
        *,
        local_path: Path | str,
        remote_host: Optional[str] = None,
        remote_path: str = "~/.runcloud-clone/deployments.jsonl",
        server_host: str = "localhost",
    ) -> None:
        self.registry = registry
        self.local_path = Path(local_path)
        self.remote_host = (remote_host or "").strip() or None
        self.remote_path = remote_path
        self.server_host = server_host

    @classmethod
    def from_settings(
        cls, settings: Settings, registry: ProjectRegistry
    ) -> "DeploymentTrackerReader":
        return cls(
            registry,
            local_path=settings.deploy_tracker_log_path,
            remote_host=settings.resolved_tracker_remote_host,
            remote_path=settings.deploy_tracker_remote_log_path,
            server_host=settings.control_plane_server_host,
        )

    @staticmethod
    def tail_line_count(limit: int) -> int:
        return max(limit * 5, 100)

    def parse_records(
        self,
        raw: str,
        project_slug: str,
        limit: int,
        start_ms: Optional[int] = None,
        end_ms: Optional[int] = None,
    ) -> List[DeploymentRecord]:
        records = parse_tracker_entries(
            raw,
            project_slug,
            self.registry.resolve_project_name(project_slug),
            server_host=self.server_host,
        )
        if start_ms is not None or end_ms is not None:
            records = [
                record
                for record in records
                if _in_range(epoch_millis(record.tracked_at), start_ms, end_ms)
            ]
        return records[:limit]

    async def read(
        self,
        project: Optional[str],
        limit: int,
        start_ms: Optional[int] = None,
        end_ms: Optional[int] = None,
    ) -> Tuple[List[DeploymentRecord], DeploymentsMeta]:
        project_slug = self.registry.resolve_project_slug(project)

        if self.remote_host:
            try:
                raw = await self._tail_remote(
                    self.remote_host, self.remote_path, self.tail_line_count(limit)
                )
            except Exception as exc:  # pylint: disable=broad-except
                logger.exception("Remote tracker tail failed host=%s", self.remote_host)
                raise RemoteSourceError(
                    f"Remote tracker unreachable at {self.remote_host}. "
                    "Verify SSH access and DEPLOY_TRACKER_REMOTE_LOG_PATH."
                ) from exc
            meta = DeploymentsMeta(
                project=project_slug,
                mode="remote",
                remote_host=self.remote_host,
                log_path=self.remote_path,
            )
        else:
            raw = await read_local_text(self.local_path)
            meta = DeploymentsMeta(project=project_slug, mode="local", log_path=str(self.local_path))

        return self.parse_records(raw, project_slug, limit, start_ms, end_ms), meta

    async def latest(self, project: Optional[str]) -> Tuple[Optional[DeploymentRecord], DeploymentsMeta]:
        records, meta = await self.read(project, 1)
        return (records[0] if records else None), meta
