from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException

from parsing import parse_datetime
from schemas import RequestLogsResponse
from services import ProjectRegistry, RequestLogReader, clamp_limit

from .projects import ensure_known_project


logger = logging.getLogger("control-plane.logs")

DEFAULT_LOGS_LIMIT = 120


def _parse_bound(raw: Optional[str], label: str) -> Optional[int]:
    if not raw:
        return None
    parsed = parse_datetime(raw)
    if parsed is None:
        raise HTTPException(status_code=400, detail=f"Invalid {label} timestamp. Use ISO date-time.")
    return int(parsed.timestamp() * 1000)


def build_logs_router(registry: ProjectRegistry, reader: RequestLogReader) -> APIRouter:
    router = APIRouter(prefix="/v1", tags=["logs"])

    @router.get(
        "/logs",
        response_model=RequestLogsResponse,
        summary="Access log entries attributed to configured projects",
    )
    async def list_request_logs(
        project: Optional[str] = None,
        limit: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> RequestLogsResponse:
        safe_limit = clamp_limit(limit, DEFAULT_LOGS_LIMIT)
        ensure_known_project(registry, project)
        start_ms = _parse_bound(start, "start")
        end_ms = _parse_bound(end, "end")
        if start_ms is not None and end_ms is not None and end_ms < start_ms:
            raise HTTPException(
                status_code=400, detail="Invalid time range. End must be after start."
            )

        try:
            entries, meta = await reader.read(project, safe_limit, start_ms, end_ms)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("failed to load request logs")
            raise HTTPException(
                status_code=500,
                detail=str(exc) or "Unable to load request logs from server",
            ) from exc
        return RequestLogsResponse(data=entries, meta=meta)

    return router
