from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter

from models import isoformat_utc, utc_now


SERVICE_NAME = "control-plane"


def build_health_router() -> APIRouter:
    router = APIRouter(tags=["health"])

    @router.get("/health")
    async def healthcheck() -> Dict[str, Any]:
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "timestamp": isoformat_utc(utc_now()),
        }

    @router.get("/v1")
    async def api_root() -> Dict[str, Any]:
        return {"status": "ok", "message": "vserver control-plane starter"}

    return router
