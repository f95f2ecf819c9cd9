from __future__ import annotations

from typing import List

from models import CamelModel, RequestLogEntry, RequestLogsMeta


class RequestLogsResponse(CamelModel):
    data: List[RequestLogEntry]
    meta: RequestLogsMeta
