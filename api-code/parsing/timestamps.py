from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

from models import isoformat_utc, utc_now


EPOCH_MILLIS_THRESHOLD = 1_000_000_000_000
NGINX_DATE_PREFIX = re.compile(r"^(\d{1,2}/[A-Za-z]{3}/\d{4}):")
NGINX_FORMATS = ("%d/%b/%Y %H:%M:%S %z", "%d/%b/%Y %H:%M:%S")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(raw_value: str) -> Optional[datetime]:
    """Parse ISO-8601 or RFC 2822 text; naive values are taken as UTC."""
    value = (raw_value or "").strip()
    if not value:
        return None
    try:
        return _as_utc(datetime.fromisoformat(value))
    except ValueError:
        pass
    try:
        return _as_utc(parsedate_to_datetime(value))
    except (TypeError, ValueError, IndexError):
        return None


def parse_nginx_timestamp(raw_value: str) -> Optional[str]:
    """``10/Oct/2023:13:55:36 +0000`` -> ISO string, falling back to generic parsing."""
    normalized = NGINX_DATE_PREFIX.sub(r"\1 ", (raw_value or "").strip())
    for fmt in NGINX_FORMATS:
        try:
            return isoformat_utc(_as_utc(datetime.strptime(normalized, fmt)))
        except ValueError:
            continue
    parsed = parse_datetime(normalized)
    return isoformat_utc(parsed) if parsed else None


def to_iso_timestamp(raw_value: Any) -> Optional[str]:
    if isinstance(raw_value, bool):
        return None
    if isinstance(raw_value, (int, float)):
        # JSON integers can exceed the float range.
        try:
            if not math.isfinite(raw_value):
                return None
            as_ms = raw_value if raw_value > EPOCH_MILLIS_THRESHOLD else raw_value * 1000
            moment = datetime.fromtimestamp(as_ms / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
        return isoformat_utc(moment)

    if not isinstance(raw_value, str) or not raw_value.strip():
        return None
    return parse_nginx_timestamp(raw_value)


def epoch_millis(iso_value: Optional[str]) -> int:
    """Epoch milliseconds of an ISO timestamp, 0 when it does not parse."""
    parsed = parse_datetime(iso_value or "")
    if parsed is None:
        return 0
    return int(parsed.timestamp() * 1000)


def coerce_status_code(raw_value: Any) -> Optional[int]:
    if isinstance(raw_value, bool):
        return None
    if isinstance(raw_value, str):
        try:
            raw_value = float(raw_value.strip())
        except ValueError:
            return None
    if isinstance(raw_value, int):
        code = raw_value
    elif isinstance(raw_value, float) and math.isfinite(raw_value):
        code = math.trunc(raw_value)
    else:
        return None
    return code if 100 <= code <= 599 else None


def to_relative_time(iso_value: str, now: Optional[datetime] = None) -> str:
    parsed = parse_datetime(iso_value)
    if parsed is None:
        return "just now"
    diff_sec = math.floor(((now or utc_now()) - parsed).total_seconds())
    if diff_sec < 60:
        return "just now"
    diff_min = diff_sec // 60
    if diff_min < 60:
        return f"{diff_min} min ago"
    diff_hr = diff_min // 60
    if diff_hr < 24:
        return f"{diff_hr}h ago"
    return f"{diff_hr // 24}d ago"
