from .request_logs import (
    extract_host_from_quoted_fields,
    parse_json_request_log_line,
    parse_nginx_request_log_line,
    parse_request_line,
    parse_request_log_line,
)
from .timestamps import (
    coerce_status_code,
    epoch_millis,
    parse_datetime,
    parse_nginx_timestamp,
    to_iso_timestamp,
    to_relative_time,
)
from .tracker import map_author, parse_tracker_entries, parse_tracker_line

__all__ = [
    "coerce_status_code",
    "epoch_millis",
    "extract_host_from_quoted_fields",
    "map_author",
    "parse_datetime",
    "parse_json_request_log_line",
    "parse_nginx_request_log_line",
    "parse_nginx_timestamp",
    "parse_request_line",
    "parse_request_log_line",
    "parse_tracker_entries",
    "parse_tracker_line",
    "to_iso_timestamp",
    "to_relative_time",
]
