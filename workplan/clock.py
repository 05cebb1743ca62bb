"""Timestamp helpers.

All timestamps are timezone-aware UTC datetimes truncated to milliseconds,
so they survive the ``YYYY-MM-DDTHH:mm:ss.sssZ`` persisted form unchanged.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

ISO_TIMESTAMP_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def utcnow() -> datetime:
    """Current UTC time at millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def format_timestamp(value: datetime) -> str:
    """Render a datetime as ``YYYY-MM-DDTHH:mm:ss.sssZ``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def is_timestamp(value: str) -> bool:
    return bool(ISO_TIMESTAMP_PATTERN.match(value))


def parse_timestamp(value: str) -> datetime:
    """Inverse of ``format_timestamp``."""
    return datetime.strptime(value, "%Y-%m-%dT%H:%M:%S.%fZ").replace(tzinfo=timezone.utc)
