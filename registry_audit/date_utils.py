"""Shared timestamp normalization helpers."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse ISO strings (with or without ``Z``) and datetimes into aware UTC values."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    token = str(value).strip()
    if not token:
        return None
    try:
        return as_utc(datetime.fromisoformat(token.replace("Z", "+00:00")))
    except ValueError:
        pass
    for fmt in ("%Y-%m-%d %H:%M:%S", "%Y/%m/%d %H:%M:%S", "%Y-%m-%d"):
        try:
            return datetime.strptime(token, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def bucket_timestamp(value: datetime, granularity_seconds: int = 1) -> str:
    """Floor ``value`` to the bucket size and render it as ``YYYY-MM-DDTHH:MM:SS`` (UTC)."""
    step = max(1, int(granularity_seconds))
    epoch = int(as_utc(value).timestamp())
    floored = datetime.fromtimestamp(epoch - (epoch % step), tz=timezone.utc)
    return floored.strftime("%Y-%m-%dT%H:%M:%S")
