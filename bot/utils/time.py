from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def format_local(dt: datetime | None) -> str:
    if dt is None:
        return "Unknown"
    return dt.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")
