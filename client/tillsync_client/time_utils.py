from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Client-side 'now' in UTC (aware)."""
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """
    ISO-8601 with millisecond precision and trailing 'Z'.

    Fixed width, so stored timestamps order correctly as plain strings.
    Naive datetimes are treated as UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def now_iso() -> str:
    return to_iso(utcnow())


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def normalize_iso(value: str) -> str:
    """Re-render any ISO timestamp in the canonical millisecond 'Z' form."""
    return to_iso(parse_iso(value))
