"""
UTC timestamp helpers.

All timestamps are stored as fixed-width ISO-8601 UTC strings so that SQL
string comparison orders them chronologically.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Render an aware (or naive-UTC) datetime in the storage format."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(ISO_FORMAT)


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp (or any ISO-8601 string) into an aware datetime."""
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def minutes_from(now: datetime, minutes: float) -> str:
    return to_iso(now + timedelta(minutes=minutes))
