import os
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def _timezone() -> ZoneInfo:
    name = os.environ.get("APP_TIMEZONE", "UTC")
    return ZoneInfo(name)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def now_tz() -> datetime:
    return datetime.now(_timezone())


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive values for timezone-aware columns; they were stored as UTC.
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def ensure_timezone(dt: datetime) -> datetime:
    tz = _timezone()
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc).astimezone(tz)
    return dt.astimezone(tz)


def format_local(dt: Optional[datetime], fmt: str = "%d %b %Y, %I:%M %p") -> str:
    if dt is None:
        return ""
    return ensure_timezone(dt).strftime(fmt)


def is_past(dt: Optional[datetime]) -> bool:
    if dt is None:
        return False
    return as_utc(dt) < now_utc()
