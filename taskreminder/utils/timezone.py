from datetime import datetime, timezone as dt_timezone
from typing import Optional

try:
    from zoneinfo import ZoneInfo  # Python 3.9+
except Exception:  # pragma: no cover
    ZoneInfo = None  # type: ignore

from taskreminder.core.config import settings


def get_zoneinfo(tz_name: Optional[str] = None) -> Optional["ZoneInfo"]:
    tz_name = tz_name or getattr(settings, "DEFAULT_TIMEZONE", None)
    if not tz_name or not ZoneInfo:
        return None
    try:
        return ZoneInfo(tz_name)
    except Exception:
        return None


def utcnow() -> datetime:
    """Current instant as a UTC-aware datetime."""
    return datetime.now(dt_timezone.utc)


def to_utc_aware(dt: datetime | None) -> datetime | None:
    """
    Normalize any datetime to UTC-aware (tzinfo=UTC).
    - Aware datetimes are converted to UTC
    - Naive datetimes are assumed UTC and tz attached
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_timezone.utc)
    return dt.astimezone(dt_timezone.utc)


def format_local(dt: datetime | None, tz_name: Optional[str] = None) -> str:
    """Render a stored UTC instant in the configured local timezone for messages."""
    if dt is None:
        return ""
    aware = to_utc_aware(dt)
    tz = get_zoneinfo(tz_name)
    if tz is not None:
        aware = aware.astimezone(tz)
    return aware.strftime("%Y-%m-%d %H:%M %Z").strip()
