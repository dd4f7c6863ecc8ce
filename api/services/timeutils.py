from datetime import datetime, timezone
from typing import Optional, Union

from dateutil import parser as dateutil_parser


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and normalize aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse a string into a timezone-aware datetime (UTC), or return the datetime as-is.
    Accepts ISO 8601, common formats and the free-text dates found in WHOIS output.
    Returns None for empty/invalid input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        return None

    v = value.strip()
    if not v:
        return None

    dt = None
    # Try ISO first
    try:
        dt = datetime.fromisoformat(v.replace("Z", "+00:00"))
    except ValueError:
        dt = None
    # Try common formats
    if dt is None:
        for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d", "%Y.%m.%d", "%d-%b-%Y"):
            try:
                dt = datetime.strptime(v, fmt)
                break
            except ValueError:
                dt = None
    if dt is None:
        try:
            dt = dateutil_parser.parse(v)
        except (ValueError, OverflowError):
            dt = None

    return ensure_utc(dt)
