"""
UTC helpers. Datetimes are stored naive and always mean UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 to the second with a trailing 'Z'; naive input is read as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"


def compact_timestamp(dt: datetime) -> str:
    """YYYYMMDDHHMMSS, as stamped into transaction metadata."""
    return dt.strftime("%Y%m%d%H%M%S")
