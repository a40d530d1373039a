from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional

# All datetimes are stored naive and mean UTC. Conversion happens only here,
# on the way in (parse_*) and on the way out (to_utc_z).


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    "2024-03-01", "2024-03-01T10:30", "2024-03-01T10:30:00Z" or with an
    offset. Offsets are folded into UTC; naive input is taken as UTC.
    Blank -> None. Malformed -> ValueError.
    """
    if value is None or not value.strip():
        return None

    text = value.strip()
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    parsed = parse_iso_datetime(value)
    return parsed.date() if parsed else None


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Inclusive [00:00:00, 23:59:59.999999] of a calendar day."""
    return datetime.combine(day, time.min), datetime.combine(day, time.max)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """2024-03-01T10:30:00Z (seconds precision)."""
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0).isoformat() + "Z"


def to_iso_date(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d else None
