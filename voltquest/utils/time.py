"""Time-related helpers shared by the services."""
from __future__ import annotations

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Return ``dt`` as an aware UTC datetime; naive values are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_naive(dt: datetime) -> datetime:
    """Naive UTC datetime, the form stored in ``DateTime`` columns without tz."""
    return ensure_utc(dt).replace(tzinfo=None)


def utcnow_naive() -> datetime:
    """Column default for naive ``DateTime`` columns."""
    return utc_naive(utcnow())


def utc_day(value: datetime | date) -> date:
    """Calendar day of ``value`` in UTC."""
    if isinstance(value, datetime):
        return ensure_utc(value).date()
    return value


def parse_iso_datetime(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        return ensure_utc(datetime.fromisoformat(raw))
    raise ValueError(f"unsupported datetime value: {value!r}")
