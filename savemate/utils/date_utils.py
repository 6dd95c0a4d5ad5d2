"""Date manipulation utilities"""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Timezone-aware current time in UTC"""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def days_from_now(days: int, now: datetime | None = None) -> datetime:
    """Point in time `days` days after now"""
    return (now or utc_now()) + timedelta(days=days)
