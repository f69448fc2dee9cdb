"""UTC helpers. All timestamps in this service are aware and in UTC."""

from datetime import datetime, timezone


def now_utc() -> datetime:
    """Aware current time. The only clock the app reads directly."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    # Naive values come from TIMESTAMP columns this service wrote in UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
