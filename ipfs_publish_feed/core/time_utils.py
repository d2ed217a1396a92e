"""Time helpers for consistent UTC timestamps in logs and feed documents."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC datetime with timezone attached."""

    return datetime.now(timezone.utc)


def rfc3339(value: datetime) -> str:
    """Format a datetime as an Atom date construct, assuming UTC when naive."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")
