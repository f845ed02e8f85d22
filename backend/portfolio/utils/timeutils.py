from datetime import datetime, timezone


def to_db_time(dt: datetime) -> datetime:
    """Normalize an instant for storage: naive UTC, whole seconds."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=0)


def from_db_time(dt: datetime | None) -> datetime | None:
    """Attach UTC to a naive value read back from the store."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt
