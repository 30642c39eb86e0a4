# gamify/utils/datetime_utils.py
from datetime import datetime, timezone


def utcnow() -> datetime:
    # Naive UTC, the same shape Mongo hands back on reads.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt):
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)
