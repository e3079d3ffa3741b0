from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC wall clock. Every service reads time through here."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Bring caller-supplied timestamps onto the naive UTC scale the models store."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
