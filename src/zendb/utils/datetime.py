from datetime import datetime, timezone
from typing import Any, Optional, overload


@overload
def to_utc(dt: None) -> None: ...


@overload
def to_utc(dt: datetime) -> datetime: ...


def to_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure datetime has UTC tzinfo. Handles None gracefully."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_epoch(dt: Optional[datetime]) -> int:
    """Convert a datetime to integer epoch seconds. None and pre-epoch become 0."""
    if dt is None:
        return 0
    seconds = int(to_utc(dt).timestamp())
    return max(seconds, 0)


def from_epoch(value: Any) -> Optional[datetime]:
    """Convert stored epoch seconds back to an aware UTC datetime.

    Zero and NULL mean "never set" and map to None.
    """
    if value is None:
        return None
    seconds = int(value)
    if seconds <= 0:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
