from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]

# Smallest step used to keep per-match timestamps strictly increasing
TICK = timedelta(microseconds=1)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def next_after(now: datetime, previous: Optional[datetime]) -> datetime:
    """Return `now`, bumped past `previous` if the clock has not advanced."""
    if previous is not None and now <= previous:
        return previous + TICK
    return now
