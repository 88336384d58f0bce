from datetime import datetime, timedelta, timezone
from typing import Dict

from core.models import TimeWindow


def as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def normalize_window(window: TimeWindow) -> TimeWindow:
    return TimeWindow(start=as_utc(window.start), end=as_utc(window.end))


def store_bounds(window: TimeWindow) -> Dict[str, datetime]:
    """Range clause for a stored timestamp: inclusive lower, exclusive upper."""
    window = normalize_window(window)
    return {"$gte": window.start, "$lt": window.end}


def stream_window(cursor: datetime, tick_start: datetime, lookahead: timedelta) -> TimeWindow:
    """
    Window queried by a streaming tick.

    The lower bound is the end of what was already delivered; the upper bound
    reaches ``lookahead`` past the tick to absorb clock skew with the store.
    """
    return TimeWindow(start=as_utc(cursor), end=as_utc(tick_start) + lookahead)
