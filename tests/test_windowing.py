from datetime import datetime, timedelta, timezone

from core.models import Filter, FilterEntity, TimeWindow, split_ids
from pipeline.windowing import normalize_window, store_bounds, stream_window


def test_store_bounds_are_half_open():
    start = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    end = start + timedelta(minutes=5)

    assert store_bounds(TimeWindow(start, end)) == {"$gte": start, "$lt": end}


def test_naive_bounds_are_treated_as_utc():
    w = normalize_window(TimeWindow(datetime(2026, 1, 1), datetime(2026, 1, 2)))
    assert w.start.tzinfo == timezone.utc
    assert w.end.tzinfo == timezone.utc


def test_stream_window_extends_past_tick():
    cursor = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    tick = cursor + timedelta(seconds=5)

    w = stream_window(cursor, tick, timedelta(minutes=1))
    assert w.start == cursor
    assert w.end == tick + timedelta(minutes=1)


def test_window_contains_lower_bound_not_upper():
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    w = TimeWindow(start, start + timedelta(seconds=1))

    assert w.contains(start)
    assert not w.contains(start + timedelta(seconds=1))
    assert TimeWindow(w.end, w.start).is_empty()


def test_split_ids_absent_vs_empty():
    assert split_ids(None) is None
    assert split_ids("") == []
    assert split_ids("a, b,,c") == ["a", "b", "c"]
    assert Filter(FilterEntity.DEVICES, "").ids() == []
