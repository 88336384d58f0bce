import asyncio
import logging
from datetime import timedelta

import pytest

from core.bus import FrameBus
from core.config import StreamSettings
from runtime.session import SessionState
from runtime.supervisor import StreamSupervisor, SubscribeStatus, device_path, parse_stream_path

FAST = StreamSettings(interval=timedelta(milliseconds=10), lookahead=timedelta(0))


@pytest.mark.parametrize("path,expected", [
    ("stream/device/A", (SubscribeStatus.OK, "A")),
    ("stream/project/A", (SubscribeStatus.NOT_FOUND, None)),
    ("stream/device/", (SubscribeStatus.NOT_FOUND, None)),
    ("stream/device", (SubscribeStatus.PERMISSION_DENIED, None)),
    ("other/device/A", (SubscribeStatus.PERMISSION_DENIED, None)),
    ("stream/device/A/extra", (SubscribeStatus.PERMISSION_DENIED, None)),
])
def test_parse_stream_path(path, expected):
    assert parse_stream_path(path) == expected


def test_device_path_round_trip():
    assert parse_stream_path(device_path("abc")) == (SubscribeStatus.OK, "abc")


@pytest.mark.asyncio
async def test_one_session_per_path_and_stop():
    calls = []

    def query(flt, window):
        calls.append(flt.value)
        return []

    bus = FrameBus()
    sup = StreamSupervisor(query, settings=FAST)

    s1 = sup.start("stream/device/A", bus.sender("stream/device/A"))
    again = sup.start("stream/device/A", bus.sender("stream/device/A"))
    s2 = sup.start("stream/device/B", bus.sender("stream/device/B"))

    assert s1 is again
    assert sup.running() == ["stream/device/A", "stream/device/B"]

    await asyncio.sleep(0.05)
    await sup.stop("stream/device/A")

    assert s1.state is SessionState.CANCELLED
    assert sup.running() == ["stream/device/B"]
    assert s2.device_id == "B"

    await sup.stop_all()
    assert sup.running() == []
    assert {"A", "B"} <= set(calls)


@pytest.mark.asyncio
async def test_start_rejects_unknown_paths():
    sup = StreamSupervisor(lambda flt, window: [], settings=FAST)
    with pytest.raises(ValueError):
        sup.start("stream/project/A", FrameBus().sender("x"))


@pytest.mark.asyncio
async def test_stop_unknown_path_is_noop():
    sup = StreamSupervisor(lambda flt, window: [], settings=FAST)
    await sup.stop("stream/device/missing")


def mk_crashing_query(message: str = "driver bug"):
    def query(flt, window):
        raise RuntimeError(message)

    return query


@pytest.mark.asyncio
async def test_crashed_session_is_logged_and_stop_all_stays_quiet(caplog):
    caplog.set_level(logging.ERROR, logger="runtime.supervisor")
    bus = FrameBus()
    sup = StreamSupervisor(mk_crashing_query(), settings=FAST)

    sup.start("stream/device/A", bus.sender("stream/device/A"))
    sup.start("stream/device/B", bus.sender("stream/device/B"))
    await asyncio.sleep(0.05)

    assert sup.running() == []
    assert "Stream stream/device/A crashed" in caplog.text

    await sup.stop_all()
    assert sup.running() == []


@pytest.mark.asyncio
async def test_stop_after_crash_does_not_raise():
    sup = StreamSupervisor(mk_crashing_query(), settings=FAST)
    session = sup.start("stream/device/A", FrameBus().sender("stream/device/A"))
    await asyncio.sleep(0.05)

    await sup.stop("stream/device/A")
    assert session.state is SessionState.CANCELLED


@pytest.mark.asyncio
async def test_path_can_restart_after_crash():
    sup = StreamSupervisor(mk_crashing_query(), settings=FAST)
    first = sup.start("stream/device/A", FrameBus().sender("stream/device/A"))
    await asyncio.sleep(0.05)

    sup.query_events = lambda flt, window: []
    second = sup.start("stream/device/A", FrameBus().sender("stream/device/A"))
    assert second is not first
    assert sup.running() == ["stream/device/A"]
    await sup.stop_all()
