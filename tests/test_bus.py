import pytest

from core.bus import FrameBus
from core.models import Field, Frame
from metrics.collector import StreamMetrics


def mk_frame(name: str = "P1") -> Frame:
    return Frame(name=name, fields=[Field("Value", [1.0]), Field("Time", [0])])


@pytest.mark.asyncio
async def test_publish_reaches_every_subscriber():
    bus = FrameBus()
    q1 = bus.subscribe("stream/device/A")
    q2 = bus.subscribe("stream/device/A")
    other = bus.subscribe("stream/device/B")

    ok = await bus.publish("stream/device/A", mk_frame())

    assert ok is True
    assert q1.qsize() == 1 and q2.qsize() == 1
    assert other.qsize() == 0


@pytest.mark.asyncio
async def test_framebus_drops_when_subscriber_queue_full():
    metrics = StreamMetrics()
    bus = FrameBus(subscriber_queue_size=1, drop_on_full=True, metrics=metrics)
    bus.subscribe("c")

    ok1 = await bus.publish("c", mk_frame())
    ok2 = await bus.publish("c", mk_frame())

    assert ok1 is True
    assert ok2 is False
    assert metrics.frames_dropped == 1


@pytest.mark.asyncio
async def test_channel_sender_and_unsubscribe():
    bus = FrameBus()
    q = bus.subscribe("c")
    sender = bus.sender("c")

    assert await sender.send_frame(mk_frame()) is True
    assert (await q.get()).name == "P1"

    bus.unsubscribe("c", q)
    assert bus.channels() == []
    assert bus.queue_sizes() == {}
