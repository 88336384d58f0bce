import asyncio
import logging
from typing import Dict, List, Optional, Protocol

from core.models import Frame
from metrics.collector import StreamMetrics

logger = logging.getLogger(__name__)


class Sender(Protocol):
    async def send_frame(self, frame: Frame, include_all: bool = True) -> bool:
        ...


class FrameBus:
    """
    Fan-out of streamed frames to every subscriber of a channel.

    Each subscriber owns a bounded queue. A full queue either drops the
    frame (``drop_on_full``) or waits for room.
    """

    def __init__(
        self,
        subscriber_queue_size: int = 100,
        drop_on_full: bool = True,
        metrics: Optional[StreamMetrics] = None,
    ):
        self.subscriber_queue_size = subscriber_queue_size
        self.drop_on_full = drop_on_full
        self.metrics = metrics

        self._subscribers: Dict[str, List[asyncio.Queue[Frame]]] = {}

    # -------------------------
    # SUBSCRIPTION
    # -------------------------

    def subscribe(self, channel: str) -> asyncio.Queue[Frame]:
        queue: asyncio.Queue[Frame] = asyncio.Queue(maxsize=self.subscriber_queue_size)
        self._subscribers.setdefault(channel, []).append(queue)
        return queue

    def unsubscribe(self, channel: str, queue: asyncio.Queue[Frame]) -> None:
        queues = self._subscribers.get(channel, [])
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._subscribers.pop(channel, None)

    # -------------------------
    # PUBLISHING
    # -------------------------

    async def publish(self, channel: str, frame: Frame) -> bool:
        queues = self._subscribers.get(channel, [])
        dropped = 0

        for queue in queues:
            try:
                queue.put_nowait(frame)
            except asyncio.QueueFull:
                if self.drop_on_full:
                    dropped += 1
                else:
                    await queue.put(frame)

        if dropped:
            logger.warning("Dropped frame for %d/%d subscribers on %s", dropped, len(queues), channel)
        if self.metrics is not None:
            self.metrics.record_publish(channel=channel, dropped=dropped)

        return dropped == 0

    def sender(self, channel: str) -> "ChannelSender":
        return ChannelSender(self, channel)

    # -------------------------
    # INTROSPECTION
    # -------------------------

    def channels(self) -> List[str]:
        return sorted(self._subscribers)

    def queue_sizes(self) -> Dict[str, int]:
        return {
            channel: sum(q.qsize() for q in queues)
            for channel, queues in self._subscribers.items()
        }


class ChannelSender:
    """Sender bound to one bus channel."""

    def __init__(self, bus: FrameBus, channel: str):
        self.bus = bus
        self.channel = channel

    async def send_frame(self, frame: Frame, include_all: bool = True) -> bool:
        return await self.bus.publish(self.channel, frame)
