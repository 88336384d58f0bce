import asyncio
import logging
import queue
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from core.bus import FrameBus
from core.config import StreamSettings
from core.models import Frame
from metrics.collector import StreamMetrics
from runtime.supervisor import StreamSupervisor, device_path
from store.connection import StoreConnection
from store.gateway import DocumentStoreGateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DashboardConfig:
    mongodb_url: str = "mongodb://localhost:27017"
    database: str = "disruptiveBackup"
    device_id: str = ""

    interval_seconds: float = 5.0
    lookahead_seconds: float = 60.0
    subscriber_queue_size: int = 50

    def stream_settings(self) -> StreamSettings:
        return StreamSettings(
            interval=timedelta(seconds=self.interval_seconds),
            lookahead=timedelta(seconds=self.lookahead_seconds),
        )


def frame_payload(frame: Frame) -> dict:
    value = frame.get_field("Value")
    return {
        "project": frame.name,
        "device": value.labels.get("device", ""),
        "rows": [
            {"Time": r["Time"].isoformat(), "Value": r["Value"]}
            for r in frame.to_records()
        ],
    }


def _put(out_q, item: dict) -> None:
    try:
        out_q.put_nowait(item)
    except queue.Full:
        logger.warning("Dashboard queue full, dropping %s update", item.get("type"))


async def run_stream_for_ui(stop_thread_event, out_q, config: Optional[DashboardConfig] = None) -> None:
    config = config or DashboardConfig()

    metrics = StreamMetrics()
    bus = FrameBus(subscriber_queue_size=config.subscriber_queue_size, metrics=metrics)
    path = device_path(config.device_id)

    with StoreConnection(config.mongodb_url, config.database) as connection:
        gateway = DocumentStoreGateway(connection)
        supervisor = StreamSupervisor(
            query_events=gateway.query_events,
            settings=config.stream_settings(),
            metrics=metrics,
        )

        frames: asyncio.Queue[Frame] = bus.subscribe(path)
        supervisor.start(path, bus.sender(path))

        async def stop_watcher():
            while not stop_thread_event.is_set():
                await asyncio.sleep(0.1)

        async def metrics_publisher():
            while True:
                await asyncio.sleep(2)
                _put(out_q, {"type": "metrics", "ts": time.time(), "data": metrics.snapshot()})

        async def frame_forwarder():
            while True:
                frame = await frames.get()
                _put(out_q, {"type": "frame", "ts": time.time(), "data": frame_payload(frame)})

        metrics_task = asyncio.create_task(metrics_publisher())
        forward_task = asyncio.create_task(frame_forwarder())

        try:
            await stop_watcher()
        finally:
            await supervisor.stop_all()
            bus.unsubscribe(path, frames)
            for t in (metrics_task, forward_task):
                t.cancel()
                try:
                    await t
                except asyncio.CancelledError:
                    pass
