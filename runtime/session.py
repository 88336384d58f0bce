import asyncio
import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from core.bus import Sender
from core.config import StreamSettings
from core.errors import StoreError
from core.models import Filter, FilterEntity, Frame, ProjectWithDevices, TimeWindow
from metrics.collector import StreamMetrics
from pipeline.projection import hierarchy_frames
from pipeline.windowing import stream_window

logger = logging.getLogger(__name__)

EventQuery = Callable[[Filter, TimeWindow], List[ProjectWithDevices]]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    INITIALIZED = "initialized"
    RUNNING = "running"
    CANCELLED = "cancelled"


class StreamingSession:
    """
    Periodic refresh of one device's series.

    Every ``settings.interval`` the session queries
    ``[cursor, tick_start + settings.lookahead)`` and sends one frame per
    device found. The cursor only moves to ``tick_start`` once the whole tick
    succeeded, so a failed tick widens the next window instead of losing it.
    """

    def __init__(
        self,
        query_events: EventQuery,
        device_id: str,
        sender: Sender,
        stop_event: asyncio.Event,
        settings: Optional[StreamSettings] = None,
        clock: Clock = utc_now,
        metrics: Optional[StreamMetrics] = None,
    ):
        self.query_events = query_events
        self.device_id = device_id
        self.sender = sender
        self.stop_event = stop_event
        self.settings = settings or StreamSettings()
        self.clock = clock
        self.metrics = metrics

        self.filter = Filter(entity=FilterEntity.DEVICES, value=device_id)
        self.state = SessionState.INITIALIZED
        self.cursor: Optional[datetime] = None
        self.last_window: Optional[TimeWindow] = None

    # -------------------------
    # MAIN LOOP
    # -------------------------

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        interval_s = self.settings.interval.total_seconds()

        self.cursor = self.clock()
        self.state = SessionState.RUNNING
        next_tick = loop.time() + interval_s

        try:
            while not await self._wait_stopped(next_tick - loop.time()):
                next_tick = loop.time() + interval_s
                await self.tick()
        finally:
            self.state = SessionState.CANCELLED
            logger.info("Stream for device %s finished", self.device_id)

    async def _wait_stopped(self, delay: float) -> bool:
        if self.stop_event.is_set():
            return True
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=max(0.0, delay))
        except asyncio.TimeoutError:
            return False
        return True

    # -------------------------
    # ONE TICK
    # -------------------------

    async def tick(self) -> bool:
        tick_start = self.clock()
        window = stream_window(self.cursor, tick_start, self.settings.lookahead)
        self.last_window = window

        t0 = time.perf_counter()
        try:
            projects = await asyncio.to_thread(self.query_events, self.filter, window)
        except StoreError as exc:
            logger.error("Error querying events for device %s: %s", self.device_id, exc)
            self._record(window, ok=False, query_time_ms=(time.perf_counter() - t0) * 1000.0)
            return False
        query_time_ms = (time.perf_counter() - t0) * 1000.0

        frames = hierarchy_frames(projects)
        for frame in frames:
            if not await self.sender.send_frame(frame, include_all=True):
                logger.error("Error sending frame for device %s", self.device_id)
                self._record(window, ok=False, query_time_ms=query_time_ms)
                return False

        self.cursor = tick_start
        self._record(window, ok=True, frames=frames, query_time_ms=query_time_ms)
        return True

    def _record(
        self,
        window: TimeWindow,
        ok: bool,
        frames: Optional[List[Frame]] = None,
        query_time_ms: float = 0.0,
    ) -> None:
        if self.metrics is None:
            return
        frames = frames or []
        self.metrics.record_tick(
            window_start=window.start.isoformat(),
            window_end=window.end.isoformat(),
            ok=ok,
            frames=len(frames),
            rows=sum(f.rows() for f in frames),
            query_time_ms=query_time_ms,
            device_id=self.device_id,
        )
