import asyncio
import logging
from enum import Enum
from typing import Dict, List, Optional, Tuple

from core.bus import Sender
from core.config import StreamSettings
from metrics.collector import StreamMetrics
from runtime.session import Clock, EventQuery, StreamingSession, utc_now

logger = logging.getLogger(__name__)


class SubscribeStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"


def device_path(device_id: str) -> str:
    return f"stream/device/{device_id}"


def parse_stream_path(path: str) -> Tuple[SubscribeStatus, Optional[str]]:
    parts = path.split("/")
    if len(parts) != 3 or parts[0] != "stream":
        return SubscribeStatus.PERMISSION_DENIED, None
    if parts[1] != "device" or not parts[2]:
        return SubscribeStatus.NOT_FOUND, None
    return SubscribeStatus.OK, parts[2]


class StreamSupervisor:
    """One streaming session task per subscribed path."""

    def __init__(
        self,
        query_events: EventQuery,
        settings: Optional[StreamSettings] = None,
        metrics: Optional[StreamMetrics] = None,
        clock: Clock = utc_now,
        stop_grace_seconds: float = 1.0,
    ):
        self.query_events = query_events
        self.settings = settings or StreamSettings()
        self.metrics = metrics
        self.clock = clock
        self.stop_grace_seconds = stop_grace_seconds

        self._sessions: Dict[str, StreamingSession] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    # -------------------------
    # LIFECYCLE MANAGEMENT
    # -------------------------

    def start(self, path: str, sender: Sender) -> StreamingSession:
        status, device_id = parse_stream_path(path)
        if status is not SubscribeStatus.OK:
            raise ValueError(f"cannot stream '{path}': {status.value}")

        if path in self._tasks and not self._tasks[path].done():
            return self._sessions[path]  # already running

        session = StreamingSession(
            query_events=self.query_events,
            device_id=device_id,
            sender=sender,
            stop_event=asyncio.Event(),
            settings=self.settings,
            clock=self.clock,
            metrics=self.metrics,
        )
        task = asyncio.create_task(session.run(), name=path)
        task.add_done_callback(self._on_task_done)

        self._sessions[path] = session
        self._tasks[path] = task
        logger.info("Started stream %s", path)
        return session

    async def stop(self, path: str) -> None:
        session = self._sessions.pop(path, None)
        task = self._tasks.pop(path, None)
        if session is None or task is None:
            return

        session.stop_event.set()
        try:
            await asyncio.wait_for(task, timeout=self.stop_grace_seconds)
        except asyncio.TimeoutError:
            logger.warning("Stream %s did not stop within %.1fs, cancelled", path, self.stop_grace_seconds)
        except asyncio.CancelledError:
            pass
        except Exception:
            # already logged by _on_task_done
            pass

    async def stop_all(self) -> None:
        await asyncio.gather(*(self.stop(path) for path in list(self._tasks)))

    def running(self) -> List[str]:
        return sorted(path for path, task in self._tasks.items() if not task.done())

    # -------------------------
    # ERROR VISIBILITY
    # -------------------------

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Stream %s crashed: %r", task.get_name(), exc)
