import asyncio
import threading
import queue
from dataclasses import dataclass
from typing import Any, Callable, List, Optional


@dataclass
class RunnerState:
    thread: Optional[threading.Thread] = None
    stop_event: Optional[threading.Event] = None
    out_queue: Optional["queue.Queue[Any]"] = None

    def is_running(self) -> bool:
        return self.thread is not None and self.thread.is_alive()


def start_background_loop(
    target_coro_factory: Callable[..., "asyncio.Future[Any]"],
    *factory_args,
    queue_size: int = 5000,
    **factory_kwargs,
) -> RunnerState:
    """Run ``target_coro_factory(stop_event, out_q, ...)`` on its own event loop thread."""
    stop_event = threading.Event()
    out_q: "queue.Queue[Any]" = queue.Queue(maxsize=queue_size)

    def _runner():
        asyncio.run(target_coro_factory(stop_event, out_q, *factory_args, **factory_kwargs))

    t = threading.Thread(target=_runner, name="stream-loop", daemon=True)
    t.start()

    return RunnerState(thread=t, stop_event=stop_event, out_queue=out_q)


def stop_background_loop(state: RunnerState, join_timeout: Optional[float] = None) -> None:
    if state.stop_event is not None:
        state.stop_event.set()
    if join_timeout is not None and state.thread is not None:
        state.thread.join(timeout=join_timeout)


def drain(state: RunnerState, limit: int = 300) -> List[Any]:
    if state.out_queue is None:
        return []

    items: List[Any] = []
    while len(items) < limit:
        try:
            items.append(state.out_queue.get_nowait())
        except queue.Empty:
            break
    return items
