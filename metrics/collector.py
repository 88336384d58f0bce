from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple


def _now_s() -> float:
    return time.time()


def _percentiles(xs: List[float]) -> Dict[str, Optional[float]]:
    if not xs:
        return {"avg_ms": None, "p50_ms": None, "p95_ms": None}
    xs = sorted(xs)
    n = len(xs)
    return {
        "avg_ms": sum(xs) / n,
        "p50_ms": xs[int(0.50 * (n - 1))],
        "p95_ms": xs[int(0.95 * (n - 1))],
    }


@dataclass
class TickRateMeter:
    """Ticks per second over a sliding window, split by outcome."""

    window_seconds: float = 60.0
    clock: Callable[[], float] = _now_s
    _marks: Deque[Tuple[float, bool]] = field(default_factory=deque)

    def mark(self, ok: bool = True) -> None:
        t = self.clock()
        self._marks.append((t, ok))
        self._trim(t)

    def _trim(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._marks and self._marks[0][0] < cutoff:
            self._marks.popleft()

    def rate_per_sec(self) -> float:
        self._trim(self.clock())
        return len(self._marks) / self.window_seconds

    def failed_per_sec(self) -> float:
        self._trim(self.clock())
        return sum(1 for _, ok in self._marks if not ok) / self.window_seconds


@dataclass
class QueryLatencyMeter:
    """Rolling query latencies, overall and per device."""

    max_samples: int = 500
    _samples_ms: Deque[float] = field(default_factory=deque)
    _by_device: Dict[str, Deque[float]] = field(default_factory=dict)

    def add(self, latency_ms: float, device_id: Optional[str] = None) -> None:
        self._samples_ms.append(latency_ms)
        while len(self._samples_ms) > self.max_samples:
            self._samples_ms.popleft()

        if device_id is not None:
            samples = self._by_device.setdefault(device_id, deque(maxlen=self.max_samples))
            samples.append(latency_ms)

    def snapshot(self) -> Dict[str, Optional[float]]:
        return _percentiles(list(self._samples_ms))

    def by_device(self) -> Dict[str, Dict[str, Optional[float]]]:
        return {device_id: _percentiles(list(xs)) for device_id, xs in sorted(self._by_device.items())}


@dataclass
class TickMetric:
    device_id: Optional[str]
    window_start: str
    window_end: str
    ok: bool
    frames: int
    rows: int
    query_time_ms: float


@dataclass
class StreamMetrics:
    # ticks
    ticks_total: int = 0
    ticks_ok: int = 0
    ticks_failed: int = 0

    # output
    frames_emitted: int = 0
    rows_emitted: int = 0
    frames_dropped: int = 0
    emitted_by_channel: Dict[str, int] = field(default_factory=dict)

    # rates / latency
    tick_rate: TickRateMeter = field(default_factory=TickRateMeter)
    query_latency: QueryLatencyMeter = field(default_factory=QueryLatencyMeter)

    # tick history (rolling)
    tick_max_samples: int = 200
    ticks: Deque[TickMetric] = field(default_factory=deque)

    # -------- hooks --------

    def record_tick(
        self,
        window_start: str,
        window_end: str,
        ok: bool,
        frames: int = 0,
        rows: int = 0,
        query_time_ms: float = 0.0,
        device_id: Optional[str] = None,
    ) -> None:
        self.ticks_total += 1
        self.tick_rate.mark(ok=ok)
        if ok:
            self.ticks_ok += 1
            self.frames_emitted += frames
            self.rows_emitted += rows
        else:
            self.ticks_failed += 1
        self.query_latency.add(query_time_ms, device_id=device_id)

        self.ticks.append(
            TickMetric(
                device_id=device_id,
                window_start=window_start,
                window_end=window_end,
                ok=ok,
                frames=frames,
                rows=rows,
                query_time_ms=query_time_ms,
            )
        )
        while len(self.ticks) > self.tick_max_samples:
            self.ticks.popleft()

    def record_publish(self, channel: str, dropped: int) -> None:
        self.emitted_by_channel[channel] = self.emitted_by_channel.get(channel, 0) + 1
        self.frames_dropped += dropped

    # -------- reporting --------

    def _last_tick(self) -> Optional[Dict[str, Any]]:
        if not self.ticks:
            return None
        last = self.ticks[-1]
        return {
            "device_id": last.device_id,
            "window_start": last.window_start,
            "window_end": last.window_end,
            "ok": last.ok,
            "frames": last.frames,
            "rows": last.rows,
            "query_time_ms": last.query_time_ms,
        }

    def snapshot(self) -> Dict:
        return {
            "ticks_total": self.ticks_total,
            "ticks_ok": self.ticks_ok,
            "ticks_failed": self.ticks_failed,
            "frames_emitted": self.frames_emitted,
            "rows_emitted": self.rows_emitted,
            "frames_dropped": self.frames_dropped,
            "emitted_by_channel": dict(self.emitted_by_channel),
            "tick_rate_per_sec": self.tick_rate.rate_per_sec(),
            "failed_ticks_per_sec": self.tick_rate.failed_per_sec(),
            "query_latency_ms": self.query_latency.snapshot(),
            "query_latency_by_device": self.query_latency.by_device(),
            "failure_ratio": (self.ticks_failed / self.ticks_total) if self.ticks_total else 0.0,
            "last_tick": self._last_tick(),
        }
