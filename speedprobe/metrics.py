"""
Live metrics published while a speed test runs.

The engine owns a single ``LiveMetrics`` instance and is the only writer.
Any number of readers can take immutable ``MetricsSnapshot`` objects via
``snapshot()`` or register a callback with ``subscribe()``; callbacks are
invoked with a fresh snapshot after every update.  All state is guarded by
one ``threading.Lock`` so readers on other threads never see a torn view.
"""
from __future__ import annotations

import enum
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from .constants import HISTORY_SIZE

logger = logging.getLogger(__name__)


class EngineState(enum.Enum):
    IDLE = "idle"
    MEASURING_UNLOADED_LATENCY = "unloaded latency"
    MEASURING_DOWNLOAD = "download"
    MEASURING_UPLOAD = "upload"
    MEASURING_LOADED_LATENCY = "loaded latency"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def in_progress(self) -> bool:
        return self in _IN_PROGRESS


_IN_PROGRESS = frozenset({
    EngineState.MEASURING_UNLOADED_LATENCY,
    EngineState.MEASURING_DOWNLOAD,
    EngineState.MEASURING_UPLOAD,
    EngineState.MEASURING_LOADED_LATENCY,
})


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time view of the live metrics."""

    download_speed: float = 0.0      # bytes/sec
    upload_speed: float = 0.0        # bytes/sec
    latency: float = 0.0             # ms
    jitter: float = 0.0              # ms
    packet_loss: float = 0.0         # percent
    progress: float = 0.0            # 0.0 .. 1.0
    download_history: Tuple[float, ...] = ()   # MB/s
    upload_history: Tuple[float, ...] = ()     # MB/s
    running: bool = False
    state: EngineState = EngineState.IDLE


Subscriber = Callable[[MetricsSnapshot], None]


class LiveMetrics:
    """Thread-safe observable store for in-flight test metrics."""

    def __init__(self, history_size: int = HISTORY_SIZE) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[int, Subscriber] = {}
        self._next_token = 0
        self._publishing = True

        self._download_speed = 0.0
        self._upload_speed = 0.0
        self._latency = 0.0
        self._jitter = 0.0
        self._packet_loss = 0.0
        self._progress = 0.0
        self._download_history: deque = deque(maxlen=history_size)
        self._upload_history: deque = deque(maxlen=history_size)
        self._running = False
        self._state = EngineState.IDLE

    # -- Reading ------------------------------------------------------------

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return self._snapshot_locked()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def progress(self) -> float:
        with self._lock:
            return self._progress

    @property
    def state(self) -> EngineState:
        with self._lock:
            return self._state

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback*; returns a function that unsubscribes it."""
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscribers[token] = callback

        def _unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)

        return _unsubscribe

    # -- Writing (engine only) ---------------------------------------------

    def start_run(self) -> None:
        """Reset every metric for a new run and resume publishing."""
        with self._lock:
            self._publishing = True
            self._download_speed = 0.0
            self._upload_speed = 0.0
            self._latency = 0.0
            self._jitter = 0.0
            self._packet_loss = 0.0
            self._progress = 0.0
            self._download_history.clear()
            self._upload_history.clear()
            self._running = True
            self._state = EngineState.MEASURING_UNLOADED_LATENCY
        self._publish()

    def finish_run(self, state: EngineState) -> None:
        """Mark the run as ended and stop publishing until the next run."""
        with self._lock:
            self._running = False
            self._state = state
        self._publish()
        with self._lock:
            self._publishing = False

    def set_state(self, state: EngineState) -> None:
        with self._lock:
            self._state = state
        self._publish()

    def stop_running(self) -> None:
        with self._lock:
            self._running = False

    def advance_progress(self, value: float) -> None:
        """Move progress forward to *value*; never moves it backwards."""
        value = min(max(value, 0.0), 1.0)
        with self._lock:
            if value <= self._progress:
                return
            self._progress = value
        self._publish()

    def set_latency(self, latency: float, jitter: float, packet_loss: float) -> None:
        with self._lock:
            self._latency = latency
            self._jitter = jitter
            self._packet_loss = packet_loss
        self._publish()

    def set_download_speed(self, speed_bps: float) -> None:
        with self._lock:
            self._download_speed = max(speed_bps, 0.0)
        self._publish()

    def set_upload_speed(self, speed_bps: float) -> None:
        with self._lock:
            self._upload_speed = max(speed_bps, 0.0)
        self._publish()

    def push_download_sample(self, speed_bps: float) -> None:
        """Record a finished download connection (current speed + history)."""
        speed_bps = max(speed_bps, 0.0)
        with self._lock:
            self._download_speed = speed_bps
            self._download_history.append(speed_bps / 1_000_000)
        self._publish()

    def push_upload_sample(self, speed_bps: float) -> None:
        """Record a finished upload connection (current speed + history)."""
        speed_bps = max(speed_bps, 0.0)
        with self._lock:
            self._upload_speed = speed_bps
            self._upload_history.append(speed_bps / 1_000_000)
        self._publish()

    # -- Internals ----------------------------------------------------------

    def _snapshot_locked(self) -> MetricsSnapshot:
        return MetricsSnapshot(
            download_speed=self._download_speed,
            upload_speed=self._upload_speed,
            latency=self._latency,
            jitter=self._jitter,
            packet_loss=self._packet_loss,
            progress=self._progress,
            download_history=tuple(self._download_history),
            upload_history=tuple(self._upload_history),
            running=self._running,
            state=self._state,
        )

    def _publish(self) -> None:
        with self._lock:
            if not self._publishing or not self._subscribers:
                return
            snap = self._snapshot_locked()
            callbacks = list(self._subscribers.values())

        for cb in callbacks:
            try:
                cb(snap)
            except Exception:
                logger.exception("Live metrics subscriber %r raised", cb)
