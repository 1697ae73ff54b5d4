"""
HTTP round-trip latency measurement.

Each sample is a ``HEAD {latency_url}?bytes=0&r=<random>`` request sent
with ``Cache-Control: no-cache``.  Samples are taken sequentially with a
short pause in between so the server does not throttle us.  A failed
sample is counted as lost rather than aborting the stage.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Callable, Optional

from .constants import DEFAULT_LATENCY_SAMPLES, LATENCY_INTERVAL, LATENCY_URL
from .errors import TestCancelledError, TransportError
from .stats import LatencyStats
from .transport import Transport, cache_buster

logger = logging.getLogger(__name__)


class LatencyTester:
    """
    Measure mean RTT, jitter and packet loss over ``sample_count`` pings.

    ``on_sample`` receives the running ``LatencyStats`` after every attempt,
    successful or not; ``on_progress`` receives the completed fraction of
    the stage.
    """

    def __init__(
        self,
        transport: Transport,
        url: str = LATENCY_URL,
        sample_count: int = DEFAULT_LATENCY_SAMPLES,
        interval: float = LATENCY_INTERVAL,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.transport = transport
        self.url = url
        self.sample_count = sample_count
        self.interval = interval
        self.cancel_event = cancel_event or threading.Event()
        self.clock = clock
        self.on_sample: Optional[Callable[[LatencyStats], None]] = None
        self.on_progress: Optional[Callable[[float], None]] = None

    async def measure(self) -> LatencyStats:
        stats = LatencyStats()

        for index in range(self.sample_count):
            self._check_cancelled()

            rtt = await self._ping_once(index)
            stats.attempts += 1
            if rtt is not None:
                stats.samples.append(rtt)
            stats.calculate()

            if self.on_sample:
                self.on_sample(stats)
            if self.on_progress:
                self.on_progress((index + 1) / self.sample_count)

            if index < self.sample_count - 1 and self.interval > 0:
                await asyncio.sleep(self.interval)

        self._check_cancelled()
        logger.info(
            "Latency: mean=%.1fms jitter=%.1fms loss=%.1f%% (%d/%d ok)",
            stats.mean, stats.jitter, stats.packet_loss, stats.count, stats.attempts,
        )
        return stats

    # -- Internals ----------------------------------------------------------

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise TestCancelledError()

    async def _ping_once(self, index: int) -> Optional[float]:
        """One round trip in ms, or ``None`` if the sample was lost."""
        params = {"bytes": 0, "r": cache_buster()}
        start = self.clock()
        try:
            await self.transport.ping(self.url, params)
        except TransportError as exc:
            logger.warning("Latency sample %d lost: %s", index + 1, exc)
            return None

        rtt_ms = max((self.clock() - start) * 1000, 0.0)
        logger.debug("Latency sample %d: %.1fms", index + 1, rtt_ms)
        return rtt_ms
