"""
Size-wave transfer machinery shared by the download and upload testers.

For every configured payload size (ascending) a fixed-width wave of
``connections`` concurrent requests is launched and joined before the next
size starts.  Each request's speed is its byte count divided by its own
wall-clock duration; a size's speed is the mean over its successful
requests, and the stage speed is the best per-size mean.  Small payloads
are dominated by connection setup, so taking the maximum keeps them from
dragging the result down.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from .constants import DEFAULT_CONNECTIONS, SIZE_INTERVAL
from .errors import TestCancelledError, TransportError
from .stats import ConnectionStats, mean_of_successful
from .transport import Transport

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class SizeResult:
    """All connections of one payload-size wave."""

    size: int
    connections: List[ConnectionStats] = field(default_factory=list)
    mean_speed_bps: float = 0.0

    def calculate(self) -> None:
        self.mean_speed_bps = mean_of_successful([c.speed_bps for c in self.connections])

    @property
    def successes(self) -> int:
        return sum(1 for c in self.connections if c.success)

    def to_dict(self) -> dict:
        return {
            "size": self.size,
            "mean_speed_bps": round(self.mean_speed_bps, 2),
            "successes": self.successes,
            "connections": [c.to_dict() for c in self.connections],
        }


@dataclass
class TransferResult:
    """Download or upload stage result."""

    speed_bps: float = 0.0
    bytes_total: int = 0
    duration_ms: float = 0.0
    sizes: List[SizeResult] = field(default_factory=list)

    def calculate(self) -> None:
        """Stage speed is the maximum of the per-size means."""
        means = [s.mean_speed_bps for s in self.sizes if s.mean_speed_bps > 0]
        self.speed_bps = max(means) if means else 0.0
        self.bytes_total = sum(
            c.bytes_transferred for s in self.sizes for c in s.connections if c.success
        )

    @property
    def speed_mbps(self) -> float:
        return self.speed_bps * 8 / 1_000_000

    @property
    def samples(self) -> List[float]:
        """Successful per-connection speeds in bytes/sec, in completion order."""
        return [c.speed_bps for s in self.sizes for c in s.connections if c.success]

    def to_dict(self) -> dict:
        return {
            "speed_bps": round(self.speed_bps, 2),
            "speed_mbps": round(self.speed_mbps, 2),
            "bytes_total": self.bytes_total,
            "duration_ms": round(self.duration_ms, 2),
            "sizes": [s.to_dict() for s in self.sizes],
        }


# ---------------------------------------------------------------------------
# Tester
# ---------------------------------------------------------------------------

class TransferTester:
    """
    Base class for the size-wave testers.

    Subclasses implement ``_transfer`` (and optionally ``_payload``).
    ``on_sample`` receives every successful connection's speed in bytes/sec
    as soon as it completes; ``on_progress`` receives the completed
    fraction of the stage after each size wave.
    """

    direction = "transfer"

    def __init__(
        self,
        transport: Transport,
        url: str,
        sizes: Sequence[int],
        connections: int = DEFAULT_CONNECTIONS,
        interval: float = SIZE_INTERVAL,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.transport = transport
        self.url = url
        self.sizes = sorted(sizes)
        self.connections = connections
        self.interval = interval
        self.cancel_event = cancel_event or threading.Event()
        self.clock = clock
        self.on_sample: Optional[Callable[[float], None]] = None
        self.on_progress: Optional[Callable[[float], None]] = None

    async def test(self) -> TransferResult:
        result = TransferResult()
        start = self.clock()

        for index, size in enumerate(self.sizes):
            self._check_cancelled()

            wave = await self._run_wave(size)
            result.sizes.append(wave)
            logger.debug(
                "%s size %d: %d/%d ok, mean %.0f B/s",
                self.direction.capitalize(), size, wave.successes,
                len(wave.connections), wave.mean_speed_bps,
            )

            if self.on_progress:
                self.on_progress((index + 1) / len(self.sizes))

            if index < len(self.sizes) - 1 and self.interval > 0:
                await asyncio.sleep(self.interval)

        self._check_cancelled()
        result.duration_ms = max(self.clock() - start, 0.0) * 1000
        result.calculate()
        logger.info("%s speed: %.0f B/s", self.direction.capitalize(), result.speed_bps)
        return result

    # -- Internals ----------------------------------------------------------

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise TestCancelledError()

    async def _run_wave(self, size: int) -> SizeResult:
        """Run ``connections`` requests for *size* concurrently and join them."""
        # Every body exists before the first request starts its clock.
        payloads = [self._payload(size) for _ in range(self.connections)]
        tasks = [
            asyncio.create_task(self._connection(cid, size, payload))
            for cid, payload in enumerate(payloads)
        ]
        try:
            stats = await asyncio.gather(*tasks)
        finally:
            # Leave nothing running behind us on cancellation or error.
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        wave = SizeResult(size=size, connections=list(stats))
        wave.calculate()
        return wave

    async def _connection(
        self, cid: int, size: int, payload: Optional[bytes] = None
    ) -> ConnectionStats:
        stats = ConnectionStats(id=cid, size=size)
        if self.cancel_event.is_set():
            stats.error = "cancelled"
            return stats

        start = self.clock()
        try:
            stats.bytes_transferred = await self._transfer(size, payload)
        except TransportError as exc:
            logger.warning("%s error for connection %d: %s", self.direction.capitalize(), cid, exc)
            stats.error = str(exc)
            return stats

        stats.duration_ms = max(self.clock() - start, 0.0) * 1000
        stats.calculate()
        stats.success = stats.speed_bps > 0
        if not stats.success:
            stats.error = "no data transferred"
            return stats

        logger.debug(
            "%s: %d bytes in %.3fs = %.2f MB/s",
            self.direction.capitalize(), stats.bytes_transferred,
            stats.duration_ms / 1000, stats.speed_mb_s,
        )
        if self.on_sample:
            self.on_sample(stats.speed_bps)
        return stats

    def _payload(self, size: int) -> Optional[bytes]:
        return None

    async def _transfer(self, size: int, payload: Optional[bytes]) -> int:
        raise NotImplementedError
