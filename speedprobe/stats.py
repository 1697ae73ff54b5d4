"""
Network measurement statistics.

Pure functions and lightweight dataclasses -- no I/O, no side effects.
Everything here is deterministic and easy to unit-test.
"""
from __future__ import annotations

import math
import statistics
from dataclasses import dataclass, field
from typing import List, Sequence


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass
class LatencyStats:
    """Aggregated latency statistics for one latency stage."""

    samples: List[float] = field(default_factory=list)
    attempts: int = 0
    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    median: float = 0.0
    jitter: float = 0.0
    packet_loss: float = 0.0

    def calculate(self) -> None:
        attempts = max(self.attempts, len(self.samples))
        self.packet_loss = calculate_packet_loss(attempts, len(self.samples))
        self.mean = calculate_mean(self.samples)
        self.jitter = calculate_jitter(self.samples)
        if not self.samples:
            return
        self.min = min(self.samples)
        self.max = max(self.samples)
        self.median = statistics.median(self.samples)

    @property
    def count(self) -> int:
        return len(self.samples)

    def to_dict(self) -> dict:
        return {
            "samples": [round(s, 3) for s in self.samples],
            "attempts": self.attempts,
            "min": round(self.min, 3),
            "max": round(self.max, 3),
            "mean": round(self.mean, 3),
            "median": round(self.median, 3),
            "jitter": round(self.jitter, 3),
            "packet_loss": round(self.packet_loss, 3),
            "count": self.count,
        }


@dataclass
class ConnectionStats:
    """Outcome of one request in a download / upload size wave."""

    id: int = 0
    size: int = 0
    bytes_transferred: int = 0
    duration_ms: float = 0.0
    speed_bps: float = 0.0
    success: bool = False
    error: str = ""

    def calculate(self) -> None:
        self.speed_bps = calculate_speed(self.bytes_transferred, self.duration_ms / 1000)

    @property
    def speed_mb_s(self) -> float:
        return self.speed_bps / 1_000_000

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "size": self.size,
            "bytes": self.bytes_transferred,
            "duration_ms": round(self.duration_ms, 2),
            "speed_bps": round(self.speed_bps, 2),
            "success": self.success,
            "error": self.error,
        }


# ---------------------------------------------------------------------------
# Pure helper functions
# ---------------------------------------------------------------------------

def calculate_mean(samples: Sequence[float]) -> float:
    """Arithmetic mean, 0 for an empty sequence."""
    if not samples:
        return 0.0
    return statistics.fmean(samples)


def calculate_jitter(samples: Sequence[float]) -> float:
    """Population standard deviation of RTT samples; 0 below two samples."""
    if len(samples) < 2:
        return 0.0
    return statistics.pstdev(samples)


def calculate_packet_loss(attempts: int, successes: int) -> float:
    """Percentage of *attempts* that did not succeed."""
    if attempts <= 0:
        return 0.0
    lost = max(attempts - successes, 0)
    return 100.0 * lost / attempts


def calculate_speed(num_bytes: float, seconds: float) -> float:
    """
    Bytes per second for a single transfer.

    Never negative or NaN: a non-positive or non-finite duration, or a
    negative byte count, yields 0.
    """
    if seconds <= 0 or num_bytes <= 0:
        return 0.0
    speed = num_bytes / seconds
    if not math.isfinite(speed):
        return 0.0
    return speed


def mean_of_successful(speeds: Sequence[float]) -> float:
    """Mean of the strictly positive entries, 0 when there are none."""
    ok = [s for s in speeds if s > 0]
    return calculate_mean(ok)


def to_mbps(bytes_per_second: float) -> float:
    """Bytes per second -> megabits per second."""
    return bytes_per_second * 8 / 1_000_000


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def format_speed(bytes_per_second: float, use_bits: bool = False) -> str:
    """Human-readable speed, e.g. ``12.35 MB/s`` or ``98.80 Mbps``."""
    value = bytes_per_second * 8 if use_bits else bytes_per_second
    unit = "bps" if use_bits else "B/s"

    if value >= 1_000_000_000:
        return f"{value / 1_000_000_000:.2f} G{unit}"
    if value >= 1_000_000:
        return f"{value / 1_000_000:.2f} M{unit}"
    if value >= 1_000:
        return f"{value / 1_000:.1f} K{unit}"
    return f"{value:.0f} {unit}"


def format_data_usage(num_bytes: float) -> str:
    """Binary-prefixed byte count, e.g. ``1.5 MB``."""
    if num_bytes >= 1_073_741_824:
        return f"{num_bytes / 1_073_741_824:.2f} GB"
    if num_bytes >= 1_048_576:
        return f"{num_bytes / 1_048_576:.1f} MB"
    if num_bytes >= 1_024:
        return f"{num_bytes / 1_024:.0f} KB"
    return f"{num_bytes:.0f} B"


def format_latency(latency_ms: float) -> str:
    """Human-readable latency string."""
    if latency_ms >= 1000:
        return f"{latency_ms / 1000:.2f} s"
    return f"{latency_ms:.1f} ms"
