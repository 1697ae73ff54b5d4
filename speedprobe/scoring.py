"""
AIM ("fit for purpose") scoring.

Buckets a finished result into one of five ordinal levels for streaming,
gaming and real-time communication.  Each use case is a priority cascade:
tiers are tested top-down and the first one whose every bound holds wins.
"""
from __future__ import annotations

import logging
from typing import Callable, List, NamedTuple, Tuple

from .result import TestResult
from .stats import to_mbps

logger = logging.getLogger(__name__)


EXCELLENT = "Excellent"
GOOD = "Good"
FAIR = "Fair"
POOR = "Poor"
VERY_POOR = "Very Poor"

LEVEL_COLORS = {
    EXCELLENT: "green",
    GOOD: "green",
    FAIR: "yellow",
    POOR: "red",
    VERY_POOR: "red",
}


class AimScores(NamedTuple):
    streaming: str
    gaming: str
    rtc: str


class _Inputs(NamedTuple):
    down_mbps: float
    up_mbps: float
    latency: float
    jitter: float


_Rule = Callable[[_Inputs], bool]


# ---------------------------------------------------------------------------
# Cascades
# ---------------------------------------------------------------------------

_STREAMING: List[Tuple[str, _Rule]] = [
    (EXCELLENT, lambda m: m.down_mbps >= 25 and m.latency <= 50),
    (GOOD,      lambda m: m.down_mbps >= 15 and m.latency <= 100),
    (FAIR,      lambda m: m.down_mbps >= 5 and m.latency <= 150),
    (POOR,      lambda m: m.down_mbps >= 2),
]

_GAMING: List[Tuple[str, _Rule]] = [
    (EXCELLENT, lambda m: m.latency <= 20 and m.jitter <= 5 and m.down_mbps >= 3),
    (GOOD,      lambda m: m.latency <= 50 and m.jitter <= 10 and m.down_mbps >= 1),
    (FAIR,      lambda m: m.latency <= 100 and m.jitter <= 20 and m.down_mbps >= 0.5),
    (POOR,      lambda m: m.latency <= 150),
]

_RTC: List[Tuple[str, _Rule]] = [
    (EXCELLENT, lambda m: m.up_mbps >= 2 and m.latency <= 50 and m.jitter <= 10 and m.down_mbps >= 1),
    (GOOD,      lambda m: m.up_mbps >= 1 and m.latency <= 100 and m.jitter <= 20 and m.down_mbps >= 0.5),
    (FAIR,      lambda m: m.up_mbps >= 0.5 and m.latency <= 150 and m.jitter <= 30),
    (POOR,      lambda m: m.up_mbps >= 0.1),
]


def _cascade(rules: List[Tuple[str, _Rule]], inputs: _Inputs) -> str:
    for level, rule in rules:
        if rule(inputs):
            return level
    return VERY_POOR


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def streaming_score(down_mbps: float, latency_ms: float) -> str:
    return _cascade(_STREAMING, _Inputs(down_mbps, 0.0, latency_ms, 0.0))


def gaming_score(latency_ms: float, jitter_ms: float, down_mbps: float) -> str:
    return _cascade(_GAMING, _Inputs(down_mbps, 0.0, latency_ms, jitter_ms))


def rtc_score(up_mbps: float, latency_ms: float, jitter_ms: float, down_mbps: float) -> str:
    return _cascade(_RTC, _Inputs(down_mbps, up_mbps, latency_ms, jitter_ms))


def calculate_aim_scores(result: TestResult) -> AimScores:
    """Return (streaming, gaming, rtc) levels for *result*."""
    inputs = _Inputs(
        down_mbps=to_mbps(result.download_bps),
        up_mbps=to_mbps(result.upload_bps),
        latency=result.latency_ms,
        jitter=result.jitter_ms,
    )
    scores = AimScores(
        streaming=streaming_score(inputs.down_mbps, inputs.latency),
        gaming=gaming_score(inputs.latency, inputs.jitter, inputs.down_mbps),
        rtc=rtc_score(inputs.up_mbps, inputs.latency, inputs.jitter, inputs.down_mbps),
    )
    logger.debug(
        "AIM scores for %.2f/%.2f Mbps, %.1fms, jitter %.1fms: %s",
        inputs.down_mbps, inputs.up_mbps, inputs.latency, inputs.jitter, scores,
    )
    return scores
