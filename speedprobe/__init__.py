"""speedprobe -- HTTP speed-test engine: latency, throughput and AIM scores."""

import logging

from .config import TestConfiguration, load_test_configuration
from .download import DownloadTester
from .engine import SpeedTestEngine
from .errors import (
    ConfigError,
    EngineBusyError,
    SpeedTestError,
    SpeedTestFailedError,
    TestCancelledError,
    TransportError,
)
from .latency import LatencyTester
from .metrics import EngineState, LiveMetrics, MetricsSnapshot
from .result import TestResult
from .scoring import AimScores, calculate_aim_scores
from .stats import (
    ConnectionStats,
    LatencyStats,
    calculate_jitter,
    calculate_mean,
    calculate_packet_loss,
    calculate_speed,
    format_data_usage,
    format_latency,
    format_speed,
)
from .transfer import SizeResult, TransferResult
from .transport import AiohttpTransport, Transport
from .upload import UploadTester

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "1.0.0"

__all__ = [
    "AiohttpTransport",
    "AimScores",
    "ConfigError",
    "ConnectionStats",
    "DownloadTester",
    "EngineBusyError",
    "EngineState",
    "LatencyStats",
    "LatencyTester",
    "LiveMetrics",
    "MetricsSnapshot",
    "SizeResult",
    "SpeedTestEngine",
    "SpeedTestError",
    "SpeedTestFailedError",
    "TestCancelledError",
    "TestConfiguration",
    "TestResult",
    "TransferResult",
    "Transport",
    "TransportError",
    "UploadTester",
    "calculate_aim_scores",
    "calculate_jitter",
    "calculate_mean",
    "calculate_packet_loss",
    "calculate_speed",
    "format_data_usage",
    "format_latency",
    "format_speed",
    "load_test_configuration",
]
