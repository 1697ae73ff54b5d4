"""Immutable record of one completed speed-test run."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class TestResult:
    """
    Final measurements of a run.

    Speeds are bytes/sec, latencies and jitters milliseconds, packet loss a
    percentage of the unloaded latency samples.

    Only one loaded-latency stage is measured (right after the upload
    stage).  ``loaded_download_*`` carry that measurement;
    ``loaded_upload_*`` are derived from it by a fixed offset and are
    flagged by ``loaded_upload_estimated``.
    """

    download_bps: float
    upload_bps: float
    latency_ms: float
    jitter_ms: float
    packet_loss_percent: float
    loaded_download_latency_ms: float
    loaded_upload_latency_ms: float
    loaded_download_jitter_ms: float
    loaded_upload_jitter_ms: float
    loaded_upload_estimated: bool = True
    network_type: str = ""
    isp_name: str = ""
    timestamp: str = field(default_factory=_utc_now)

    @property
    def download_mbps(self) -> float:
        """Megabits per second."""
        return self.download_bps * 8 / 1_000_000

    @property
    def upload_mbps(self) -> float:
        return self.upload_bps * 8 / 1_000_000

    def measurements(self) -> Dict[str, Any]:
        """Every field except the per-run metadata (timestamp, network, ISP)."""
        d = asdict(self)
        for key in ("timestamp", "network_type", "isp_name"):
            d.pop(key)
        return d

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["download_mbps"] = round(self.download_mbps, 3)
        d["upload_mbps"] = round(self.upload_mbps, 3)
        return d
