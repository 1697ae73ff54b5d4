"""
Output formatting -- JSON export, plain text, and CSV.
"""
from __future__ import annotations

import csv
import io
import json
import os
from typing import Any, Dict, Optional

from speedprobe.result import TestResult
from speedprobe.scoring import AimScores, calculate_aim_scores
from speedprobe.stats import format_latency, format_speed


def create_result_json(
    result: TestResult,
    scores: Optional[AimScores] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Build a JSON-serialisable dict: measurements, AIM scores, metadata."""
    scores = scores or calculate_aim_scores(result)

    out: Dict[str, Any] = {
        "timestamp": result.timestamp,
        "network_type": result.network_type,
        "isp_name": result.isp_name,
        "download": {
            "speed_bps": result.download_bps,
            "speed_mbps": round(result.download_mbps, 3),
        },
        "upload": {
            "speed_bps": result.upload_bps,
            "speed_mbps": round(result.upload_mbps, 3),
        },
        "latency": {
            "unloaded": {
                "mean_ms": result.latency_ms,
                "jitter_ms": result.jitter_ms,
            },
            "loaded_download": {
                "mean_ms": result.loaded_download_latency_ms,
                "jitter_ms": result.loaded_download_jitter_ms,
            },
            "loaded_upload": {
                "mean_ms": result.loaded_upload_latency_ms,
                "jitter_ms": result.loaded_upload_jitter_ms,
                "estimated": result.loaded_upload_estimated,
            },
        },
        "packet_loss_percent": result.packet_loss_percent,
        "aim_scores": scores._asdict(),
    }

    if details:
        out["details"] = details

    return out


def save_json(result: Dict[str, Any], filepath: str) -> None:
    """Write *result* to *filepath* atomically (write-tmp then rename)."""
    dir_path = os.path.dirname(filepath) or "."
    tmp = os.path.join(dir_path, f".tmp_{os.path.basename(filepath)}")

    try:
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(result, fh, indent=2, ensure_ascii=False)
        os.replace(tmp, filepath)
    except OSError as exc:
        # Clean up partial temp file
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise OSError(f"Failed to save JSON to {filepath}: {exc}") from exc


# ---------------------------------------------------------------------------
# Plain-text / CSV helpers
# ---------------------------------------------------------------------------

def format_text_result(result: TestResult, scores: Optional[AimScores] = None) -> str:
    scores = scores or calculate_aim_scores(result)
    sep = "=" * 50
    mid = "-" * 50
    lines = [
        sep,
        "Speed Test Results",
        sep,
    ]
    if result.network_type:
        lines.append(f"Network: {result.network_type}")
    if result.isp_name:
        lines.append(f"ISP: {result.isp_name}")
    lines += [
        mid,
        f"Latency: {format_latency(result.latency_ms)} (jitter: {result.jitter_ms:.2f} ms)",
        f"Packet Loss: {result.packet_loss_percent:.1f}%",
        f"Download: {format_speed(result.download_bps, use_bits=True)}",
        f"Upload: {format_speed(result.upload_bps, use_bits=True)}",
        f"Loaded Latency: {format_latency(result.loaded_download_latency_ms)} down, "
        f"~{format_latency(result.loaded_upload_latency_ms)} up (estimated)",
        mid,
        f"Streaming: {scores.streaming}",
        f"Gaming: {scores.gaming}",
        f"Video Calls: {scores.rtc}",
        sep,
    ]
    return "\n".join(lines)


_CSV_COLUMNS = (
    "timestamp",
    "network_type",
    "isp",
    "download_mbps",
    "upload_mbps",
    "latency_ms",
    "jitter_ms",
    "packet_loss_pct",
    "loaded_down_latency_ms",
    "loaded_up_latency_ms",
    "streaming",
    "gaming",
    "rtc",
)


def _csv_line(values) -> str:
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerow(values)
    return buf.getvalue().rstrip("\n")


def format_csv_header() -> str:
    return _csv_line(_CSV_COLUMNS)


def format_csv_row(result: TestResult, scores: Optional[AimScores] = None) -> str:
    scores = scores or calculate_aim_scores(result)
    return _csv_line([
        result.timestamp,
        result.network_type,
        result.isp_name,
        f"{result.download_mbps:.2f}",
        f"{result.upload_mbps:.2f}",
        f"{result.latency_ms:.1f}",
        f"{result.jitter_ms:.2f}",
        f"{result.packet_loss_percent:.1f}",
        f"{result.loaded_download_latency_ms:.1f}",
        f"{result.loaded_upload_latency_ms:.1f}",
        scores.streaming,
        scores.gaming,
        scores.rtc,
    ])
