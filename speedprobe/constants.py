"""
Shared constants used across all speedprobe modules.

Centralises endpoints, default payload sizes, timing tunables and
validation limits so they live in exactly one place.
"""

# ---------------------------------------------------------------------------
# HTTP headers
# ---------------------------------------------------------------------------

USER_AGENT = "NoSignal-Python-SpeedTest/1.0"

COMMON_HEADERS = {
    "Accept": "*/*",
    "Accept-Encoding": "identity",
}

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

UPLOAD_CONTENT_TYPE = "application/octet-stream"

# ---------------------------------------------------------------------------
# Cloudflare speed-test endpoints
# ---------------------------------------------------------------------------

DOWNLOAD_URL = "https://speed.cloudflare.com/__down"
UPLOAD_URL = "https://speed.cloudflare.com/__up"
LATENCY_URL = "https://speed.cloudflare.com/__down"

# ---------------------------------------------------------------------------
# Payload sizes (bytes)
# ---------------------------------------------------------------------------

DOWNLOAD_SIZES = (
    100_000,     # 100 KB
    1_000_000,   # 1 MB
    5_000_000,   # 5 MB
    10_000_000,  # 10 MB
    25_000_000,  # 25 MB
)

UPLOAD_SIZES = (
    100_000,
    1_000_000,
    5_000_000,
    10_000_000,
)

# ---------------------------------------------------------------------------
# Connection limits
# ---------------------------------------------------------------------------

MIN_CONNECTIONS = 1
MAX_CONNECTIONS = 32
DEFAULT_CONNECTIONS = 4

# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------

DEFAULT_LATENCY_SAMPLES = 10
MIN_LATENCY_SAMPLES = 1
MAX_LATENCY_SAMPLES = 100

DEFAULT_TIMEOUT = 30.0           # seconds per request
MAX_TIMEOUT = 300.0

LATENCY_INTERVAL = 0.2           # pause between latency samples
SIZE_INTERVAL = 0.1              # pause between payload-size waves

# ---------------------------------------------------------------------------
# Live metrics
# ---------------------------------------------------------------------------

HISTORY_SIZE = 50                # samples kept per speed history buffer

# ---------------------------------------------------------------------------
# Stage progress weights (cumulative end of each stage)
# ---------------------------------------------------------------------------

UNLOADED_LATENCY_END = 0.1
DOWNLOAD_END = 0.5
UPLOAD_END = 0.9
LOADED_LATENCY_END = 1.0

# ---------------------------------------------------------------------------
# Loaded-upload approximation
# ---------------------------------------------------------------------------

LOADED_UPLOAD_LATENCY_OFFSET_MS = 5.0
LOADED_UPLOAD_JITTER_OFFSET_MS = 1.0

# ---------------------------------------------------------------------------
# Data transfer
# ---------------------------------------------------------------------------

CHUNK_SIZE = 64 * 1024           # read size while draining download bodies
