"""
Test configuration and user settings file support.

``TestConfiguration`` is the immutable set of knobs handed to the engine at
construction.  User overrides live in ``~/.speedprobe/config.json``.

Supported keys (``speedtest.py --set KEY=VALUE`` writes one)::

    download_sizes = [100000, 1000000, ...]   # bytes, tested ascending
    upload_sizes = [100000, 1000000, ...]
    latency_samples = 10
    connections = 4                            # concurrent requests per size
    timeout = 30.0                             # seconds per request
    download_url / upload_url / latency_url
    latency_interval = 0.2                     # pause between pings
    size_interval = 0.1                        # pause between size waves
    history_size = 50
    user_agent = "NoSignal-Python-SpeedTest/1.0"
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple
from urllib.parse import urlparse

from .constants import (
    DEFAULT_CONNECTIONS,
    DEFAULT_LATENCY_SAMPLES,
    DEFAULT_TIMEOUT,
    DOWNLOAD_SIZES,
    DOWNLOAD_URL,
    HISTORY_SIZE,
    LATENCY_INTERVAL,
    LATENCY_URL,
    MAX_CONNECTIONS,
    MAX_LATENCY_SAMPLES,
    MAX_TIMEOUT,
    MIN_CONNECTIONS,
    MIN_LATENCY_SAMPLES,
    SIZE_INTERVAL,
    UPLOAD_SIZES,
    UPLOAD_URL,
    USER_AGENT,
)
from .errors import ConfigError

logger = logging.getLogger(__name__)

_CONFIG_DIR = os.path.join(Path.home(), ".speedprobe")
_CONFIG_FILE = "config.json"


def _config_path() -> str:
    return os.path.join(_CONFIG_DIR, _CONFIG_FILE)


# ---------------------------------------------------------------------------
# Test configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TestConfiguration:
    """Immutable engine configuration."""

    download_sizes: Tuple[int, ...] = DOWNLOAD_SIZES
    upload_sizes: Tuple[int, ...] = UPLOAD_SIZES
    latency_samples: int = DEFAULT_LATENCY_SAMPLES
    connections: int = DEFAULT_CONNECTIONS
    timeout: float = DEFAULT_TIMEOUT
    download_url: str = DOWNLOAD_URL
    upload_url: str = UPLOAD_URL
    latency_url: str = LATENCY_URL
    latency_interval: float = LATENCY_INTERVAL
    size_interval: float = SIZE_INTERVAL
    history_size: int = HISTORY_SIZE
    user_agent: str = USER_AGENT

    def __post_init__(self) -> None:
        # Normalise sizes to ascending tuples so lists from JSON are accepted.
        object.__setattr__(self, "download_sizes", _sizes("download_sizes", self.download_sizes))
        object.__setattr__(self, "upload_sizes", _sizes("upload_sizes", self.upload_sizes))
        self.validate()

    def validate(self) -> None:
        """Raise ``ConfigError`` if any value has the wrong type or is out of range."""
        for name in ("connections", "latency_samples", "history_size"):
            if not _is_int(getattr(self, name)):
                raise ConfigError(f"{name} must be an integer, got {getattr(self, name)!r}")
        for name in ("timeout", "latency_interval", "size_interval"):
            if not _is_number(getattr(self, name)):
                raise ConfigError(f"{name} must be a number, got {getattr(self, name)!r}")
        for name in ("download_url", "upload_url", "latency_url", "user_agent"):
            if not isinstance(getattr(self, name), str):
                raise ConfigError(f"{name} must be a string, got {getattr(self, name)!r}")

        if not MIN_CONNECTIONS <= self.connections <= MAX_CONNECTIONS:
            raise ConfigError(
                f"connections must be between {MIN_CONNECTIONS} and {MAX_CONNECTIONS}"
            )
        if not MIN_LATENCY_SAMPLES <= self.latency_samples <= MAX_LATENCY_SAMPLES:
            raise ConfigError(
                f"latency_samples must be between {MIN_LATENCY_SAMPLES} and {MAX_LATENCY_SAMPLES}"
            )
        if not 0 < self.timeout <= MAX_TIMEOUT:
            raise ConfigError(f"timeout must be > 0 and <= {MAX_TIMEOUT} s")
        if self.latency_interval < 0 or self.size_interval < 0:
            raise ConfigError("intervals must not be negative")
        if self.history_size < 1:
            raise ConfigError("history_size must be at least 1")
        for name in ("download_url", "upload_url", "latency_url"):
            url = getattr(self, name)
            parsed = urlparse(url)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                raise ConfigError(f"{name} must be an http(s) URL, got {url!r}")
        if not self.user_agent:
            raise ConfigError("user_agent must not be empty")

    # -- Constructors -------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TestConfiguration:
        """Build a configuration from *data*; unknown keys are ignored."""
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known and v is not None}
        try:
            return cls(**kwargs)
        except TypeError as exc:
            raise ConfigError(str(exc)) from exc

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["download_sizes"] = list(self.download_sizes)
        d["upload_sizes"] = list(self.upload_sizes)
        return d


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _sizes(name: str, values: Any) -> Tuple[int, ...]:
    try:
        sizes = tuple(sorted(int(v) for v in values))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a list of byte counts") from exc
    if not sizes:
        raise ConfigError(f"{name} must not be empty")
    if sizes[0] <= 0:
        raise ConfigError(f"{name} must contain positive byte counts")
    return sizes


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULTS: Dict[str, Any] = TestConfiguration().to_dict()


# ---------------------------------------------------------------------------
# Read / Write
# ---------------------------------------------------------------------------

def load_config() -> Dict[str, Any]:
    """Load settings from disk, returning defaults for missing keys."""
    path = _config_path()
    config = dict(DEFAULTS)

    if not os.path.isfile(path):
        return config

    try:
        with open(path, encoding="utf-8") as fh:
            user = json.load(fh)
        if isinstance(user, dict):
            config.update(user)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)

    return config


def save_config(config: Dict[str, Any]) -> str:
    """Write *config* to disk.  Returns the file path."""
    path = _config_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)

    with open(path, "w", encoding="utf-8") as fh:
        json.dump(config, fh, indent=2, ensure_ascii=False)

    return path


def set_config_value(key: str, value: Any) -> str:
    """
    Set a single setting and persist.  Returns file path.

    Raises ``ConfigError`` for an unknown key or a value the resulting
    configuration rejects; nothing is written in that case.
    """
    if key not in DEFAULTS:
        raise ConfigError(f"unknown setting {key!r}")
    config = load_config()
    config[key] = value
    TestConfiguration.from_dict(config)
    return save_config(config)


def load_test_configuration(**overrides: Any) -> TestConfiguration:
    """Stored settings merged with *overrides* (``None`` values skipped)."""
    config = load_config()
    config.update({k: v for k, v in overrides.items() if v is not None})
    return TestConfiguration.from_dict(config)


def config_path() -> str:
    """Return the settings file path (for display purposes)."""
    return _config_path()
