"""Exception hierarchy for the speed-test engine."""
from __future__ import annotations

from typing import Optional


class SpeedTestError(Exception):
    """Base class for every error raised by speedprobe."""


class TransportError(SpeedTestError):
    """A single HTTP request failed (timeout, non-2xx, connection error)."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class ConfigError(SpeedTestError, ValueError):
    """The test configuration is invalid."""


class EngineBusyError(SpeedTestError):
    """``run_test()`` was called while a run is already in progress."""

    def __init__(self) -> None:
        super().__init__("A speed test is already running on this engine")


class TestCancelledError(SpeedTestError):
    """The run was cancelled before it produced a result."""

    def __init__(self, stage=None) -> None:  # noqa: ANN001 (EngineState)
        label = stage.value if stage is not None else "unknown stage"
        super().__init__(f"Speed test cancelled during {label}")
        self.stage = stage


class SpeedTestFailedError(SpeedTestError):
    """An unrecoverable error aborted the run."""

    def __init__(self, stage, cause: BaseException) -> None:  # noqa: ANN001
        label = stage.value if stage is not None else "unknown stage"
        super().__init__(f"Speed test failed during {label}: {cause}")
        self.stage = stage
        self.cause = cause
