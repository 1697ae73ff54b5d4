"""
Speed-test orchestration.

``SpeedTestEngine.run_test()`` executes four stages in order::

    unloaded latency   0%  -> 10%
    download          10%  -> 50%
    upload            50%  -> 90%
    loaded latency    90%  -> 100%

and returns an immutable ``TestResult``.  While it runs, the engine's
``metrics`` (a ``LiveMetrics``) broadcast snapshots to subscribers.  One run
at a time per engine; ``cancel()`` may be called from any thread.
"""
from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Sequence, Type

from .config import TestConfiguration
from .constants import (
    DOWNLOAD_END,
    LOADED_LATENCY_END,
    LOADED_UPLOAD_JITTER_OFFSET_MS,
    LOADED_UPLOAD_LATENCY_OFFSET_MS,
    UNLOADED_LATENCY_END,
    UPLOAD_END,
)
from .download import DownloadTester
from .errors import EngineBusyError, SpeedTestFailedError, TestCancelledError
from .latency import LatencyTester
from .metrics import EngineState, LiveMetrics, MetricsSnapshot, Subscriber
from .result import TestResult
from .scoring import AimScores, calculate_aim_scores
from .stats import LatencyStats
from .transfer import TransferResult, TransferTester
from .transport import AiohttpTransport, Transport
from .upload import UploadTester

logger = logging.getLogger(__name__)


class SpeedTestEngine:
    """
    Active network probe: latency, download, upload, loaded latency.

    *transport* defaults to a fresh ``AiohttpTransport`` per run (closed
    when the run ends, including on cancellation).  A caller-supplied
    transport is used as-is and its lifecycle is left to the caller.
    *clock* must return monotonic seconds.
    """

    def __init__(
        self,
        config: Optional[TestConfiguration] = None,
        transport: Optional[Transport] = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.config = config or TestConfiguration()
        self.clock = clock
        self.metrics = LiveMetrics(history_size=self.config.history_size)
        # Per-stage breakdown of the last successful run (sizes, connections, samples).
        self.details: Optional[Dict[str, Any]] = None

        self._transport = transport
        self._lock = threading.Lock()
        self._running = False
        self._state = EngineState.IDLE
        self._cancel_event = threading.Event()
        self._stage_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # -- Observation --------------------------------------------------------

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def state(self) -> EngineState:
        with self._lock:
            return self._state

    def snapshot(self) -> MetricsSnapshot:
        return self.metrics.snapshot()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Receive a ``MetricsSnapshot`` after every live update."""
        return self.metrics.subscribe(callback)

    # -- Control ------------------------------------------------------------

    async def run_test(self, network_type: str = "", isp_name: str = "") -> TestResult:
        """
        Run all four stages and return the result.

        Raises ``EngineBusyError`` if a run is already in progress,
        ``TestCancelledError`` if ``cancel()`` stopped the run, and
        ``SpeedTestFailedError`` for anything the stages could not contain.
        """
        with self._lock:
            if self._running:
                raise EngineBusyError()
            self._running = True
            self._cancel_event.clear()
            self._loop = asyncio.get_running_loop()

        self.details = None
        self.metrics.start_run()
        self._enter(EngineState.MEASURING_UNLOADED_LATENCY)
        logger.info("Starting speed test")

        task = asyncio.create_task(self._execute(network_type, isp_name))
        with self._lock:
            self._stage_task = task

        try:
            result = await task
        except (TestCancelledError, asyncio.CancelledError) as exc:
            stage = self.state
            outer = asyncio.current_task()
            external = outer is not None and getattr(outer, "cancelling", lambda: 0)() > 0
            self._finish(EngineState.CANCELLED)
            if isinstance(exc, asyncio.CancelledError) and (external or not self._cancel_event.is_set()):
                raise
            logger.info("Speed test cancelled during %s", stage.value)
            raise TestCancelledError(stage) from None
        except Exception as exc:
            stage = self.state
            logger.error("Speed test failed during %s: %s", stage.value, exc, exc_info=True)
            self._finish(EngineState.FAILED)
            raise SpeedTestFailedError(stage, exc) from exc

        self._finish(EngineState.COMPLETED)
        logger.info(
            "Speed test complete: down=%.0f B/s up=%.0f B/s latency=%.1fms "
            "jitter=%.1fms loss=%.1f%%",
            result.download_bps, result.upload_bps, result.latency_ms,
            result.jitter_ms, result.packet_loss_percent,
        )
        return result

    def run_in_thread(
        self, network_type: str = "", isp_name: str = ""
    ) -> concurrent.futures.Future:
        """
        Run the test on a worker thread with its own event loop.

        For hosts that are not asyncio based.  The returned future resolves
        to the ``TestResult`` or raises the same errors as ``run_test()``.
        """
        future: concurrent.futures.Future = concurrent.futures.Future()

        def _target() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                result = asyncio.run(self.run_test(network_type, isp_name))
            except BaseException as exc:  # handed to the future's consumer
                future.set_exception(exc)
            else:
                future.set_result(result)

        threading.Thread(target=_target, name="speedprobe-engine", daemon=True).start()
        return future

    def cancel(self) -> None:
        """Stop the current run as soon as possible.  No-op when idle."""
        with self._lock:
            if not self._running:
                return
            self._cancel_event.set()
            task, loop = self._stage_task, self._loop

        logger.info("Cancelling speed test")
        self.metrics.stop_running()
        if task is not None and loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(task.cancel)

    @staticmethod
    def calculate_aim_scores(result: TestResult) -> AimScores:
        return calculate_aim_scores(result)

    # -- Stages -------------------------------------------------------------

    async def _execute(self, network_type: str, isp_name: str) -> TestResult:
        if self._transport is not None:
            return await self._run_stages(self._transport, network_type, isp_name)

        cfg = self.config
        async with AiohttpTransport(
            timeout=cfg.timeout,
            connections=cfg.connections,
            user_agent=cfg.user_agent,
        ) as transport:
            return await self._run_stages(transport, network_type, isp_name)

    async def _run_stages(
        self, transport: Transport, network_type: str, isp_name: str
    ) -> TestResult:
        cfg = self.config

        # 1. Unloaded latency
        unloaded = await self._measure_latency(transport, 0.0, UNLOADED_LATENCY_END)

        # 2. Download
        self._enter(EngineState.MEASURING_DOWNLOAD)
        download = await self._measure_transfer(
            DownloadTester, transport, cfg.download_url, cfg.download_sizes,
            self.metrics.push_download_sample, UNLOADED_LATENCY_END, DOWNLOAD_END,
        )
        self.metrics.set_download_speed(download.speed_bps)

        # 3. Upload
        self._enter(EngineState.MEASURING_UPLOAD)
        upload = await self._measure_transfer(
            UploadTester, transport, cfg.upload_url, cfg.upload_sizes,
            self.metrics.push_upload_sample, DOWNLOAD_END, UPLOAD_END,
        )
        self.metrics.set_upload_speed(upload.speed_bps)

        # 4. Loaded latency
        self._enter(EngineState.MEASURING_LOADED_LATENCY)
        loaded = await self._measure_latency(transport, UPLOAD_END, LOADED_LATENCY_END)

        self._check_cancelled()
        result = self._build_result(unloaded, download, upload, loaded, network_type, isp_name)
        self.details = {
            "unloaded_latency": unloaded.to_dict(),
            "download": download.to_dict(),
            "upload": upload.to_dict(),
            "loaded_latency": loaded.to_dict(),
        }

        # Leave the headline numbers on display, not the loaded-latency ones.
        self.metrics.set_latency(result.latency_ms, result.jitter_ms, result.packet_loss_percent)
        self.metrics.set_download_speed(result.download_bps)
        self.metrics.set_upload_speed(result.upload_bps)
        self.metrics.advance_progress(LOADED_LATENCY_END)
        return result

    async def _measure_latency(
        self, transport: Transport, start: float, end: float
    ) -> LatencyStats:
        cfg = self.config
        tester = LatencyTester(
            transport,
            url=cfg.latency_url,
            sample_count=cfg.latency_samples,
            interval=cfg.latency_interval,
            cancel_event=self._cancel_event,
            clock=self.clock,
        )
        tester.on_sample = lambda s: self.metrics.set_latency(s.mean, s.jitter, s.packet_loss)
        tester.on_progress = self._progress_span(start, end)

        stats = await tester.measure()
        self.metrics.set_latency(stats.mean, stats.jitter, stats.packet_loss)
        self.metrics.advance_progress(end)
        return stats

    async def _measure_transfer(
        self,
        tester_cls: Type[TransferTester],
        transport: Transport,
        url: str,
        sizes: Sequence[int],
        on_sample: Callable[[float], None],
        start: float,
        end: float,
    ) -> TransferResult:
        cfg = self.config
        tester = tester_cls(
            transport,
            url=url,
            sizes=sizes,
            connections=cfg.connections,
            interval=cfg.size_interval,
            cancel_event=self._cancel_event,
            clock=self.clock,
        )
        tester.on_sample = on_sample
        tester.on_progress = self._progress_span(start, end)

        result = await tester.test()
        self.metrics.advance_progress(end)
        return result

    @staticmethod
    def _build_result(
        unloaded: LatencyStats,
        download: TransferResult,
        upload: TransferResult,
        loaded: LatencyStats,
        network_type: str,
        isp_name: str,
    ) -> TestResult:
        # Loaded-upload figures are an estimate from the single loaded stage.
        if loaded.count:
            loaded_up_latency = loaded.mean + LOADED_UPLOAD_LATENCY_OFFSET_MS
            loaded_up_jitter = loaded.jitter + LOADED_UPLOAD_JITTER_OFFSET_MS
        else:
            loaded_up_latency = loaded_up_jitter = 0.0

        return TestResult(
            download_bps=download.speed_bps,
            upload_bps=upload.speed_bps,
            latency_ms=unloaded.mean,
            jitter_ms=unloaded.jitter,
            packet_loss_percent=unloaded.packet_loss,
            loaded_download_latency_ms=loaded.mean,
            loaded_upload_latency_ms=loaded_up_latency,
            loaded_download_jitter_ms=loaded.jitter,
            loaded_upload_jitter_ms=loaded_up_jitter,
            loaded_upload_estimated=True,
            network_type=network_type,
            isp_name=isp_name,
        )

    # -- Internals ----------------------------------------------------------

    def _progress_span(self, start: float, end: float) -> Callable[[float], None]:
        def _update(fraction: float) -> None:
            self.metrics.advance_progress(start + (end - start) * fraction)
        return _update

    def _check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise TestCancelledError()

    def _enter(self, state: EngineState) -> None:
        with self._lock:
            self._state = state
        self.metrics.set_state(state)
        logger.info("Stage: %s", state.value)

    def _finish(self, state: EngineState) -> None:
        with self._lock:
            self._running = False
            self._state = state
            self._stage_task = None
            self._loop = None
        self.metrics.finish_run(state)
