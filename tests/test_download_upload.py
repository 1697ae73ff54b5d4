"""Tests for the size-wave download and upload testers and their results."""

import asyncio
import threading
import time
import unittest

from fakes import FakeClock, FakeTransport

from speedprobe.download import DownloadResult, DownloadTester
from speedprobe.errors import TestCancelledError as CancelledRun
from speedprobe.stats import ConnectionStats
from speedprobe.transfer import SizeResult, TransferResult
from speedprobe.upload import UploadTester

URL = "https://speed.example.com/__down"
SIZES = [100_000, 1_000_000]


def _scripted(table):
    return lambda size, i: table[size][i]


class TestSizeResult(unittest.TestCase):
    def test_mean_of_successful_only(self):
        wave = SizeResult(size=100, connections=[
            ConnectionStats(id=0, speed_bps=0.0, success=False, error="boom"),
            ConnectionStats(id=1, speed_bps=800.0, success=True),
            ConnectionStats(id=2, speed_bps=400.0, success=True),
        ])
        wave.calculate()
        self.assertEqual(wave.mean_speed_bps, 600.0)
        self.assertEqual(wave.successes, 2)

    def test_all_failed(self):
        wave = SizeResult(size=100, connections=[ConnectionStats(id=0)])
        wave.calculate()
        self.assertEqual(wave.mean_speed_bps, 0.0)


class TestTransferResult(unittest.TestCase):
    def test_max_of_size_means(self):
        r = TransferResult(sizes=[
            SizeResult(size=1, mean_speed_bps=600_000.0),
            SizeResult(size=2, mean_speed_bps=3_000_000.0),
            SizeResult(size=3, mean_speed_bps=0.0),
        ])
        r.calculate()
        self.assertEqual(r.speed_bps, 3_000_000.0)
        self.assertEqual(r.speed_mbps, 24.0)

    def test_empty(self):
        r = TransferResult()
        r.calculate()
        self.assertEqual(r.speed_bps, 0.0)
        self.assertEqual(r.samples, [])

    def test_to_dict(self):
        r = TransferResult(speed_bps=1_250_000.0, sizes=[SizeResult(size=10)])
        d = r.to_dict()
        self.assertEqual(d["speed_mbps"], 10.0)
        self.assertEqual(d["sizes"][0]["size"], 10)

    def test_aliases(self):
        self.assertIs(DownloadResult, TransferResult)


class TestDownloadTester(unittest.IsolatedAsyncioTestCase):
    def _tester(self, transport, clock, **kwargs):
        kwargs.setdefault("connections", 2)
        return DownloadTester(transport, url=URL, sizes=SIZES, interval=0.0, clock=clock, **kwargs)

    async def test_speed_is_max_of_per_size_means(self):
        clock = FakeClock()
        transport = FakeTransport(
            clock,
            download_time=_scripted({100_000: [0.125, 0.25], 1_000_000: [0.5, 0.25]}),
        )
        result = await self._tester(transport, clock).test()

        self.assertEqual([s.size for s in result.sizes], SIZES)
        self.assertEqual(result.sizes[0].mean_speed_bps, 600_000.0)
        self.assertEqual(result.sizes[1].mean_speed_bps, 3_000_000.0)
        self.assertEqual(result.speed_bps, 3_000_000.0)
        self.assertEqual(result.samples, [800_000.0, 400_000.0, 2_000_000.0, 4_000_000.0])
        self.assertEqual(result.bytes_total, 2_200_000)
        self.assertEqual(result.duration_ms, 1125.0)

    async def test_sizes_tested_ascending(self):
        clock = FakeClock()
        transport = FakeTransport(clock)
        tester = DownloadTester(transport, url=URL, sizes=[1_000_000, 100_000],
                                connections=1, interval=0.0, clock=clock)
        await tester.test()
        self.assertEqual([p["bytes"] for p in transport.downloads], [100_000, 1_000_000])

    async def test_failed_connection_contributes_nothing(self):
        clock = FakeClock()
        transport = FakeTransport(
            clock,
            download_time=_scripted({100_000: [None, 0.125], 1_000_000: [None, None]}),
        )
        with self.assertLogs("speedprobe.transfer", level="WARNING"):
            result = await self._tester(transport, clock).test()

        small, large = result.sizes
        self.assertFalse(small.connections[0].success)
        self.assertIn("503", small.connections[0].error)
        self.assertEqual(small.mean_speed_bps, 800_000.0)
        self.assertEqual(large.mean_speed_bps, 0.0)
        self.assertEqual(result.speed_bps, 800_000.0)

    async def test_empty_body_is_failure(self):
        clock = FakeClock()
        transport = FakeTransport(clock, short_body=True)
        result = await self._tester(transport, clock).test()

        self.assertEqual(result.speed_bps, 0.0)
        for wave in result.sizes:
            for conn in wave.connections:
                self.assertFalse(conn.success)
                self.assertEqual(conn.error, "no data transferred")

    async def test_callbacks(self):
        clock = FakeClock()
        transport = FakeTransport(clock)
        tester = self._tester(transport, clock)
        samples, progress = [], []
        tester.on_sample = samples.append
        tester.on_progress = progress.append

        await tester.test()

        self.assertEqual(samples, [800_000.0, 800_000.0, 8_000_000.0, 8_000_000.0])
        self.assertEqual(progress, [0.5, 1.0])

    async def test_cache_busting_params(self):
        clock = FakeClock()
        transport = FakeTransport(clock)
        await self._tester(transport, clock).test()
        self.assertEqual(len(transport.downloads), 4)
        self.assertTrue(all(isinstance(p["r"], int) for p in transport.downloads))

    async def test_cancelled_between_sizes(self):
        clock = FakeClock()
        transport = FakeTransport(clock)
        event = threading.Event()
        tester = self._tester(transport, clock, cancel_event=event)
        tester.on_progress = lambda fraction: event.set()

        with self.assertRaises(CancelledRun):
            await tester.test()
        self.assertEqual([p["bytes"] for p in transport.downloads], [100_000, 100_000])


class TestUploadTester(unittest.IsolatedAsyncioTestCase):
    async def test_payload_sizes_and_speed(self):
        clock = FakeClock()
        transport = FakeTransport(clock)
        tester = UploadTester(transport, url=URL, sizes=SIZES, connections=2,
                              interval=0.0, clock=clock)

        result = await tester.test()

        self.assertEqual(transport.uploads, [100_000, 100_000, 1_000_000, 1_000_000])
        # 1 MB in 0.25 s
        self.assertEqual(result.speed_bps, 4_000_000.0)

    async def test_payloads_are_random(self):
        tester = UploadTester(FakeTransport(FakeClock()), url=URL, sizes=[64])
        self.assertNotEqual(tester._payload(64), tester._payload(64))
        self.assertEqual(len(tester._payload(64)), 64)

    async def test_upload_failure(self):
        clock = FakeClock()
        transport = FakeTransport(clock, upload_time=lambda size, i: None if i == 0 else 0.25)
        tester = UploadTester(transport, url=URL, sizes=SIZES, connections=2,
                              interval=0.0, clock=clock)

        with self.assertLogs("speedprobe.transfer", level="WARNING"):
            result = await tester.test()

        self.assertEqual([w.successes for w in result.sizes], [1, 1])
        self.assertEqual(result.speed_bps, 4_000_000.0)

    async def test_payload_generation_not_timed(self):
        # Real clock: each request sleeps 50 ms, concurrently with its siblings.
        transport = SleepingTransport(0.05)
        tester = UploadTester(transport, url=URL, sizes=[8_000_000], connections=4,
                              interval=0.0, clock=time.perf_counter)

        result = await tester.test()

        durations = [c.duration_ms for c in result.sizes[0].connections]
        self.assertEqual(len(durations), 4)
        for duration in durations:
            self.assertGreaterEqual(duration, 45.0)
            self.assertLess(duration, 95.0)
        self.assertEqual(transport.sizes, [8_000_000] * 4)


class SleepingTransport(FakeTransport):
    """Uploads take a fixed amount of real time."""

    def __init__(self, seconds):
        super().__init__(FakeClock())
        self.seconds = seconds
        self.sizes = []

    async def upload(self, url, payload):
        self.sizes.append(len(payload))
        await asyncio.sleep(self.seconds)


if __name__ == "__main__":
    unittest.main()
