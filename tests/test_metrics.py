"""Tests for speedprobe.metrics -- the live observable store."""

import threading
import unittest

from speedprobe.metrics import EngineState, LiveMetrics, MetricsSnapshot


class TestSnapshot(unittest.TestCase):
    def test_initial(self):
        snap = LiveMetrics().snapshot()
        self.assertEqual(snap, MetricsSnapshot())
        self.assertEqual(snap.state, EngineState.IDLE)
        self.assertFalse(snap.running)

    def test_snapshot_is_frozen(self):
        snap = LiveMetrics().snapshot()
        with self.assertRaises(AttributeError):
            snap.progress = 0.5

    def test_snapshot_is_detached(self):
        m = LiveMetrics()
        before = m.snapshot()
        m.push_download_sample(2_000_000)
        self.assertEqual(before.download_history, ())
        self.assertEqual(m.snapshot().download_history, (2.0,))


class TestHistory(unittest.TestCase):
    def test_bounded_fifo(self):
        m = LiveMetrics(history_size=3)
        for speed in (1e6, 2e6, 3e6, 4e6, 5e6):
            m.push_upload_sample(speed)
        snap = m.snapshot()
        self.assertEqual(snap.upload_history, (3.0, 4.0, 5.0))
        self.assertEqual(snap.upload_speed, 5e6)

    def test_negative_speed_clamped(self):
        m = LiveMetrics()
        m.push_download_sample(-10.0)
        self.assertEqual(m.snapshot().download_speed, 0.0)
        self.assertEqual(m.snapshot().download_history, (0.0,))

    def test_start_run_clears_history(self):
        m = LiveMetrics()
        m.push_download_sample(1e6)
        m.start_run()
        self.assertEqual(m.snapshot().download_history, ())


class TestProgress(unittest.TestCase):
    def test_never_decreases(self):
        m = LiveMetrics()
        m.advance_progress(0.4)
        m.advance_progress(0.2)
        self.assertEqual(m.progress, 0.4)

    def test_clamped(self):
        m = LiveMetrics()
        m.advance_progress(1.7)
        self.assertEqual(m.progress, 1.0)

    def test_start_run_resets(self):
        m = LiveMetrics()
        m.advance_progress(1.0)
        m.start_run()
        self.assertEqual(m.progress, 0.0)
        self.assertTrue(m.running)
        self.assertEqual(m.state, EngineState.MEASURING_UNLOADED_LATENCY)


class TestSubscribe(unittest.TestCase):
    def test_receives_updates(self):
        m = LiveMetrics()
        seen = []
        m.subscribe(seen.append)
        m.set_latency(12.0, 1.5, 10.0)
        self.assertEqual(len(seen), 1)
        self.assertEqual((seen[0].latency, seen[0].jitter, seen[0].packet_loss), (12.0, 1.5, 10.0))

    def test_unsubscribe(self):
        m = LiveMetrics()
        seen = []
        unsubscribe = m.subscribe(seen.append)
        unsubscribe()
        unsubscribe()
        m.set_download_speed(1.0)
        self.assertEqual(seen, [])

    def test_unchanged_progress_not_published(self):
        m = LiveMetrics()
        m.advance_progress(0.5)
        seen = []
        m.subscribe(seen.append)
        m.advance_progress(0.3)
        self.assertEqual(seen, [])

    def test_silent_after_finish(self):
        m = LiveMetrics()
        m.start_run()
        seen = []
        m.subscribe(seen.append)
        m.finish_run(EngineState.COMPLETED)
        m.set_download_speed(5.0)
        self.assertEqual(len(seen), 1)
        self.assertEqual(seen[0].state, EngineState.COMPLETED)
        self.assertFalse(seen[0].running)

        m.start_run()
        self.assertEqual(len(seen), 2)

    def test_subscriber_error_isolated(self):
        m = LiveMetrics()
        seen = []

        def _broken(snap):
            raise RuntimeError("display gone")

        m.subscribe(_broken)
        m.subscribe(seen.append)
        with self.assertLogs("speedprobe.metrics", level="ERROR"):
            m.set_upload_speed(1.0)
        self.assertEqual(len(seen), 1)

    def test_reentrant_read_from_callback(self):
        m = LiveMetrics()
        seen = []
        m.subscribe(lambda snap: seen.append(m.snapshot().upload_speed))
        m.set_upload_speed(3.0)
        self.assertEqual(seen, [3.0])


class TestThreadSafety(unittest.TestCase):
    def test_concurrent_writers(self):
        m = LiveMetrics(history_size=10_000)

        def _writer():
            for _ in range(500):
                m.push_download_sample(1e6)

        threads = [threading.Thread(target=_writer) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(len(m.snapshot().download_history), 2000)


class TestEngineState(unittest.TestCase):
    def test_in_progress(self):
        self.assertTrue(EngineState.MEASURING_DOWNLOAD.in_progress)
        self.assertFalse(EngineState.IDLE.in_progress)
        self.assertFalse(EngineState.CANCELLED.in_progress)


if __name__ == "__main__":
    unittest.main()
