"""Tests for ui.dashboard helpers that do not need a terminal."""

import unittest

from speedprobe.metrics import EngineState, MetricsSnapshot
from ui.dashboard import ProgressDisplay, _stage_label, create_histogram, format_reading


class TestHistogram(unittest.TestCase):
    def test_empty(self):
        self.assertEqual(create_histogram([]), "No data")

    def test_length(self):
        self.assertEqual(len(create_histogram([1.0, 2.0, 3.0, 4.0])), 4)

    def test_extremes(self):
        bars = create_histogram([0.0, 10.0])
        self.assertEqual(bars, "▁█")

    def test_flat(self):
        self.assertEqual(create_histogram([5.0, 5.0]), "▁▁")


class TestFormatReading(unittest.TestCase):
    def test_download(self):
        snap = MetricsSnapshot(state=EngineState.MEASURING_DOWNLOAD, download_speed=12_500_000)
        self.assertEqual(format_reading(snap), "100.00 Mbps")

    def test_upload_waiting(self):
        snap = MetricsSnapshot(state=EngineState.MEASURING_UPLOAD)
        self.assertEqual(format_reading(snap), "...")

    def test_latency(self):
        snap = MetricsSnapshot(state=EngineState.MEASURING_UNLOADED_LATENCY, latency=15.0, jitter=2.0)
        self.assertEqual(format_reading(snap), "15.0 ms (jitter 2.0 ms)")


class TestStageLabel(unittest.TestCase):
    def test_running_stages(self):
        self.assertEqual(_stage_label(EngineState.MEASURING_DOWNLOAD), "Download")
        self.assertEqual(_stage_label(EngineState.MEASURING_LOADED_LATENCY), "Loaded latency")

    def test_terminal_states(self):
        self.assertEqual(_stage_label(EngineState.COMPLETED), "Completed")
        self.assertEqual(_stage_label(EngineState.IDLE), "Idle")


class TestProgressDisplay(unittest.TestCase):
    def test_update_before_start_ignored(self):
        display = ProgressDisplay()
        display.update(MetricsSnapshot(progress=0.5))
        self.assertEqual(display.progress.tasks, [])


if __name__ == "__main__":
    unittest.main()
