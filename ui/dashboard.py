"""
Rich-based terminal dashboard for speed-test results.

All formatting helpers live in ``speedprobe.stats`` -- this module only
does presentation via the ``rich`` library.
"""
from __future__ import annotations

from typing import Optional, Sequence

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from speedprobe.config import TestConfiguration
from speedprobe.metrics import EngineState, MetricsSnapshot
from speedprobe.result import TestResult
from speedprobe.scoring import LEVEL_COLORS, AimScores
from speedprobe.stats import format_data_usage, format_latency, format_speed

console = Console()


# ---------------------------------------------------------------------------
# Histogram helper
# ---------------------------------------------------------------------------

_BARS = "▁▂▃▄▅▆▇█"


def create_histogram(values: Sequence[float]) -> str:
    """Return a single-line Unicode bar-chart."""
    if not values:
        return "No data"

    lo, hi = min(values), max(values)
    span = hi - lo if hi > lo else 1.0
    top = len(_BARS) - 1
    return "".join(_BARS[min(int((v - lo) / span * top), top)] for v in values)


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------

def print_header() -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]speedprobe[/bold cyan]\n"
            "[dim]Latency, throughput and fit-for-purpose scores[/dim]",
            border_style="cyan",
        )
    )
    console.print()


def print_config(config: TestConfiguration) -> None:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column(style="dim")
    table.add_column(style="bold")
    table.add_row("Download sizes:", ", ".join(format_data_usage(s) for s in config.download_sizes))
    table.add_row("Upload sizes:", ", ".join(format_data_usage(s) for s in config.upload_sizes))
    table.add_row("Connections:", str(config.connections))
    table.add_row("Latency samples:", str(config.latency_samples))
    table.add_row("Timeout:", f"{config.timeout:.0f} s")
    console.print(Panel(table, title="[bold]Test Plan[/bold]", border_style="blue"))


def print_speed_history(snapshot: MetricsSnapshot) -> None:
    """Sparkline panels of the per-connection speed history (MB/s)."""
    for title, values, color in (
        ("Download Samples", snapshot.download_history, "green"),
        ("Upload Samples", snapshot.upload_history, "blue"),
    ):
        if not values:
            continue
        console.print(
            Panel(
                f"[{color}]{create_histogram(values)}[/{color}]\n"
                f"[dim]Min: {min(values):.2f} MB/s  Max: {max(values):.2f} MB/s[/dim]",
                title=title,
            )
        )


def print_aim_scores(scores: AimScores) -> None:
    table = Table(title="Fit for Purpose", box=box.ROUNDED)
    table.add_column("Use case", style="bold")
    table.add_column("Rating", justify="right")

    for label, level in (
        ("Streaming", scores.streaming),
        ("Gaming", scores.gaming),
        ("Video calls", scores.rtc),
    ):
        color = LEVEL_COLORS.get(level, "white")
        table.add_row(label, f"[{color}]{level}[/{color}]")

    console.print(table)


def print_final_results(result: TestResult) -> None:
    origin = " / ".join(p for p in (result.network_type, result.isp_name) if p)
    heading = f"[bold cyan]Network:[/bold cyan] {origin}\n\n" if origin else ""
    console.print()
    console.print(
        Panel.fit(
            f"{heading}"
            f"[bold white]   Latency:[/bold white]  [bold yellow]{format_latency(result.latency_ms)}"
            f"[/bold yellow]  [dim](jitter: {result.jitter_ms:.2f} ms, "
            f"loss: {result.packet_loss_percent:.1f}%)[/dim]\n"
            f"[bold white]   Download:[/bold white]  [bold green]"
            f"{format_speed(result.download_bps, use_bits=True)}[/bold green]\n"
            f"[bold white]   Upload:[/bold white]  [bold blue]"
            f"{format_speed(result.upload_bps, use_bits=True)}[/bold blue]\n"
            f"[bold white]   Loaded:[/bold white]  {format_latency(result.loaded_download_latency_ms)}"
            f" [dim](upload ~{format_latency(result.loaded_upload_latency_ms)}, estimated)[/dim]",
            title="[bold]Results[/bold]",
            border_style="cyan",
        )
    )
    console.print()


# ---------------------------------------------------------------------------
# Progress display
# ---------------------------------------------------------------------------

_STAGE_LABELS = {
    EngineState.MEASURING_UNLOADED_LATENCY: "Latency",
    EngineState.MEASURING_DOWNLOAD: "Download",
    EngineState.MEASURING_UPLOAD: "Upload",
    EngineState.MEASURING_LOADED_LATENCY: "Loaded latency",
}


class ProgressDisplay:
    """
    Manages a ``rich`` progress bar fed by live metric snapshots.

    Pass ``update`` to ``SpeedTestEngine.subscribe``.
    """

    def __init__(self) -> None:
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.description:<15}"),
            BarColumn(bar_width=40),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("[bold cyan]{task.fields[reading]}[/bold cyan]"),
            TimeElapsedColumn(),
            console=console,
        )
        self._task_id = None
        self._last: Optional[MetricsSnapshot] = None

    def start(self) -> None:
        self.progress.start()
        self._task_id = self.progress.add_task("Starting", total=100, reading="")
        self._last = None

    def update(self, snap: MetricsSnapshot) -> None:
        if self._task_id is None:
            return
        # Debounce: only redraw when something visible changed
        if self._last is not None and not _visibly_changed(self._last, snap):
            return
        self.progress.update(
            self._task_id,
            completed=snap.progress * 100,
            description=_stage_label(snap.state),
            reading=format_reading(snap),
        )
        self._last = snap

    def stop(self) -> None:
        self.progress.stop()
        self._task_id = None


def _stage_label(state: EngineState) -> str:
    if state.in_progress:
        return _STAGE_LABELS[state]
    return state.value.capitalize()


def format_reading(snap: MetricsSnapshot) -> str:
    """The live number worth showing for the current stage."""
    if snap.state is EngineState.MEASURING_DOWNLOAD:
        return format_speed(snap.download_speed, use_bits=True) if snap.download_speed > 0 else "..."
    if snap.state is EngineState.MEASURING_UPLOAD:
        return format_speed(snap.upload_speed, use_bits=True) if snap.upload_speed > 0 else "..."
    if snap.latency > 0:
        return f"{format_latency(snap.latency)} (jitter {snap.jitter:.1f} ms)"
    return "..."


def _visibly_changed(old: MetricsSnapshot, new: MetricsSnapshot) -> bool:
    return (
        old.state is not new.state
        or new.progress - old.progress >= 0.01
        or format_reading(old) != format_reading(new)
    )
