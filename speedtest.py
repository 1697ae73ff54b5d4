#!/usr/bin/env python3
"""
speedprobe CLI -- run the speed-test engine from the terminal.

Usage::

    python speedtest.py                        # rich dashboard
    python speedtest.py --simple               # plain text
    python speedtest.py --json                 # JSON to stdout
    python speedtest.py -o result.json         # save to file
    python speedtest.py --csv log.csv          # append CSV row
    python speedtest.py --connections 8        # wider size waves
    python speedtest.py --network-type Wi-Fi --isp "Example ISP"
    python speedtest.py --json --details       # include per-size detail
    python speedtest.py --set connections=8    # store a default
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from typing import Any, Dict, Optional

from rich.logging import RichHandler

from speedprobe.config import (
    TestConfiguration,
    config_path,
    load_config,
    load_test_configuration,
    set_config_value,
)
from speedprobe.engine import SpeedTestEngine
from speedprobe.errors import ConfigError, SpeedTestError, TestCancelledError
from speedprobe.result import TestResult
from speedprobe.scoring import calculate_aim_scores
from ui.dashboard import (
    ProgressDisplay,
    console,
    print_aim_scores,
    print_config,
    print_final_results,
    print_header,
    print_speed_history,
)
from ui.output import (
    create_result_json,
    format_csv_header,
    format_csv_row,
    format_text_result,
    save_json,
)


# ---------------------------------------------------------------------------
# Setup helpers
# ---------------------------------------------------------------------------

def _configure_logging(verbose: bool, debug: bool, rich_output: bool) -> None:
    level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    if rich_output:
        handler: logging.Handler = RichHandler(console=console, show_path=False)
        fmt = "%(message)s"
    else:
        handler = logging.StreamHandler(sys.stderr)
        fmt = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
    logging.basicConfig(level=level, format=fmt, datefmt="%H:%M:%S", handlers=[handler])


def _build_config(args: argparse.Namespace) -> TestConfiguration:
    """Stored settings overlaid with command-line options."""
    return load_test_configuration(
        connections=args.connections,
        latency_samples=args.latency_samples,
        timeout=args.timeout,
        download_url=args.download_url,
        upload_url=args.upload_url,
        latency_url=args.latency_url,
    )


def _apply_setting(assignment: str) -> str:
    """Persist one ``KEY=VALUE`` setting; VALUE is parsed as JSON when it can be."""
    key, sep, raw = assignment.partition("=")
    if not sep:
        raise ConfigError(f"expected KEY=VALUE, got {assignment!r}")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw
    return set_config_value(key.strip(), value)


def _install_cancel_handler(engine: SpeedTestEngine) -> None:
    """Route Ctrl-C to ``engine.cancel()`` so the run stops cleanly."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, engine.cancel)
    except (NotImplementedError, RuntimeError):
        pass  # not supported on this platform; KeyboardInterrupt still works


# ---------------------------------------------------------------------------
# Core test runner
# ---------------------------------------------------------------------------

async def run_speedtest(
    config: TestConfiguration,
    *,
    json_output: bool = False,
    output_file: Optional[str] = None,
    csv_file: Optional[str] = None,
    simple: bool = False,
    details: bool = False,
    network_type: str = "",
    isp_name: str = "",
) -> Dict[str, Any]:
    """Execute one engine run and return a JSON-serialisable dict."""

    show_ui = not json_output and not simple
    engine = SpeedTestEngine(config)
    _install_cancel_handler(engine)

    if show_ui:
        print_header()
        print_config(config)

    progress: Optional[ProgressDisplay] = None
    unsubscribe = None
    if show_ui:
        progress = ProgressDisplay()
        progress.start()
        unsubscribe = engine.subscribe(progress.update)

    try:
        result = await engine.run_test(network_type=network_type, isp_name=isp_name)
    finally:
        if unsubscribe:
            unsubscribe()
        if progress:
            progress.stop()

    scores = calculate_aim_scores(result)

    if show_ui:
        print_speed_history(engine.snapshot())
        print_final_results(result)
        print_aim_scores(scores)
    elif simple:
        print(format_text_result(result, scores))

    result_json = create_result_json(result, scores, details=engine.details if details else None)

    if json_output:
        print(json.dumps(result_json, indent=2))

    if output_file:
        save_json(result_json, output_file)
        if not json_output:
            console.print(f"\n[green]Results saved to:[/green] {output_file}")

    if csv_file:
        _append_csv(csv_file, result)
        if not json_output:
            console.print(f"[green]CSV row appended to:[/green] {csv_file}")

    return result_json


def _append_csv(path: str, result: TestResult) -> None:
    """Append a single CSV row, writing the header if the file is new."""
    write_header = not os.path.isfile(path) or os.path.getsize(path) == 0
    with open(path, "a", encoding="utf-8") as fh:
        if write_header:
            fh.write(format_csv_header() + "\n")
        fh.write(format_csv_row(result) + "\n")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="speedprobe -- HTTP latency, throughput and AIM scores",
    )
    # Output modes
    parser.add_argument("--json", "-j", action="store_true", help="Output results as JSON")
    parser.add_argument("--output", "-o", type=str, metavar="FILE", help="Save results to JSON file")
    parser.add_argument("--csv", type=str, metavar="FILE", help="Append results as CSV row")
    parser.add_argument("--simple", "-s", action="store_true", help="Simple output mode (no dashboard)")
    parser.add_argument("--details", action="store_true", help="Include per-size and per-sample detail in JSON output")

    # Settings file
    parser.add_argument("--set", action="append", default=[], metavar="KEY=VALUE", help="Store a setting and exit (repeatable)")
    parser.add_argument("--show-config", action="store_true", help="Print stored settings and exit")

    # Test parameters (defaults come from the settings file)
    parser.add_argument("--connections", type=int, metavar="N", help="Concurrent requests per payload size")
    parser.add_argument("--latency-samples", type=int, metavar="N", help="Pings per latency stage")
    parser.add_argument("--timeout", type=float, metavar="SECS", help="Per-request timeout in seconds")
    parser.add_argument("--download-url", type=str, metavar="URL", help="Download endpoint")
    parser.add_argument("--upload-url", type=str, metavar="URL", help="Upload endpoint")
    parser.add_argument("--latency-url", type=str, metavar="URL", help="Latency endpoint")

    # Metadata attached to the result
    parser.add_argument("--network-type", type=str, default="", metavar="NAME", help="Network label, e.g. Wi-Fi")
    parser.add_argument("--isp", type=str, default="", metavar="NAME", help="ISP name")

    # Diagnostics
    parser.add_argument("--verbose", "-v", action="store_true", help="Log stage progress")
    parser.add_argument("--debug", action="store_true", help="Log every request")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    _configure_logging(args.verbose, args.debug, rich_output=not (args.json or args.simple))

    if args.set or args.show_config:
        try:
            for assignment in args.set:
                console.print(f"[green]Saved[/green] {assignment} to {_apply_setting(assignment)}")
        except ConfigError as exc:
            console.print(f"[red]Error: {exc}[/red]")
            sys.exit(1)
        if args.show_config:
            console.print(f"[dim]{config_path()}[/dim]")
            print(json.dumps(load_config(), indent=2))
        return

    try:
        config = _build_config(args)
    except ConfigError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)

    try:
        asyncio.run(
            run_speedtest(
                config,
                json_output=args.json,
                output_file=args.output,
                csv_file=args.csv,
                simple=args.simple,
                details=args.details,
                network_type=args.network_type,
                isp_name=args.isp,
            )
        )
    except (TestCancelledError, KeyboardInterrupt):
        console.print("\n[yellow]Test cancelled by user[/yellow]")
        sys.exit(130)
    except SpeedTestError as exc:
        console.print(f"\n[red]Error: {exc}[/red]")
        sys.exit(1)
    except OSError as exc:
        console.print(f"\n[red]Error: {exc}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
