from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from counters.cache_probe import probe_host
from counters.event_catalog import recording_events
from counters.perf_record import record_counters
from counters.record_files import resolve_record_path
from perfdiag.config import load_analysis_config
from perfdiag.console import ANSI_THEME, PLAIN_THEME, ConsoleUI
from perfdiag.errors import PerfDiagError
from perfdiag.pipeline import analyze_record, compare_records

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="perfdiag",
        description="Record and analyse perf stat hardware counters",
    )
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "--record-cache-metrics",
        action="store_true",
        help="Run a command under perf stat and save the counters",
    )
    mode.add_argument(
        "--visualize",
        action="store_true",
        help="Display a record with derived metrics and insights",
    )
    mode.add_argument(
        "--compare",
        nargs=2,
        metavar=("BASELINE", "OPTIMIZED"),
        help="Compare two records",
    )
    parser.add_argument("--output", help="Record name to write (<name>.txt)")
    parser.add_argument("--input", help="Record name to visualize")
    parser.add_argument(
        "--no-insights",
        action="store_true",
        help="Skip the insights and bottleneck summary",
    )
    parser.add_argument(
        "--system-wide",
        action="store_true",
        help="Record all CPUs (-a); enables top-down events",
    )
    parser.add_argument("--config", default=None, help="Analysis config YAML")
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI colors")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Diagnostic log level (stderr)",
    )
    parser.add_argument(
        "--run",
        nargs=argparse.REMAINDER,
        default=[],
        help="Command to profile; everything after --run is passed through",
    )
    return parser


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _error(message: str) -> int:
    sys.stderr.write(f"Error: {message}\n")
    return 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)

    use_color = not args.no_color and sys.stdout.isatty()
    ui = ConsoleUI(stream=sys.stdout, theme=ANSI_THEME if use_color else PLAIN_THEME)

    try:
        config = load_analysis_config(Path(args.config) if args.config else None)

        if args.record_cache_metrics:
            if not args.output:
                return _error("--output <name> is required")
            if not args.run:
                return _error("--run <executable> is required")
            output_path = resolve_record_path(args.output)
            ui.recording_started(
                str(output_path),
                args.run,
                recording_events(system_wide=args.system_wide),
                dict(os.environ),
            )
            output = record_counters(args.run, output_path, system_wide=args.system_wide)
            ui.recording_done(output, args.output)
            return 0

        if args.visualize:
            if not args.input:
                return _error("--input <name> is required")
            host = None if args.no_insights else probe_host()
            analysis = analyze_record(args.input, config, host, with_insights=not args.no_insights)
            ui.report(analysis.snapshot, analysis.derived, analysis.report, host)
            return 0

        baseline_name, candidate_name = args.compare
        result, baseline_path, candidate_path = compare_records(baseline_name, candidate_name, config)
        ui.comparison(result, str(baseline_path), str(candidate_path))
        return 0
    except PerfDiagError as exc:
        logger.debug("Aborted", exc_info=True)
        return _error(str(exc))


if __name__ == "__main__":
    raise SystemExit(main())
