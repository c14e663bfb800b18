"""Command line entry point for the habitat protection analysis."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Iterable

from fishery_habitat.config import load_config, region_sort_key
from fishery_habitat.errors import InputAlignmentError, ResidualGapError
from fishery_habitat.log import configure_logging, get_logger
from fishery_habitat.pipeline import RunSummary, run_analysis

LOGGER = get_logger(__name__)

EXIT_OK = 0
EXIT_VALIDATION = 1
EXIT_ALIGNMENT = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fishery-habitat",
        description="Depth-stratified habitat area and MPA protection per reporting region",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    parser.add_argument("--log-json", action="store_true", help="Emit logs in JSON format")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file")
    subcommands = parser.add_subparsers(dest="command", required=True)

    run = subcommands.add_parser("run", help="Gap-fill bathymetry and compute protection per vintage")
    run.add_argument("config", type=Path, help="YAML or JSON run configuration")
    run.add_argument("--no-plot", action="store_true", help="Skip the overview map")
    run.add_argument("--workers", type=int, default=None, help="Threads for per-region work")
    run.add_argument("--strict-gaps", action="store_true",
                     help="Abort if no-data cells remain after gap filling")
    return parser


def _print_summary(summary: RunSummary) -> None:
    print("\n" + "=" * 70)
    print("HABITAT PROTECTION ANALYSIS - Summary")
    print("=" * 70)
    print(f"  Composite raster: {summary.composite_path}")
    for name, result in summary.results.items():
        table = result.table
        print(f"\n  {name}: {len(table)} regions -> {result.path}")
        print(f"  {'Region':<10} {'Total km2':>12} {'Protected km2':>14} {'Fraction':>9}")
        print(f"  {'-' * 10} {'-' * 12} {'-' * 14} {'-' * 9}")
        for region_id, row in table.iterrows():
            print(f"  {str(region_id):<10} {row['total_area']:>12,.1f} "
                  f"{row['protected_area']:>14,.1f} {row['protected_fraction']:>9.3f}")
    for name, failure in summary.failures.items():
        print(f"\n  {name}: REJECTED, nothing written")
        for region_id in sorted(failure.failures, key=region_sort_key):
            reasons = failure.failures[region_id]
            print(f"    region {region_id}: {'; '.join(reasons)}")
    print(f"\n  Elapsed: {summary.elapsed_seconds:.1f} s")
    print("=" * 70)
    print("DONE" if summary.ok else "DONE WITH FAILURES")
    print("=" * 70)


def _handle_run(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    if args.no_plot:
        config.plot = False
    if args.workers is not None:
        config.workers = args.workers
    if args.strict_gaps:
        config.strict_gaps = True

    print("=" * 70)
    print("HABITAT PROTECTION ANALYSIS")
    print("=" * 70)
    try:
        summary = run_analysis(config, echo=print)
    except (InputAlignmentError, ResidualGapError) as exc:
        LOGGER.error("run aborted: %s", exc)
        print(f"\nABORTED: {exc}")
        return EXIT_ALIGNMENT
    _print_summary(summary)
    return EXIT_OK if summary.ok else EXIT_VALIDATION


def main(argv: Iterable[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    configure_logging(level=args.log_level, json_logs=args.log_json, log_file=args.log_file)

    if args.command == "run":
        return _handle_run(args)
    parser.error("Unknown command")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
