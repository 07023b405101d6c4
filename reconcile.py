"""Command-line runner for roster reconciliation.

This script loads the previous and current roster snapshots, reconciles them,
prints the text report to stdout, and optionally writes a JSON report and
per-category CSV exports.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from roster_reconciler import (
    ReconcileConfig,
    Report,
    RosterError,
    build_report,
    load_both_rosters,
    reconcile_rosters,
    write_exports,
)
from roster_reconciler.errors import RosterIOError
from roster_reconciler.normalize import KEY_NORMALIZE_MODES, VALUE_NORMALIZE_MODES

DEFAULT_PREVIOUS = Path("data/previous.csv")
DEFAULT_CURRENT = Path("data/current.csv")

logger = logging.getLogger("roster_reconciler.cli")


def build_report_from_paths(
    *,
    previous_path: Path,
    current_path: Path,
    config: ReconcileConfig,
) -> Report:
    """Load both rosters, reconcile them, and build the report aggregate."""

    previous, current = load_both_rosters(previous_path, current_path, config.key_columns, config.key_normalize)
    diff = reconcile_rosters(
        previous,
        current,
        ignored_fields=config.ignored_fields,
        value_normalize=config.value_normalize,
    )
    return build_report(previous, current, diff, config)


def write_report(report: Report, *, output_path: Path) -> None:
    """Write report JSON to disk."""

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(report.to_json(), encoding="utf-8")
    except OSError as exc:
        raise RosterIOError(f"Unable to write JSON report {output_path}: {exc}") from exc
    logger.info("Wrote JSON report: %s", output_path)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for report generation."""

    parser = argparse.ArgumentParser(description="Reconcile two roster CSV snapshots and report the differences.")
    parser.add_argument("--previous", type=Path, default=DEFAULT_PREVIOUS, help="Path to the previous roster CSV")
    parser.add_argument("--current", type=Path, default=DEFAULT_CURRENT, help="Path to the current roster CSV")
    parser.add_argument("--key", default=None, help="Comma-separated key column(s) (default: email)")
    parser.add_argument("--key-normalize", choices=KEY_NORMALIZE_MODES, default="none", help="Key case normalization")
    parser.add_argument(
        "--value-normalize",
        choices=VALUE_NORMALIZE_MODES,
        default="none",
        help="Whitespace normalization applied before comparing field values",
    )
    parser.add_argument("--ignore", default=None, help="Comma-separated fields excluded from change detection")
    parser.add_argument("--max-detail", default=None, help="Cap itemized lists at N entries (0 = unlimited)")
    parser.add_argument("--summary-only", action="store_true", help="Print only the header and summary sections")
    parser.add_argument("--json", type=Path, default=None, help="Write the JSON report to this path")
    parser.add_argument("--export-dir", type=Path, default=None, help="Write per-category CSV exports here")
    parser.add_argument("--export-unchanged", action="store_true", help="Also export unchanged.csv")
    parser.add_argument("--skip-updated-rows", action="store_true", help="Do not export updated_rows.csv")
    parser.add_argument("--skip-status", action="store_true", help="Do not export status.csv")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging verbosity (logs go to stderr)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Entrypoint for command-line execution."""

    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = ReconcileConfig.from_options(
            key=args.key,
            key_normalize=args.key_normalize,
            value_normalize=args.value_normalize,
            ignore=args.ignore,
            max_detail=args.max_detail,
            summary_only=args.summary_only,
        )
        report = build_report_from_paths(previous_path=args.previous, current_path=args.current, config=config)
        print(report.to_text(), end="")

        if args.json is not None:
            write_report(report, output_path=args.json)
        if args.export_dir is not None:
            write_exports(
                report,
                args.export_dir,
                include_unchanged=args.export_unchanged,
                include_updated_rows=not args.skip_updated_rows,
                include_status=not args.skip_status,
            )
    except RosterError as exc:
        logger.debug("Reconciliation failed", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
