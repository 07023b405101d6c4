"""Report aggregation plus text, JSON, and CSV renderers for a reconciliation run.

`build_report` computes every aggregate once. The renderers below are pure
functions of the resulting `Report`, so the text, JSON, export, and snapshot
outputs never disagree about counts or ordering.
"""

from __future__ import annotations

import csv
import json
import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, TypedDict

from .config import ReconcileConfig
from .errors import RosterIOError
from .models import CompositeKey, DiffResult, Roster, Update, format_key

logger = logging.getLogger(__name__)

DUPLICATE_POLICY = "first_wins"


class CompletenessEntry(TypedDict):
    """Non-empty value coverage of one header field."""

    non_empty: int
    total: int
    pct: float | None


class ReportSummary(TypedDict):
    """Aggregate counts and ratios; never affected by the detail limit."""

    total_previous: int
    total_current: int
    added: int
    removed: int
    updated: int
    unchanged: int
    shared: int
    duplicate_keys_previous: int
    duplicate_keys_current: int
    invalid_rows_previous: int
    invalid_rows_current: int
    net_change: int
    net_change_pct_previous: float | None
    added_pct_current: float | None
    removed_pct_previous: float | None
    updated_pct_shared: float | None
    unchanged_pct_shared: float | None


class RunSnapshot(TypedDict):
    """Read-only aggregate handed to an external run-log sink."""

    generated_at: str
    previous_path: str
    current_path: str
    key_columns: list[str]
    key_normalize: str
    value_normalize: str
    ignored_fields: list[str]
    summary_only: bool
    detail_limit: int | None
    summary: ReportSummary
    field_change_counts: dict[str, int]
    missing_key_counts_previous: dict[str, int]
    missing_key_counts_current: dict[str, int]
    completeness_previous: dict[str, CompletenessEntry]
    completeness_current: dict[str, CompletenessEntry]


def percent(numerator: int, denominator: int) -> float | None:
    """Return `numerator / denominator * 100`, or None for a zero denominator."""

    if denominator == 0:
        return None
    return numerator / denominator * 100.0


def format_percent(value: float | None) -> str:
    if value is None:
        return "n/a"
    return f"{value:.2f}%"


def _json_percent(value: float | None) -> float | None:
    return None if value is None else round(value, 2)


def field_completeness(roster: Roster) -> dict[str, CompletenessEntry]:
    """Return per-field completeness sorted by ratio ascending, then name."""

    def sort_key(name: str) -> tuple[float, str]:
        ratio = roster.completeness_ratio(name)
        return (math.inf if ratio is None else ratio, name)

    completeness: dict[str, CompletenessEntry] = {}
    for name in sorted(roster.header, key=sort_key):
        non_empty = roster.non_empty_counts.get(name, 0)
        completeness[name] = {
            "non_empty": non_empty,
            "total": roster.total_rows,
            "pct": percent(non_empty, roster.total_rows),
        }
    return completeness


def _frozen_completeness(roster: Roster) -> Mapping[str, Mapping[str, Any]]:
    return MappingProxyType(
        {name: MappingProxyType(dict(entry)) for name, entry in field_completeness(roster).items()}
    )


def _rank_counts(counts: Mapping[str, int]) -> tuple[tuple[str, int], ...]:
    # Stable sort: ties keep their first-seen order.
    return tuple(sorted(counts.items(), key=lambda item: -item[1]))


@dataclass(frozen=True, slots=True)
class Report:
    """Canonical, read-only aggregate of one reconciliation run."""

    previous: Roster
    current: Roster
    diff: DiffResult
    config: ReconcileConfig
    generated_at: datetime
    summary: Mapping[str, Any]
    added_keys: tuple[CompositeKey, ...]
    removed_keys: tuple[CompositeKey, ...]
    unchanged_keys: tuple[CompositeKey, ...]
    field_change_ranking: tuple[tuple[str, int], ...]
    missing_key_ranking_previous: tuple[tuple[str, int], ...]
    missing_key_ranking_current: tuple[tuple[str, int], ...]
    completeness_previous: Mapping[str, Mapping[str, Any]]
    completeness_current: Mapping[str, Mapping[str, Any]]

    @property
    def updates(self) -> tuple[Update, ...]:
        return self.diff.updates

    def shown_count(self, total: int) -> int:
        """Return how many itemized entries the detail limit allows."""

        if self.config.detail_limit <= 0:
            return total
        return min(total, self.config.detail_limit)

    def is_truncated(self, total: int) -> bool:
        return self.config.detail_limit > 0 and total > self.config.detail_limit

    def to_text(self) -> str:
        return render_text(self)

    def to_dict(self) -> dict[str, Any]:
        return report_to_dict(self)

    def to_json(self) -> str:
        return render_json(self)

    def snapshot(self) -> RunSnapshot:
        """Return every aggregate a persistence sink needs, without recomputation."""

        return {
            "generated_at": self.generated_at.isoformat(),
            "previous_path": str(self.previous.path),
            "current_path": str(self.current.path),
            "key_columns": list(self.config.key_columns),
            "key_normalize": self.config.key_normalize,
            "value_normalize": self.config.value_normalize,
            "ignored_fields": sorted(self.config.ignored_fields),
            "summary_only": self.config.summary_only,
            "detail_limit": self.config.detail_limit or None,
            "summary": ReportSummary(**self.summary),
            "field_change_counts": dict(self.diff.field_change_counts),
            "missing_key_counts_previous": dict(self.previous.missing_key_counts),
            "missing_key_counts_current": dict(self.current.missing_key_counts),
            "completeness_previous": {
                name: CompletenessEntry(**entry) for name, entry in self.completeness_previous.items()
            },
            "completeness_current": {
                name: CompletenessEntry(**entry) for name, entry in self.completeness_current.items()
            },
        }


def build_report(
    previous: Roster,
    current: Roster,
    diff: DiffResult,
    config: ReconcileConfig,
    *,
    generated_at: datetime | None = None,
) -> Report:
    """Assemble the read-only report aggregate for one run."""

    total_previous = previous.valid_rows
    total_current = current.valid_rows
    added = len(diff.added)
    removed = len(diff.removed)
    updated = len(diff.updates)
    unchanged = diff.unchanged_count
    shared = updated + unchanged
    net_change = total_current - total_previous

    summary: ReportSummary = {
        "total_previous": total_previous,
        "total_current": total_current,
        "added": added,
        "removed": removed,
        "updated": updated,
        "unchanged": unchanged,
        "shared": shared,
        "duplicate_keys_previous": previous.duplicate_count,
        "duplicate_keys_current": current.duplicate_count,
        "invalid_rows_previous": previous.invalid_count,
        "invalid_rows_current": current.invalid_count,
        "net_change": net_change,
        "net_change_pct_previous": percent(net_change, total_previous),
        "added_pct_current": percent(added, total_current),
        "removed_pct_previous": percent(removed, total_previous),
        "updated_pct_shared": percent(updated, shared),
        "unchanged_pct_shared": percent(unchanged, shared),
    }

    return Report(
        previous=previous,
        current=current,
        diff=diff,
        config=config,
        generated_at=generated_at or datetime.now(timezone.utc),
        summary=MappingProxyType(summary),
        added_keys=tuple(sorted(diff.added, key=format_key)),
        removed_keys=tuple(sorted(diff.removed, key=format_key)),
        unchanged_keys=tuple(sorted(diff.unchanged, key=format_key)),
        field_change_ranking=_rank_counts(diff.field_change_counts),
        missing_key_ranking_previous=_rank_counts(previous.missing_key_counts),
        missing_key_ranking_current=_rank_counts(current.missing_key_counts),
        completeness_previous=_frozen_completeness(previous),
        completeness_current=_frozen_completeness(current),
    )


# Text rendering


def _append_key_list(lines: list[str], report: Report, title: str, keys: Sequence[CompositeKey], bullet: str) -> None:
    if not keys:
        return
    shown = report.shown_count(len(keys))
    lines.append(f"{title} ({len(keys)}):")
    lines.extend(f"  {bullet} {format_key(key)}" for key in keys[:shown])
    if shown < len(keys):
        lines.append(f"  ... (showing {shown} of {len(keys)})")
    lines.append("")


def _append_side_lines(lines: list[str], previous: str, current: str) -> None:
    if previous:
        lines.append(f"  previous: {previous}")
    if current:
        lines.append(f"  current: {current}")


def _append_ranking(lines: list[str], ranking: Iterable[tuple[str, int]], indent: str) -> None:
    lines.extend(f"{indent}- {name}: {count}" for name, count in ranking)


def _append_completeness(lines: list[str], completeness: Mapping[str, Mapping[str, Any]], indent: str) -> None:
    for name, entry in completeness.items():
        lines.append(f"{indent}- {name}: {entry['non_empty']}/{entry['total']} ({format_percent(entry['pct'])})")


def render_text(report: Report) -> str:
    """Render the human-readable report."""

    config = report.config
    summary = report.summary
    previous = report.previous
    current = report.current
    diff = report.diff

    lines = [
        "Roster Reconciler Report",
        f"Previous: {previous.path}",
        f"Current: {current.path}",
        f"Key Columns: {', '.join(config.key_columns)}",
        f"Key Normalize: {config.key_normalize}",
        f"Value Normalize: {config.value_normalize}",
        f"Summary Only: {'yes' if config.summary_only else 'no'}",
        f"Detail Limit: {config.detail_limit_label}",
        f"Duplicate Policy: {DUPLICATE_POLICY}",
        f"Timestamp: {report.generated_at.isoformat()}",
        "",
        "Summary:",
    ]
    for name in (
        "total_previous",
        "total_current",
        "added",
        "removed",
        "updated",
        "unchanged",
        "duplicate_keys_previous",
        "duplicate_keys_current",
        "invalid_rows_previous",
        "invalid_rows_current",
        "net_change",
    ):
        lines.append(f"- {name}: {summary[name]}")
    for name in (
        "net_change_pct_previous",
        "added_pct_current",
        "removed_pct_previous",
        "updated_pct_shared",
        "unchanged_pct_shared",
    ):
        lines.append(f"- {name}: {format_percent(summary[name])}")
    lines.append("")

    if config.summary_only:
        return "\n".join(lines) + "\n"

    if config.ignored_fields:
        lines.append("Ignored Fields:")
        lines.extend(f"  - {name}" for name in sorted(config.ignored_fields))
        lines.append("")

    if diff.unknown_ignored_fields:
        lines.append("Unknown Ignored Fields:")
        lines.extend(f"  - {name}" for name in sorted(diff.unknown_ignored_fields))
        lines.append("")

    if diff.added_columns or diff.removed_columns:
        lines.append("Column Changes:")
        if diff.added_columns:
            lines.append(f"  added: {', '.join(sorted(diff.added_columns))}")
        if diff.removed_columns:
            lines.append(f"  removed: {', '.join(sorted(diff.removed_columns))}")
        lines.append("")

    if report.field_change_ranking:
        lines.append("Field Change Counts:")
        _append_ranking(lines, report.field_change_ranking, "  ")
        lines.append("")

    if previous.duplicate_keys or current.duplicate_keys:
        lines.append("Duplicate Key Values:")
        _append_side_lines(
            lines,
            ", ".join(format_key(key) for key in previous.duplicate_keys),
            ", ".join(format_key(key) for key in current.duplicate_keys),
        )
        lines.append("")

    if previous.invalid_lines or current.invalid_lines:
        lines.append("Invalid Rows (1-based row numbers):")
        _append_side_lines(
            lines,
            ", ".join(str(number) for number in previous.invalid_lines),
            ", ".join(str(number) for number in current.invalid_lines),
        )
        lines.append("")

    if report.missing_key_ranking_previous or report.missing_key_ranking_current:
        lines.append("Missing Key Field Counts:")
        if report.missing_key_ranking_previous:
            lines.append("  previous:")
            _append_ranking(lines, report.missing_key_ranking_previous, "    ")
        if report.missing_key_ranking_current:
            lines.append("  current:")
            _append_ranking(lines, report.missing_key_ranking_current, "    ")
        lines.append("")

    if previous.header or current.header:
        lines.append("Field Completeness (non-empty/total):")
        if previous.header:
            lines.append("  previous:")
            _append_completeness(lines, report.completeness_previous, "    ")
        if current.header:
            lines.append("  current:")
            _append_completeness(lines, report.completeness_current, "    ")
        lines.append("")

    _append_key_list(lines, report, "Added", report.added_keys, "+")
    _append_key_list(lines, report, "Removed", report.removed_keys, "-")

    if report.updates:
        shown = report.shown_count(len(report.updates))
        lines.append(f"Updated ({len(report.updates)}):")
        for update in report.updates[:shown]:
            lines.append(f"  * {format_key(update.key)}")
            for name, change in update.changes.items():
                lines.append(f'      {name}: "{change.before}" -> "{change.after}"')
        if shown < len(report.updates):
            lines.append(f"  ... (showing {shown} of {len(report.updates)})")
        lines.append("")

    return "\n".join(lines) + "\n"


# JSON rendering


def _completeness_json(completeness: Mapping[str, Mapping[str, Any]]) -> dict[str, dict[str, Any]]:
    return {
        name: {"non_empty": entry["non_empty"], "total": entry["total"], "pct": _json_percent(entry["pct"])}
        for name, entry in completeness.items()
    }


def report_to_dict(report: Report) -> dict[str, Any]:
    """Return the JSON-ready report payload.

    Set-like lists are sorted; `updated` keeps key order; duplicate key values
    keep occurrence order and invalid rows keep file order.
    """

    config = report.config
    summary = report.summary
    diff = report.diff
    limit = config.detail_limit if config.detail_limit > 0 else None

    return {
        "metadata": {
            "generated_at": report.generated_at.isoformat(),
            "previous": str(report.previous.path),
            "current": str(report.current.path),
            "key": ", ".join(config.key_columns),
            "key_columns": list(config.key_columns),
            "key_normalize": config.key_normalize,
            "value_normalize": config.value_normalize,
            "ignored_fields": sorted(config.ignored_fields),
            "unknown_ignored_fields": sorted(diff.unknown_ignored_fields),
            "summary_only": config.summary_only,
            "duplicate_policy": DUPLICATE_POLICY,
        },
        "detail": {
            "limit": limit,
            "truncated": {
                "added": report.is_truncated(summary["added"]),
                "removed": report.is_truncated(summary["removed"]),
                "updated": report.is_truncated(summary["updated"]),
            },
        },
        "summary": {
            "total_previous": summary["total_previous"],
            "total_current": summary["total_current"],
            "added": summary["added"],
            "removed": summary["removed"],
            "updated": summary["updated"],
            "unchanged": summary["unchanged"],
            "duplicate_keys_previous": summary["duplicate_keys_previous"],
            "duplicate_keys_current": summary["duplicate_keys_current"],
            "invalid_rows_previous": summary["invalid_rows_previous"],
            "invalid_rows_current": summary["invalid_rows_current"],
            "net_change": summary["net_change"],
            "net_change_pct_previous": _json_percent(summary["net_change_pct_previous"]),
        },
        "change_rates": {
            "added_pct_current": _json_percent(summary["added_pct_current"]),
            "removed_pct_previous": _json_percent(summary["removed_pct_previous"]),
            "updated_pct_shared": _json_percent(summary["updated_pct_shared"]),
            "unchanged_pct_shared": _json_percent(summary["unchanged_pct_shared"]),
        },
        "column_changes": {
            "added": sorted(diff.added_columns),
            "removed": sorted(diff.removed_columns),
        },
        "field_change_counts": dict(report.field_change_ranking),
        "duplicate_key_values": {
            "previous": [format_key(key) for key in report.previous.duplicate_keys],
            "current": [format_key(key) for key in report.current.duplicate_keys],
        },
        "missing_key_counts": {
            "previous": dict(report.missing_key_ranking_previous),
            "current": dict(report.missing_key_ranking_current),
        },
        "invalid_rows": {
            "previous": list(report.previous.invalid_lines),
            "current": list(report.current.invalid_lines),
        },
        "field_completeness": {
            "previous": _completeness_json(report.completeness_previous),
            "current": _completeness_json(report.completeness_current),
        },
        "added": [format_key(key) for key in report.added_keys[: report.shown_count(len(report.added_keys))]],
        "removed": [format_key(key) for key in report.removed_keys[: report.shown_count(len(report.removed_keys))]],
        "updated": [
            {
                "key": format_key(update.key),
                "changes": {
                    name: {"before": change.before, "after": change.after} for name, change in update.changes.items()
                },
            }
            for update in report.updates[: report.shown_count(len(report.updates))]
        ],
    }


def render_json(report: Report) -> str:
    """Render the report payload as an indented JSON document."""

    return json.dumps(report_to_dict(report), indent=2, ensure_ascii=False) + "\n"


# CSV exports


def _write_csv(path: Path, header: Sequence[str], rows: Iterable[Sequence[str]]) -> int:
    count = 0
    try:
        with path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
            writer.writerow(header)
            for row in rows:
                writer.writerow(row)
                count += 1
    except OSError as exc:
        raise RosterIOError(f"Unable to write export {path}: {exc}") from exc
    logger.info("Wrote %d row(s) to %s", count, path)
    return count


def _roster_rows(roster: Roster, keys: Iterable[CompositeKey]) -> Iterable[list[str]]:
    for key in keys:
        row = roster.rows.get(key)
        if row is None:
            continue
        yield [row.get(name, "") for name in roster.header]


def _updated_field_rows(report: Report) -> Iterable[list[str]]:
    for update in report.updates:
        for name, change in update.changes.items():
            yield [format_key(update.key), name, change.before, change.after]


def _updated_full_rows(report: Report) -> Iterable[list[str]]:
    for update in report.updates:
        previous_row = report.previous.rows.get(update.key)
        current_row = report.current.rows.get(update.key)
        if previous_row is None or current_row is None:
            continue
        values = [format_key(update.key)]
        for name in report.diff.combined_header:
            values.append(previous_row.get(name, ""))
            values.append(current_row.get(name, ""))
        yield values


def _status_rows(report: Report) -> Iterable[list[str]]:
    statuses: dict[CompositeKey, tuple[str, str]] = {}
    for key in report.added_keys:
        statuses[key] = ("added", "")
    for key in report.removed_keys:
        statuses[key] = ("removed", "")
    for update in report.updates:
        statuses[update.key] = ("updated", ";".join(update.changed_fields))
    for key in report.unchanged_keys:
        statuses[key] = ("unchanged", "")
    for key in sorted(statuses, key=format_key):
        status, changed_fields = statuses[key]
        yield [format_key(key), status, changed_fields]


def write_exports(
    report: Report,
    export_dir: str | Path,
    *,
    include_unchanged: bool = False,
    include_updated_rows: bool = True,
    include_status: bool = True,
) -> list[Path]:
    """Write per-category CSV exports and return the written paths.

    Files are written one after another; a failure part-way leaves the
    earlier files in place.
    """

    directory = Path(export_dir)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RosterIOError(f"Unable to create export directory {directory}: {exc}") from exc

    written: list[Path] = []

    def export(name: str, header: Sequence[str], rows: Iterable[Sequence[str]]) -> None:
        path = directory / name
        _write_csv(path, header, rows)
        written.append(path)

    export("added.csv", report.current.header, _roster_rows(report.current, report.added_keys))
    export("removed.csv", report.previous.header, _roster_rows(report.previous, report.removed_keys))
    export("updated.csv", ("key", "field", "before", "after"), _updated_field_rows(report))
    if include_unchanged:
        export("unchanged.csv", report.current.header, _roster_rows(report.current, report.unchanged_keys))
    if include_updated_rows:
        header = ["key"]
        for name in report.diff.combined_header:
            header.extend((f"{name}_before", f"{name}_after"))
        export("updated_rows.csv", header, _updated_full_rows(report))
    if include_status:
        export("status.csv", ("key", "status", "changed_fields"), _status_rows(report))
    return written
