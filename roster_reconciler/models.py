"""Core typed models shared by the loader, diff engine, and report builder."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeAlias

CompositeKey: TypeAlias = tuple[str, ...]
Row: TypeAlias = Mapping[str, str]

KEY_DISPLAY_SEPARATOR = "||"


def _quote_key_part(part: str) -> str:
    if KEY_DISPLAY_SEPARATOR in part or part.startswith(('"', "|")) or part.endswith("|"):
        return '"' + part.replace('"', '""') + '"'
    return part


def format_key(key: CompositeKey) -> str:
    """Render a composite key for reports and CSV exports.

    Single-column keys render verbatim. In multi-column keys, a part that
    contains the separator, starts with a quote, or starts or ends with a
    pipe is wrapped in double quotes (inner quotes doubled), so distinct keys
    never render to the same text. Rendered keys are also the sort order for
    every key listing.
    """

    if len(key) == 1:
        return key[0]
    return KEY_DISPLAY_SEPARATOR.join(_quote_key_part(part) for part in key)


@dataclass(frozen=True, slots=True)
class Roster:
    """Parsed, validated representation of one roster snapshot.

    `rows` preserves first-seen order and only holds rows whose key columns
    were all present and whose composite key had not been seen before.
    """

    path: Path
    header: tuple[str, ...]
    key_columns: tuple[str, ...]
    key_normalize: str
    rows: Mapping[CompositeKey, Row]
    duplicate_count: int
    duplicate_keys: tuple[CompositeKey, ...]
    invalid_count: int
    invalid_lines: tuple[int, ...]
    missing_key_counts: Mapping[str, int]
    total_rows: int
    non_empty_counts: Mapping[str, int]

    @property
    def valid_rows(self) -> int:
        """Return the number of rows kept under a unique composite key."""

        return len(self.rows)

    def completeness_ratio(self, field_name: str) -> float | None:
        """Return the share of data rows with a non-blank value for a field."""

        if self.total_rows == 0:
            return None
        return self.non_empty_counts.get(field_name, 0) / self.total_rows


@dataclass(frozen=True, slots=True)
class Change:
    """Raw before/after values of one field whose normalized forms differ."""

    before: str
    after: str


@dataclass(frozen=True, slots=True)
class Update:
    """A shared key with at least one changed comparable field."""

    key: CompositeKey
    changes: Mapping[str, Change]

    @property
    def changed_fields(self) -> list[str]:
        return list(self.changes)


@dataclass(frozen=True, slots=True)
class DiffResult:
    """Set-diff and field-level change output for two rosters."""

    added: frozenset[CompositeKey]
    removed: frozenset[CompositeKey]
    unchanged: frozenset[CompositeKey]
    updates: tuple[Update, ...]
    added_columns: frozenset[str]
    removed_columns: frozenset[str]
    unknown_ignored_fields: frozenset[str]
    comparable_fields: tuple[str, ...]
    field_change_counts: Mapping[str, int]
    combined_header: tuple[str, ...]
    ignored_fields: frozenset[str] = field(default_factory=frozenset)

    @property
    def shared_count(self) -> int:
        """Return the number of keys present in both rosters."""

        return len(self.updates) + len(self.unchanged)

    @property
    def unchanged_count(self) -> int:
        return len(self.unchanged)
