"""Diff engine comparing two loaded rosters by composite key."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from types import MappingProxyType

from .models import Change, CompositeKey, DiffResult, Roster, Row, Update, format_key
from .normalize import normalize_field_value, validate_value_normalize

logger = logging.getLogger(__name__)


def comparable_fields(previous: Roster, current: Roster, ignored_fields: Iterable[str] = ()) -> list[str]:
    """Return fields in previous-header order present in both headers and not ignored."""

    ignored = set(ignored_fields)
    current_fields = set(current.header)
    return [name for name in previous.header if name in current_fields and name not in ignored]


def combined_header(previous: Roster, current: Roster) -> list[str]:
    """Return the previous header followed by fields only the current header has."""

    fields = list(previous.header)
    seen = set(fields)
    for name in current.header:
        if name not in seen:
            fields.append(name)
            seen.add(name)
    return fields


def diff_row(
    previous_row: Row,
    current_row: Row,
    fields: Iterable[str],
    *,
    value_normalize: str = "none",
) -> dict[str, Change]:
    """Return changed fields between two rows, keeping raw values in each `Change`."""

    changes: dict[str, Change] = {}
    for name in fields:
        before = previous_row.get(name, "")
        after = current_row.get(name, "")
        if normalize_field_value(before, value_normalize) != normalize_field_value(after, value_normalize):
            changes[name] = Change(before=before, after=after)
    return changes


def reconcile_rosters(
    previous: Roster,
    current: Roster,
    *,
    ignored_fields: Iterable[str] = (),
    value_normalize: str = "none",
) -> DiffResult:
    """Reconcile two rosters into added, removed, updated, and unchanged keys.

    Shared keys are visited in ascending rendered-key order, so per-field change
    counters see fields in a reproducible first-seen order and `updates`
    come out sorted by rendered key.
    """

    validate_value_normalize(value_normalize)
    ignored = frozenset(ignored_fields)

    previous_keys = set(previous.rows)
    current_keys = set(current.rows)
    shared_keys = previous_keys & current_keys

    previous_columns = set(previous.header)
    current_columns = set(current.header)
    unknown_ignored = ignored - (previous_columns | current_columns)
    if unknown_ignored:
        logger.warning("Ignored field(s) not present in either header: %s", ", ".join(sorted(unknown_ignored)))

    fields = comparable_fields(previous, current, ignored)

    updates: list[Update] = []
    unchanged: set[CompositeKey] = set()
    field_change_counts: dict[str, int] = {}

    for key in sorted(shared_keys, key=format_key):
        changes = diff_row(previous.rows[key], current.rows[key], fields, value_normalize=value_normalize)
        if not changes:
            unchanged.add(key)
            continue
        for name in changes:
            field_change_counts[name] = field_change_counts.get(name, 0) + 1
        updates.append(Update(key=key, changes=MappingProxyType(changes)))

    updates.sort(key=lambda update: format_key(update.key))

    result = DiffResult(
        added=frozenset(current_keys - previous_keys),
        removed=frozenset(previous_keys - current_keys),
        unchanged=frozenset(unchanged),
        updates=tuple(updates),
        added_columns=frozenset(current_columns - previous_columns),
        removed_columns=frozenset(previous_columns - current_columns),
        unknown_ignored_fields=frozenset(unknown_ignored),
        comparable_fields=tuple(fields),
        field_change_counts=MappingProxyType(field_change_counts),
        combined_header=tuple(combined_header(previous, current)),
        ignored_fields=ignored,
    )
    logger.info(
        "Reconciled %s -> %s: %d added, %d removed, %d updated, %d unchanged",
        previous.path,
        current.path,
        len(result.added),
        len(result.removed),
        len(result.updates),
        result.unchanged_count,
    )
    return result
