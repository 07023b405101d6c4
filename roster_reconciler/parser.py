"""Delimited-line parser and roster loader."""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from types import MappingProxyType

from .errors import RosterFormatError, RosterIOError, RosterSchemaError
from .models import CompositeKey, Roster, format_key
from .normalize import normalize_key_value, validate_key_normalize

logger = logging.getLogger(__name__)

_QUOTE = '"'
_DELIMITER = ","


def parse_line(line: str) -> list[str]:
    """Split one delimited line into fields.

    Inside double quotes, commas and line breaks are literal and `""` is one
    literal quote. An unterminated quoted field runs to the end of the line.
    Malformed quoting never raises; it just yields a best-effort split.
    """

    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    index = 0
    length = len(line)

    while index < length:
        char = line[index]
        if in_quotes:
            if char == _QUOTE:
                if index + 1 < length and line[index + 1] == _QUOTE:
                    current.append(_QUOTE)
                    index += 1
                else:
                    in_quotes = False
            else:
                current.append(char)
        elif char == _QUOTE:
            in_quotes = True
        elif char == _DELIMITER:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
        index += 1

    fields.append("".join(current))
    return fields


def _read_lines(path: Path) -> list[str]:
    """Read a UTF-8 file into lines, accepting `\\n`, `\\r\\n`, and `\\r` endings."""

    try:
        with path.open("r", encoding="utf-8-sig") as handle:
            text = handle.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise RosterIOError(f"Unable to read roster file {path}: {exc}") from exc

    if text == "":
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def _fit_to_width(values: list[str], width: int) -> list[str]:
    if len(values) < width:
        return values + [""] * (width - len(values))
    return values[:width]


def load_roster(
    csv_path: str | Path,
    key_columns: tuple[str, ...] | list[str],
    key_normalize: str = "none",
) -> Roster:
    """Load one roster file into a validated, immutable `Roster`.

    Rows with any blank key column are counted invalid (with their 1-based
    line number, header being line 1). Rows whose composite key was already
    seen are counted as duplicates; the first occurrence wins.
    """

    path = Path(csv_path)
    key_columns = tuple(key_columns)
    validate_key_normalize(key_normalize)

    lines = _read_lines(path)
    if not lines:
        raise RosterFormatError(f"CSV is empty: {path}")

    header = parse_line(lines[0])
    duplicated_fields = sorted(name for name, count in Counter(header).items() if count > 1)
    if duplicated_fields:
        raise RosterSchemaError(f"Duplicate header field(s) {', '.join(duplicated_fields)} in: {path}")

    missing_columns = [column for column in key_columns if column not in header]
    if missing_columns:
        raise RosterSchemaError(f"Key column(s) {', '.join(missing_columns)} not found in: {path}")

    width = len(header)
    rows: dict[CompositeKey, dict[str, str]] = {}
    non_empty_counts: dict[str, int] = {name: 0 for name in header}
    missing_key_counts: dict[str, int] = {}
    duplicate_keys: list[CompositeKey] = []
    invalid_lines: list[int] = []
    total_rows = 0

    for line_number, line in enumerate(lines[1:], start=2):
        stripped = line.strip()
        if not stripped:
            continue
        total_rows += 1

        values = _fit_to_width(parse_line(stripped), width)
        row = dict(zip(header, values))
        for name, value in row.items():
            if value.strip():
                non_empty_counts[name] += 1

        key_parts: list[str] = []
        missing_key = False
        for column in key_columns:
            raw = row.get(column, "").strip()
            if not raw:
                missing_key = True
                missing_key_counts[column] = missing_key_counts.get(column, 0) + 1
            else:
                key_parts.append(normalize_key_value(raw, key_normalize))

        if missing_key:
            invalid_lines.append(line_number)
            continue

        key = tuple(key_parts)
        if key in rows:
            duplicate_keys.append(key)
            continue
        rows[key] = row

    logger.info(
        "Loaded %s: %d data rows, %d valid, %d invalid, %d duplicate",
        path,
        total_rows,
        len(rows),
        len(invalid_lines),
        len(duplicate_keys),
    )
    if duplicate_keys:
        logger.warning(
            "%s: %d duplicate key row(s) dropped, first occurrence kept (e.g. %s)",
            path,
            len(duplicate_keys),
            format_key(duplicate_keys[0]),
        )

    return Roster(
        path=path,
        header=tuple(header),
        key_columns=key_columns,
        key_normalize=key_normalize,
        rows=MappingProxyType({key: MappingProxyType(row) for key, row in rows.items()}),
        duplicate_count=len(duplicate_keys),
        duplicate_keys=tuple(duplicate_keys),
        invalid_count=len(invalid_lines),
        invalid_lines=tuple(invalid_lines),
        missing_key_counts=MappingProxyType(missing_key_counts),
        total_rows=total_rows,
        non_empty_counts=MappingProxyType(non_empty_counts),
    )


def load_both_rosters(
    previous_path: str | Path,
    current_path: str | Path,
    key_columns: tuple[str, ...] | list[str],
    key_normalize: str = "none",
) -> tuple[Roster, Roster]:
    """Load the previous and current snapshots with the same key settings."""

    return (
        load_roster(previous_path, key_columns, key_normalize),
        load_roster(current_path, key_columns, key_normalize),
    )
