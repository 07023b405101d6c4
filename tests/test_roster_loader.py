from __future__ import annotations

"""Roster loader edge-case tests.

These tests target behavior that is easy to break when modifying header
validation, key derivation, or the per-file diagnostic tallies.
"""

from collections.abc import Callable
from pathlib import Path

import pytest

from roster_reconciler.errors import (
    RosterConfigError,
    RosterFormatError,
    RosterIOError,
    RosterSchemaError,
)
from roster_reconciler.normalize import normalize_key_value
from roster_reconciler.parser import load_both_rosters, load_roster


def test_load_roster_counts_missing_key_parts_per_column(write_csv: Callable[[str, str], Path]) -> None:
    """Rows with any blank key column are invalid and tallied per missing column."""
    path = write_csv(
        "roster.csv",
        "email,cohort,name\n"
        ",Spring,NoEmail\n"
        "test@example.com,,MissingCohort\n"
        "ok@example.com,Fall,Ok\n",
    )

    roster = load_roster(path, ("email", "cohort"), "none")

    assert list(roster.rows) == [("ok@example.com", "Fall")]
    assert roster.invalid_count == 2
    assert roster.invalid_lines == (2, 3)
    assert dict(roster.missing_key_counts) == {"email": 1, "cohort": 1}
    assert roster.duplicate_count == 0


def test_load_roster_blank_key_is_invalid_and_collision_is_duplicate(write_csv: Callable[[str, str], Path]) -> None:
    """A blank key is invalid; a later colliding key is a duplicate and first wins."""
    path = write_csv(
        "roster.csv",
        "email,name\n"
        "a@x.com,First\n"
        "   ,Blank\n"
        "a@x.com,Second\n",
    )

    roster = load_roster(path, ("email",))

    assert roster.invalid_lines == (3,)
    assert roster.duplicate_count == 1
    assert roster.duplicate_keys == (("a@x.com",),)
    assert roster.rows[("a@x.com",)]["name"] == "First"


def test_load_roster_skips_blank_lines_but_keeps_physical_line_numbers(write_csv: Callable[[str, str], Path]) -> None:
    """Blank lines are not data rows, yet invalid line numbers refer to the file."""
    path = write_csv("roster.csv", "email,name\n\n   \na@x.com,A\n,Missing\n")

    roster = load_roster(path, ("email",))

    assert roster.total_rows == 2
    assert roster.invalid_lines == (5,)


def test_load_roster_pads_short_rows_and_truncates_long_rows(write_csv: Callable[[str, str], Path]) -> None:
    """Rows are fitted to the header width."""
    path = write_csv("roster.csv", "email,name,cohort\na@x.com\nb@x.com,B,Fall,EXTRA,MORE\n")

    roster = load_roster(path, ("email",))

    assert dict(roster.rows[("a@x.com",)]) == {"email": "a@x.com", "name": "", "cohort": ""}
    assert dict(roster.rows[("b@x.com",)]) == {"email": "b@x.com", "name": "B", "cohort": "Fall"}


def test_load_roster_tracks_non_empty_counts_over_all_data_rows(write_csv: Callable[[str, str], Path]) -> None:
    """Completeness counts include invalid and duplicate rows in their denominator."""
    path = write_csv(
        "roster.csv",
        "email,phone\n"
        "a@x.com,555\n"
        "a@x.com,\n"
        ",777\n"
        "b@x.com,  \n",
    )

    roster = load_roster(path, ("email",))

    assert roster.total_rows == 4
    assert dict(roster.non_empty_counts) == {"email": 3, "phone": 2}
    assert roster.completeness_ratio("phone") == 0.5


def test_load_roster_total_rows_equals_valid_invalid_and_duplicates(write_csv: Callable[[str, str], Path]) -> None:
    """Every counted data row is exactly one of valid, invalid, or duplicate."""
    path = write_csv(
        "roster.csv",
        "email,name\n"
        "a@x.com,A\n"
        "A@X.COM,A upper\n"
        ",none\n"
        "b@x.com,B\n"
        "\n"
        "a@x.com,again\n",
    )

    roster = load_roster(path, ("email",), "lower")

    assert roster.total_rows == roster.valid_rows + roster.invalid_count + roster.duplicate_count
    assert roster.valid_rows == 2
    assert roster.duplicate_count == 2


def test_load_roster_stored_rows_reproduce_their_composite_keys(write_csv: Callable[[str, str], Path]) -> None:
    """Re-deriving a key from a stored row's key columns yields the stored key."""
    path = write_csv(
        "roster.csv",
        "email,cohort,name\n"
        " A@X.com ,Fall,A\n"
        "b@x.com, SPRING ,B\n",
    )

    roster = load_roster(path, ("email", "cohort"), "lower")

    for key, row in roster.rows.items():
        rederived = tuple(normalize_key_value(row[column].strip(), "lower") for column in roster.key_columns)
        assert rederived == key
    assert ("a@x.com", "fall") in roster.rows


def test_load_roster_keeps_raw_values_unmodified(write_csv: Callable[[str, str], Path]) -> None:
    """Key normalization only affects the composite key, not the stored row."""
    path = write_csv("roster.csv", "email,name\n A@X.com ,  Padded  \n")

    roster = load_roster(path, ("email",), "lower")

    row = roster.rows[("a@x.com",)]
    # The line itself is trimmed before parsing, so only the inner padding survives.
    assert row["email"] == "A@X.com "
    assert row["name"] == "  Padded"


def test_load_roster_tolerates_utf8_bom_and_crlf(tmp_path) -> None:
    """A BOM does not leak into the first header name and CRLF endings are accepted."""
    path = tmp_path / "bom.csv"
    path.write_bytes("email,name\r\nz@x.com,Zoë\r\n".encode("utf-8-sig"))

    roster = load_roster(path, ("email",))

    assert roster.header == ("email", "name")
    assert roster.rows[("z@x.com",)]["name"] == "Zoë"


def test_load_roster_rosters_are_read_only(write_csv: Callable[[str, str], Path]) -> None:
    """Rows and tallies cannot be mutated after the roster is built."""
    roster = load_roster(write_csv("roster.csv", "email\na@x.com\n"), ("email",))

    with pytest.raises(TypeError):
        roster.rows[("b@x.com",)] = {"email": "b@x.com"}  # type: ignore[index]
    with pytest.raises(TypeError):
        roster.rows[("a@x.com",)]["email"] = "changed"  # type: ignore[index]


def test_load_roster_raises_for_missing_file(tmp_path) -> None:
    """Unreadable input fails with path context."""
    missing = tmp_path / "missing.csv"
    with pytest.raises(RosterIOError, match="missing.csv"):
        load_roster(missing, ("email",))


def test_load_roster_raises_for_empty_file(write_csv: Callable[[str, str], Path]) -> None:
    """A file with no lines at all is a format error."""
    with pytest.raises(RosterFormatError, match="CSV is empty"):
        load_roster(write_csv("empty.csv", ""), ("email",))


def test_load_roster_lists_every_missing_key_column(write_csv: Callable[[str, str], Path]) -> None:
    """Schema errors name each key column absent from the header."""
    path = write_csv("roster.csv", "name,cohort\nA,Fall\n")
    with pytest.raises(RosterSchemaError, match="Key column\\(s\\) email, id not found"):
        load_roster(path, ("email", "id"))


def test_load_roster_rejects_duplicate_header_fields(write_csv: Callable[[str, str], Path]) -> None:
    """Header field names must be unique."""
    path = write_csv("roster.csv", "email,name,name\na@x.com,A,B\n")
    with pytest.raises(RosterSchemaError, match="Duplicate header field"):
        load_roster(path, ("email",))


def test_load_roster_rejects_unknown_key_normalization(write_csv: Callable[[str, str], Path]) -> None:
    """Unknown key normalization is rejected before the file is used."""
    path = write_csv("roster.csv", "email\na@x.com\n")
    with pytest.raises(RosterConfigError, match="Invalid key normalization"):
        load_roster(path, ("email",), "title")


def test_load_both_rosters_uses_isolated_tallies(write_csv: Callable[[str, str], Path]) -> None:
    """Loading two files does not share accumulators between them."""
    previous_path = write_csv("previous.csv", "email\na@x.com\na@x.com\n")
    current_path = write_csv("current.csv", "email\n\nb@x.com\n")

    previous, current = load_both_rosters(previous_path, current_path, ("email",))

    assert previous.duplicate_count == 1
    assert current.duplicate_count == 0
    assert current.total_rows == 1
