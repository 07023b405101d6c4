"""Public API exports for the roster loader, diff engine, and report builder."""

from .config import ReconcileConfig, parse_detail_limit, parse_ignored_fields, parse_key_columns
from .errors import RosterConfigError, RosterError, RosterFormatError, RosterIOError, RosterSchemaError
from .models import Change, CompositeKey, DiffResult, Roster, Update, format_key
from .parser import load_both_rosters, load_roster, parse_line
from .reconcile import reconcile_rosters
from .report import Report, RunSnapshot, build_report, render_json, render_text, write_exports

__all__ = [
    "Change",
    "CompositeKey",
    "DiffResult",
    "ReconcileConfig",
    "Report",
    "Roster",
    "RosterConfigError",
    "RosterError",
    "RosterFormatError",
    "RosterIOError",
    "RosterSchemaError",
    "RunSnapshot",
    "Update",
    "build_report",
    "format_key",
    "load_both_rosters",
    "load_roster",
    "parse_detail_limit",
    "parse_ignored_fields",
    "parse_key_columns",
    "parse_line",
    "reconcile_rosters",
    "render_json",
    "render_text",
    "write_exports",
]
