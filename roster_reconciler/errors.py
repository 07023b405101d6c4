"""Error taxonomy for roster loading, configuration, and export failures."""

from __future__ import annotations


class RosterError(Exception):
    """Base class for terminal reconciliation errors."""


class RosterIOError(RosterError, OSError):
    """An input file could not be read or an output could not be written."""


class RosterFormatError(RosterError, ValueError):
    """An input file has no lines at all."""


class RosterSchemaError(RosterError, ValueError):
    """A declared key column is absent from a roster header."""


class RosterConfigError(RosterError, ValueError):
    """A configuration value is outside its accepted range."""
