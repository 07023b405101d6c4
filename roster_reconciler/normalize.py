"""Normalization policies for composite keys and compared field values."""

from __future__ import annotations

import re
from typing import Literal, TypeAlias

from .errors import RosterConfigError

KeyNormalize: TypeAlias = Literal["none", "lower", "upper"]
ValueNormalize: TypeAlias = Literal["none", "trim", "collapse"]

KEY_NORMALIZE_MODES: tuple[str, ...] = ("none", "lower", "upper")
VALUE_NORMALIZE_MODES: tuple[str, ...] = ("none", "trim", "collapse")

_WHITESPACE_RUN_RE = re.compile(r"\s+")


def validate_key_normalize(mode: str) -> KeyNormalize:
    """Return `mode` unchanged when it is a supported key normalization."""

    if mode not in KEY_NORMALIZE_MODES:
        raise RosterConfigError(f"Invalid key normalization: {mode!r} (use {'|'.join(KEY_NORMALIZE_MODES)})")
    return mode  # type: ignore[return-value]


def validate_value_normalize(mode: str) -> ValueNormalize:
    """Return `mode` unchanged when it is a supported value normalization."""

    if mode not in VALUE_NORMALIZE_MODES:
        raise RosterConfigError(f"Invalid value normalization: {mode!r} (use {'|'.join(VALUE_NORMALIZE_MODES)})")
    return mode  # type: ignore[return-value]


def normalize_key_value(value: str | None, mode: str) -> str:
    """Apply key-column case normalization to an already trimmed value."""

    if value is None:
        return ""
    if mode == "lower":
        return value.lower()
    if mode == "upper":
        return value.upper()
    return value


def normalize_field_value(value: str | None, mode: str) -> str:
    """Return the comparison form of a raw field value.

    `trim` strips outer whitespace; `collapse` also folds internal whitespace
    runs to a single space. The raw value itself is never modified.
    """

    if value is None:
        return ""
    if mode == "trim":
        return value.strip()
    if mode == "collapse":
        return _WHITESPACE_RUN_RE.sub(" ", value.strip())
    return value
