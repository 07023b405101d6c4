"""Run configuration consumed by the diff engine and report builder."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from .errors import RosterConfigError
from .normalize import validate_key_normalize, validate_value_normalize

DEFAULT_KEY_COLUMN = "email"


def _split_csv_option(raw: str | None) -> list[str]:
    if raw is None:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def parse_key_columns(raw: str | None) -> tuple[str, ...]:
    """Parse a comma-separated key column option, defaulting to `email`."""

    columns = _split_csv_option(raw)
    if not columns:
        return (DEFAULT_KEY_COLUMN,)
    return tuple(columns)


def parse_ignored_fields(raw: str | None) -> frozenset[str]:
    """Parse a comma-separated list of fields excluded from change detection."""

    return frozenset(_split_csv_option(raw))


def parse_detail_limit(raw: str | int | None) -> int:
    """Parse the detail limit; blank means unlimited (`0`)."""

    if raw is None:
        return 0
    if isinstance(raw, int):
        value = raw
    else:
        if not raw.strip():
            return 0
        try:
            value = int(raw.strip())
        except ValueError as exc:
            raise RosterConfigError(f"Invalid detail limit: {raw!r} (must be an integer)") from exc
    if value < 0:
        raise RosterConfigError(f"Invalid detail limit: {raw!r} (must be >= 0)")
    return value


@dataclass(frozen=True, slots=True)
class ReconcileConfig:
    """Validated options for one reconciliation run."""

    key_columns: tuple[str, ...] = (DEFAULT_KEY_COLUMN,)
    key_normalize: str = "none"
    value_normalize: str = "none"
    ignored_fields: frozenset[str] = field(default_factory=frozenset)
    detail_limit: int = 0
    summary_only: bool = False

    def __post_init__(self) -> None:
        # Accept any iterable for the collection fields but store immutable copies.
        object.__setattr__(self, "key_columns", tuple(self.key_columns))
        object.__setattr__(self, "ignored_fields", frozenset(self.ignored_fields))
        if not self.key_columns:
            raise RosterConfigError("At least one key column is required")
        validate_key_normalize(self.key_normalize)
        validate_value_normalize(self.value_normalize)
        if isinstance(self.detail_limit, bool) or not isinstance(self.detail_limit, int):
            raise RosterConfigError(f"Invalid detail limit: {self.detail_limit!r} (must be an integer)")
        if self.detail_limit < 0:
            raise RosterConfigError(f"Invalid detail limit: {self.detail_limit} (must be >= 0)")

    @classmethod
    def from_options(
        cls,
        *,
        key: str | None = None,
        key_normalize: str = "none",
        value_normalize: str = "none",
        ignore: str | Iterable[str] | None = None,
        max_detail: str | int | None = None,
        summary_only: bool = False,
    ) -> ReconcileConfig:
        """Build a config from raw command-line style option values."""

        if ignore is None or isinstance(ignore, str):
            ignored = parse_ignored_fields(ignore)
        else:
            ignored = frozenset(name.strip() for name in ignore if name.strip())
        return cls(
            key_columns=parse_key_columns(key),
            key_normalize=key_normalize,
            value_normalize=value_normalize,
            ignored_fields=ignored,
            detail_limit=parse_detail_limit(max_detail),
            summary_only=summary_only,
        )

    @property
    def detail_limit_label(self) -> str:
        return "none" if self.detail_limit <= 0 else str(self.detail_limit)
