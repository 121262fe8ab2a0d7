from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the daily-entry spreadsheet importer.

The column table is declarative: each logical field lists the header names
it may appear under. One generic matcher (excel.header) consumes it, so
adding a synonym never needs new code.
"""

__all__ = [
    "ColumnSpec",
    "Thresholds",
    "DatabaseConfig",
    "ImportConfig",
    "DEFAULT_COLUMNS",
    "DEFAULT_SECTION_MARKERS",
    "DEFAULT_WEEKDAY_NAMES",
]


@dataclass(frozen=True)
class ColumnSpec:
    """One logical column of the daily-entry sheet."""
    field: str  # CanonicalRow attribute
    label: str  # Operator-facing name
    synonyms: tuple[str, ...]  # Accepted header texts (substring match, case-insensitive)
    required: bool = False


DEFAULT_COLUMNS: tuple[ColumnSpec, ...] = (
    ColumnSpec("date", "Date", ("Date", "Trip Date", "Run Date"), required=True),
    ColumnSpec("day", "Day", ("Day", "Day Name")),
    ColumnSpec("vehicle", "Vehicle", ("Vehicle", "Vehicle No", "Vehicle Number")),
    ColumnSpec("driver", "Driver", ("Driver", "Driver Name"), required=True),
    ColumnSpec("shift", "Shift", ("Shift", "Shift Type"), required=True),
    ColumnSpec("qr_code", "QR CODE", ("QR CODE", "QRCode", "QR"), required=True),
    ColumnSpec("rent", "Rent", ("Rent", "Rental"), required=True),
    ColumnSpec("collection", "Collection", ("Collection", "Amount Collected", "Collected")),
    ColumnSpec("fuel", "Fuel", ("Fuel", "Fuel Expense", "Fuel Cost", "Encho Fuel")),
    ColumnSpec("due", "Due", ("Due", "Balance", "Pending", "Due Amount")),
    ColumnSpec(
        "payout", "Payout", ("Payout", "Pay Out", "Paid", "Payout Amount", "Pay to Driver")
    ),
)

# 他セクション (集計表など) の開始を示す先頭セル文字列
DEFAULT_SECTION_MARKERS: tuple[str, ...] = (
    "driver summary",
    "weekly status",
    "profit",
    "loss",
    "total",
)

DEFAULT_WEEKDAY_NAMES: frozenset[str] = frozenset(
    {
        "mon", "tue", "wed", "thu", "fri", "sat", "sun",
        "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    }
)


@dataclass(frozen=True)
class Thresholds:
    """Empirical cut-offs used by header detection and row extraction."""
    header_scan_rows: int = 30  # Rows inspected when looking for the header
    min_header_matches: int = 3  # Absolute floor of matched fields for a header row
    max_blank_streak: int = 3  # Consecutive garbage rows tolerated before the table ends


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback.

    Environment variables (DATABASE_URL / PGDSN / PG*) take precedence.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for one import run."""
    columns: tuple[ColumnSpec, ...] = DEFAULT_COLUMNS
    thresholds: Thresholds = field(default_factory=Thresholds)
    section_markers: tuple[str, ...] = DEFAULT_SECTION_MARKERS
    weekday_names: frozenset[str] = DEFAULT_WEEKDAY_NAMES
    skipped_log_directory: str = "./logs"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)

    def column(self, field_name: str) -> ColumnSpec | None:
        for spec in self.columns:
            if spec.field == field_name:
                return spec
        return None
