from __future__ import annotations

from collections.abc import Collection, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..models.config_models import (
    DEFAULT_SECTION_MARKERS,
    DEFAULT_WEEKDAY_NAMES,
    ColumnSpec,
    Thresholds,
)
from ..models.row_data import CanonicalRow, SkippedRow
from .header import HeaderMatch
from .normalize import clean_cell, parse_flexible_date

"""Row extractor.

Walks the rows below the located header and turns each data row into a
CanonicalRow. Extraction ends at the first section-boundary row (a following
summary table, a "Total" line) or after a streak of garbage rows.
Rows whose date cannot be parsed are rejected here, before the validation
pipeline starts; no operator decision can make such a date valid.
"""

__all__ = [
    "Extraction",
    "INVALID_DATE_REASON",
    "extract_rows",
    "is_garbage_row",
]

INVALID_DATE_REASON = "Invalid or missing date"


@dataclass(frozen=True)
class Extraction:
    queue: list[CanonicalRow] = field(default_factory=list)
    skipped: list[SkippedRow] = field(default_factory=list)
    garbage_rows: int = 0  # 診断用: 読み飛ばした空行/曜日のみ行

    @property
    def is_empty(self) -> bool:
        return not self.queue


def is_garbage_row(row: Sequence[Any], weekday_names: Collection[str] = DEFAULT_WEEKDAY_NAMES) -> bool:
    """Blank rows and rows holding only a weekday label carry no transaction."""
    non_blank = [c for c in (clean_cell(v) for v in row) if c]
    if not non_blank:
        return True
    if len(non_blank) == 1 and non_blank[0].lower() in weekday_names:
        return True
    return False


def _is_section_boundary(row: Sequence[Any], markers: Sequence[str]) -> bool:
    first = clean_cell(row[0]).lower() if row else ""
    return any(m in first for m in markers)


def _cell(row: Sequence[Any], idx: int | None) -> Any:
    if idx is None or idx < 0 or idx >= len(row):
        return None
    return row[idx]


def extract_rows(
    grid: Sequence[Sequence[Any]],
    header: HeaderMatch,
    columns: Sequence[ColumnSpec],
    thresholds: Thresholds | None = None,
    section_markers: Sequence[str] = DEFAULT_SECTION_MARKERS,
    weekday_names: Collection[str] = DEFAULT_WEEKDAY_NAMES,
) -> Extraction:
    """Build the row queue from the rows following the header.

    Returns:
        Extraction with the queue (date already ISO) and the rows rejected for
        an unparsable date. An empty queue means "no valid rows".
    """
    limits = thresholds or Thresholds()
    queue: list[CanonicalRow] = []
    skipped: list[SkippedRow] = []
    blank_streak = 0
    garbage = 0

    for i in range(header.row_index + 1, len(grid)):
        row = grid[i]
        if _is_section_boundary(row, section_markers):
            break
        if is_garbage_row(row, weekday_names):
            garbage += 1
            blank_streak += 1
            if blank_streak > limits.max_blank_streak:
                break
            continue
        blank_streak = 0

        values = {spec.field: clean_cell(_cell(row, header.columns.get(spec.field))) for spec in columns}
        canonical = CanonicalRow(line=i + 1, **values)
        parsed_date = parse_flexible_date(_cell(row, header.columns.get("date")))
        if parsed_date:
            queue.append(canonical.with_date(parsed_date))
        elif any(clean_cell(v) for v in row):
            skipped.append(SkippedRow.from_row(canonical, INVALID_DATE_REASON))

    return Extraction(queue=queue, skipped=skipped, garbage_rows=garbage)
