from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from ..models.config_models import ColumnSpec, Thresholds
from .normalize import clean_cell

"""Header row locator.

Third-party exports put the header anywhere in the first rows (titles, report
dates and blank lines come first). Each candidate row is scored by how many
logical fields have a synonym appearing inside one of its cells; the best
scoring row wins if it reaches the absolute floor.
"""

__all__ = [
    "ColumnIndexMap",
    "HeaderMatch",
    "locate_header",
    "match_columns",
]

ColumnIndexMap = dict[str, int | None]


@dataclass(frozen=True)
class HeaderMatch:
    row_index: int  # 0-based index into the raw grid
    columns: ColumnIndexMap
    score: int  # matched field count


def _normalize_row(row: Sequence[Any]) -> list[str]:
    return [clean_cell(cell).lower() for cell in row]


def _find_column(spec: ColumnSpec, cells: list[str]) -> int | None:
    synonyms = [s.lower() for s in spec.synonyms]
    for idx, cell in enumerate(cells):
        if any(s in cell for s in synonyms):
            return idx
    return None


def match_columns(row: Sequence[Any], columns: Sequence[ColumnSpec]) -> ColumnIndexMap:
    """Map each field to the first cell containing one of its synonyms."""
    cells = _normalize_row(row)
    return {spec.field: _find_column(spec, cells) for spec in columns}


def locate_header(
    grid: Sequence[Sequence[Any]],
    columns: Sequence[ColumnSpec],
    thresholds: Thresholds | None = None,
) -> HeaderMatch | None:
    """Find the header row of a raw grid.

    Returns None when no row within ``header_scan_rows`` matches at least
    ``min_header_matches`` fields. Ties keep the earliest row.
    """
    limits = thresholds or Thresholds()
    best_index = -1
    best_score = 0
    for i, row in enumerate(grid[: limits.header_scan_rows]):
        cells = _normalize_row(row)
        score = sum(1 for spec in columns if _find_column(spec, cells) is not None)
        if score > best_score:
            best_index = i
            best_score = score

    if best_index == -1 or best_score < limits.min_header_matches:
        return None

    mapping = match_columns(grid[best_index], columns)
    # 先頭列の見出しだけ壊れているファイルが多いため、日付列未検出時は列 0 を仮定
    if mapping.get("date") is None:
        mapping["date"] = 0
    return HeaderMatch(row_index=best_index, columns=mapping, score=best_score)
