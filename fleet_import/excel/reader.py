from __future__ import annotations

import csv
from pathlib import Path
from typing import Any

import pandas as pd

"""Spreadsheet decoder adapter.

Reads the FIRST sheet of a workbook (or a CSV file) as a raw 2-D grid.
No header is applied and no type coercion is done here: numbers, strings and
date cells are passed through as the decoding library returns them. Header
detection happens later in excel.header.
"""

__all__ = [
    "RawGrid",
    "SheetReadError",
    "SUPPORTED_SUFFIXES",
    "read_raw_grid",
]

RawGrid = list[list[Any]]

SUPPORTED_SUFFIXES = (".xlsx", ".xls", ".csv")


class SheetReadError(Exception):
    """Raised when the file cannot be decoded into a grid."""


def _csv_width(path: Path) -> int:
    # タイトル行は列数が少ないため、最も広い行に合わせる
    with path.open(newline="", encoding="utf-8-sig") as f:
        return max((len(row) for row in csv.reader(f)), default=0)


def _frame_to_grid(df: pd.DataFrame) -> RawGrid:
    return [list(row) for row in df.itertuples(index=False, name=None)]


def read_raw_grid(path: Path, sheet_name: str | int | None = None) -> RawGrid:
    """Read one sheet as a list of rows of raw cell values.

    Parameters
    ----------
    path: .xlsx / .xls / .csv ファイルパス
    sheet_name: 対象シート (None なら先頭シート。CSV では無視)
    """
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise SheetReadError(f"unsupported file type: {path.name}")
    if not path.exists():
        raise SheetReadError(f"file not found: {path}")

    try:
        if suffix == ".csv":
            # 文字列のまま読む (日付/数値の解釈は normalize 側で行う)
            width = _csv_width(path)
            if width == 0:
                return []
            df = pd.read_csv(
                path,
                header=None,
                names=range(width),
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
                encoding="utf-8-sig",
            )
        else:
            with pd.ExcelFile(path) as xls:
                if not xls.sheet_names:
                    return []
                target = xls.sheet_names[0] if sheet_name is None else sheet_name
                df = xls.parse(target, header=None, dtype=object)
    except pd.errors.EmptyDataError:
        return []
    except Exception as e:
        raise SheetReadError(f"failed to read {path.name}: {e}") from e

    return _frame_to_grid(df)
