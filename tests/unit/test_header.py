from __future__ import annotations

from fleet_import.excel.header import locate_header, match_columns
from fleet_import.models.config_models import DEFAULT_COLUMNS, Thresholds


def _grid_with_header_at(index: int, header: list[str]) -> list[list]:
    grid: list[list] = [["Fleet report"], [None, None]][:index]
    while len(grid) < index:
        grid.append([None])
    grid.append(header)
    grid.append(["31/01/2024", "John", "Day", "Q1", "900"])
    return grid


def test_header_found_below_title_rows():
    grid = _grid_with_header_at(2, ["Date", "Driver", "Shift", "QR CODE", "Rent"])
    match = locate_header(grid, DEFAULT_COLUMNS)
    assert match is not None
    assert match.row_index == 2
    assert match.score == 5
    assert match.columns["date"] == 0
    assert match.columns["driver"] == 1
    assert match.columns["qr_code"] == 3
    assert match.columns["vehicle"] is None


def test_synonyms_are_case_insensitive_substrings():
    row = ["trip date", "DRIVER NAME", "Vehicle Number", "Amount Collected", "Pay to Driver"]
    mapping = match_columns(row, DEFAULT_COLUMNS)
    assert mapping["date"] == 0
    assert mapping["driver"] == 1
    assert mapping["vehicle"] == 2
    assert mapping["collection"] == 3
    assert mapping["payout"] == 4


def test_below_floor_returns_none():
    grid = [["Date", "Driver"], ["31/01/2024", "John"]]
    assert locate_header(grid, DEFAULT_COLUMNS) is None
    # 閾値は設定可能
    match = locate_header(grid, DEFAULT_COLUMNS, Thresholds(min_header_matches=2))
    assert match is not None and match.row_index == 0


def test_tie_keeps_earliest_row():
    header = ["Date", "Driver", "Shift"]
    grid = [header, list(header), ["31/01/2024", "John", "Day"]]
    match = locate_header(grid, DEFAULT_COLUMNS)
    assert match is not None
    assert match.row_index == 0


def test_best_scoring_row_wins():
    grid = [
        ["Driver", "Shift", "Rent"],
        ["Date", "Driver", "Shift", "QR CODE", "Rent", "Fuel"],
    ]
    match = locate_header(grid, DEFAULT_COLUMNS)
    assert match is not None
    assert match.row_index == 1
    assert match.score == 6


def test_deterministic_for_same_grid():
    grid = _grid_with_header_at(2, ["Date", "Driver", "Shift", "QR CODE", "Rent"])
    assert locate_header(grid, DEFAULT_COLUMNS) == locate_header(grid, DEFAULT_COLUMNS)


def test_missing_date_column_defaults_to_first_column():
    grid = [["", "Driver", "Shift", "QR CODE", "Rent"]]
    match = locate_header(grid, DEFAULT_COLUMNS)
    assert match is not None
    assert match.columns["date"] == 0


def test_scan_window_is_limited():
    grid = [[None]] * 5 + [["Date", "Driver", "Shift", "QR CODE", "Rent"]]
    assert locate_header(grid, DEFAULT_COLUMNS, Thresholds(header_scan_rows=5)) is None
    assert locate_header(grid, DEFAULT_COLUMNS, Thresholds(header_scan_rows=6)) is not None


def test_empty_grid():
    assert locate_header([], DEFAULT_COLUMNS) is None
