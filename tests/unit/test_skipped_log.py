from __future__ import annotations

import json
import re
from pathlib import Path

from fleet_import.logging.skipped_log import SkippedRowLog
from fleet_import.models.row_data import CanonicalRow, SkippedRow

KEYS = {"line", "date", "driver", "qr_code", "vehicle", "shift", "rent", "collection", "fuel", "due", "payout", "reason"}


def _skipped(line: int, reason: str) -> SkippedRow:
    row = CanonicalRow(line=line, date="2024-01-31", driver="Ravi", rent="₹900")
    return SkippedRow.from_row(row, reason)


def test_flush_writes_json_lines(tmp_path: Path):
    log = SkippedRowLog(tmp_path / "logs")
    log.extend([_skipped(4, "Driver not found: Ravi"), _skipped(5, "Invalid or missing date")])
    assert len(log) == 2

    path = log.flush()
    assert path is not None
    assert re.fullmatch(r"skipped-\d{8}-\d{6}\.log", path.name)
    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert set(first) == KEYS
    assert first["line"] == 4
    assert first["rent"] == "₹900"
    assert first["reason"] == "Driver not found: Ravi"
    assert len(log) == 0


def test_flush_without_rows_writes_nothing(tmp_path: Path):
    log = SkippedRowLog(tmp_path / "logs")
    assert log.flush() is None
    assert not (tmp_path / "logs").exists()


def test_second_flush_appends_to_same_file(tmp_path: Path):
    log = SkippedRowLog(tmp_path)
    log.extend([_skipped(4, "a")])
    first = log.flush()
    log.extend([_skipped(5, "b")])
    assert log.flush() == first
    assert len(first.read_text(encoding="utf-8").splitlines()) == 2
