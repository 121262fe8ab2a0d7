# Shared pytest fixtures
from __future__ import annotations

import tempfile
from datetime import datetime
from pathlib import Path

import pandas as pd
import pytest

from fleet_import.db.store import MemoryStore
from fleet_import.logging.init import reset_logging
from fleet_import.models.row_data import DailyEntry, DriverRecord

HEADER = ["Date", "Day", "Vehicle", "Driver", "Shift", "QR CODE", "Rent", "Collection", "Fuel", "Due", "Payout"]


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """thresholds:
  header_scan_rows: 30
  min_header_matches: 3
  max_blank_streak: 3
skipped_log_directory: ./logs
database:
  host: localhost
  port: 5432
  user: fleet
  password: secret
  database: fleet
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    yield
    reset_logging()


def make_sheet(path: Path, rows: list[list], preamble: list[list] | None = None) -> Path:
    """Write a daily-entry workbook: optional title rows, the header, then rows."""
    grid = list(preamble or []) + [HEADER] + rows
    width = max(len(r) for r in grid)
    padded = [list(r) + [None] * (width - len(r)) for r in grid]
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        pd.DataFrame(padded).to_excel(writer, index=False, header=False)
    return path


@pytest.fixture()
def daily_sheet(temp_workdir: Path) -> Path:
    """Two clean rows for known drivers below a two-line title block."""
    return make_sheet(
        temp_workdir / "data" / "jan.xlsx",
        [
            [datetime(2024, 1, 1), "Monday", "KA01", "Ravi", "Day", "QR1", 900, 1500, 300, 0, 300],
            [datetime(2024, 1, 1), "Monday", "KA02", "Suresh", "Night", "QR2", 900, 1400, 250, 50, 200],
        ],
        preamble=[["Fleet daily sheet"], ["Week 1"]],
    )


@pytest.fixture()
def drivers() -> list[DriverRecord]:
    return [
        DriverRecord(id="d-1", name="Ravi", mobile="9000000001"),
        DriverRecord(id="d-2", name="Suresh", mobile="9000000002"),
        DriverRecord(id="d-3", name="Old Timer", mobile="9000000003", active=False),
    ]


@pytest.fixture()
def memory_store(drivers) -> MemoryStore:
    return MemoryStore(drivers=drivers)


def entry(entry_id: str, iso_date: str, driver: str, **kw) -> DailyEntry:
    values = dict(day="", vehicle="KA01", shift="Day", qr_code="QR", rent=900.0)
    values.update(kw)
    return DailyEntry(id=entry_id, date=iso_date, driver=driver, **values)


@pytest.fixture()
def sheet_factory():
    return make_sheet


@pytest.fixture()
def entry_factory():
    return entry
