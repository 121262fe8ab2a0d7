from __future__ import annotations

import json
from pathlib import Path

from fleet_import.cli import main as cli_main

"""Skipped-row log contract: JSON Lines, fixed key set, one record per skipped row."""

REQUIRED_KEYS = {
    "line", "date", "driver", "qr_code", "vehicle", "shift",
    "rent", "collection", "fuel", "due", "payout", "reason",
}


def test_skipped_log_records(write_config, temp_workdir: Path, sheet_factory, monkeypatch):
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    path = sheet_factory(
        temp_workdir / "data" / "feb.xlsx",
        [
            ["01/02/2024", "Thursday", "KA01", "Ravi", "Day", "QR1", 900, 1500, 300, 0, 300],
            ["not a date", "", "KA02", "Kiran", "Day", "QR2", 900, 1500, 300, 0, 300],
        ],
    )
    code = cli_main([str(path), "--on-conflict", "skip"])
    assert code == 2

    logs = sorted((temp_workdir / "logs").glob("skipped-*.log"))
    assert len(logs) == 1
    records = [json.loads(line) for line in logs[0].read_text(encoding="utf-8").splitlines()]
    assert all(set(r) == REQUIRED_KEYS for r in records)
    by_line = {r["line"]: r for r in records}
    assert by_line[3]["reason"] == "Invalid or missing date"
    assert by_line[2]["reason"] == "Driver not found: Ravi"
    assert by_line[2]["date"] == "2024-02-01"
