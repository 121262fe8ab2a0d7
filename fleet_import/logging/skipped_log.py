from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

from ..models.row_data import SkippedRow

"""Skipped-row review log.

Rows rejected during an import (invalid date, operator skip, overridden by a
later row) are never written to the store. They are buffered here and flushed
as JSON Lines with a fixed key set, one file per run:
``<directory>/skipped-YYYYMMDD-HHMMSS.log`` (UTC).
"""

__all__ = [
    "SkippedRowLog",
]

TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class SkippedRowLog:
    """In-memory buffer of skipped rows; flush() appends them as JSON Lines.

    - ファイルパスは初回アクセスで決定
    - スレッド安全性不要 (シリアル実行)
    """

    def __init__(self, directory: Path | str = "./logs") -> None:
        self._directory = Path(directory)
        self._records: list[SkippedRow] = []
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._directory.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._directory / f"skipped-{stamp}.log"
        return self._file_path

    def extend(self, rows: Iterable[SkippedRow]) -> None:
        self._records.extend(rows)

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        """Write buffered rows; returns the file path, or None when empty."""
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
