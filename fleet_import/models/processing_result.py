from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

"""Result model for one import run (feeds the SUMMARY line)."""


class RunOutcome(Enum):
    COMMITTED = "committed"  # finalize 成功
    FAILED = "failed"  # finalize 中の store エラー
    TERMINATED = "terminated"  # オペレーターによる中断


@dataclass(frozen=True)
class ImportResult:
    """Aggregated counters of a finished (or terminated) import run."""
    file_name: str
    total_rows: int  # 抽出行数 (queue + 日付不正でスキップした行)
    accepted_rows: int  # 挿入対象として確定した行数
    skipped_rows: int  # スキップ行合計
    overridden_entries: int  # 上書きにより削除した既存行数
    outcome: RunOutcome
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    error: str | None = None
