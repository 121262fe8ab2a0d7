from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

from .row_data import CanonicalRow, DailyEntry, DriverRecord, SkippedRow

"""Import state record and conflict value for the validation pipeline.

ImportState is the only mutable-looking piece of the core; it is frozen and
every transition in services.pipeline returns a new instance.
"""

__all__ = [
    "ImportStatus",
    "ConflictKind",
    "Conflict",
    "Snapshot",
    "ImportState",
]


class ImportStatus(Enum):
    """Pipeline status.

    State transitions: idle → running → (suspended ⇄ running)* → done

    - IDLE: No file loaded (or the run was terminated / reset)
    - RUNNING: Rows are consumed one per tick
    - SUSPENDED: A conflict waits for an operator decision
    - DONE: Queue exhausted; finalization follows
    """
    IDLE = "idle"
    RUNNING = "running"
    SUSPENDED = "suspended"
    DONE = "done"


class ConflictKind(Enum):
    MISSING_DRIVER = "missing-driver"
    DUPLICATE_ENTRY = "duplicate-entry"
    INCOMPLETE_ROW = "incomplete-row"


@dataclass(frozen=True)
class Conflict:
    """Why the pipeline suspended, with enough payload to ask the operator."""
    kind: ConflictKind
    row: CanonicalRow
    position: int  # queue index of the offending row
    missing_fields: tuple[str, ...] = ()  # incomplete-row: labels
    driver_name: str | None = None  # missing-driver: name as typed
    existing: DailyEntry | None = None  # duplicate-entry: conflicting record
    new_entry: DailyEntry | None = None  # duplicate-entry: would-be record
    is_batch_duplicate: bool = False  # True: accepted earlier in this run


@dataclass(frozen=True)
class Snapshot:
    """Drivers and persisted entries captured when the import starts."""
    drivers: tuple[DriverRecord, ...] = ()
    entries: tuple[DailyEntry, ...] = ()

    def has_active_driver(self, name: str) -> bool:
        lowered = name.lower()
        return any(d.active and d.name.lower() == lowered for d in self.drivers)

    def find_driver(self, name: str) -> DriverRecord | None:
        """Any driver (active or terminated) with this name, case-insensitive."""
        lowered = name.lower()
        for d in self.drivers:
            if d.name.lower() == lowered:
                return d
        return None

    def with_driver(self, driver: DriverRecord) -> Snapshot:
        return replace(self, drivers=self.drivers + (driver,))


@dataclass(frozen=True)
class ImportState:
    queue: tuple[CanonicalRow, ...] = ()
    cursor: int = 0
    valid: tuple[DailyEntry, ...] = ()
    skipped: tuple[SkippedRow, ...] = ()
    overridden_ids: frozenset[str] = frozenset()
    status: ImportStatus = ImportStatus.IDLE
    conflict: Conflict | None = None
    snapshot: Snapshot = field(default_factory=Snapshot)
    resume_check: int = 0  # 次 tick で再検証を開始するチェック番号 (0 = completeness)
    finalized: bool = False
    error: str | None = None  # finalize 失敗時のメッセージ

    @property
    def current_row(self) -> CanonicalRow | None:
        if self.cursor < len(self.queue):
            return self.queue[self.cursor]
        return None

    @property
    def remaining(self) -> int:
        return max(len(self.queue) - self.cursor, 0)
