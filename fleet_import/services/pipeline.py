from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import date

from ..excel.normalize import parse_flexible_number
from ..models.config_models import DEFAULT_COLUMNS, ColumnSpec
from ..models.import_state import Conflict, ConflictKind, ImportState, ImportStatus, Snapshot
from ..models.row_data import CanonicalRow, DailyEntry, DriverRecord, SkippedRow

"""Validation pipeline state machine.

``step(state, event)`` is a pure transition function: it never touches the
store and never mutates its input. The host (services.orchestrator) feeds it
Tick events one at a time and stops feeding while the state is SUSPENDED;
side effects required by a resolution (driver registration) happen in
services.resolver before the corresponding event is stepped.

Per-row checks run in a fixed order and stop at the first failure:
    0. completeness      -> incomplete-row
    1. driver existence  -> missing-driver
    2. duplicate (date, driver) -> duplicate-entry
"""

__all__ = [
    "Event",
    "Start",
    "Tick",
    "Skip",
    "Override",
    "DriverRegistered",
    "Terminate",
    "Finalized",
    "Reset",
    "TransitionError",
    "step",
    "skip_reason",
    "build_entry",
    "IMPORTED_NOTE",
]

IMPORTED_NOTE = "Imported"
DUPLICATE_SKIP_REASON = "Duplicate entry skipped by user"

CHECK_COMPLETENESS = 0
CHECK_DRIVER = 1
CHECK_DUPLICATE = 2


class TransitionError(Exception):
    """Raised when an event is not valid for the current status."""


# --- events ---------------------------------------------------------------

class Event:
    """Base class of pipeline events."""


@dataclass(frozen=True)
class Start(Event):
    queue: tuple[CanonicalRow, ...]
    skipped: tuple[SkippedRow, ...] = ()
    snapshot: Snapshot = Snapshot()


@dataclass(frozen=True)
class Tick(Event):
    """Process exactly one row (or finish when the queue is exhausted)."""


@dataclass(frozen=True)
class Skip(Event):
    pass


@dataclass(frozen=True)
class Override(Event):
    pass


@dataclass(frozen=True)
class DriverRegistered(Event):
    driver: DriverRecord


@dataclass(frozen=True)
class Terminate(Event):
    pass


@dataclass(frozen=True)
class Finalized(Event):
    error: str | None = None


@dataclass(frozen=True)
class Reset(Event):
    pass


# --- row checks -----------------------------------------------------------

def _day_name(iso_date: str) -> str:
    return date.fromisoformat(iso_date).strftime("%A")


def build_entry(row: CanonicalRow, entry_id: str = "") -> DailyEntry:
    """Promote a canonical row to a DailyEntry (numbers parsed, day derived)."""
    return DailyEntry(
        id=entry_id,
        date=row.date,
        day=row.day or _day_name(row.date),
        vehicle=row.vehicle,
        driver=row.driver,
        shift=row.shift,
        qr_code=row.qr_code,
        rent=parse_flexible_number(row.rent),
        collection=parse_flexible_number(row.collection),
        fuel=parse_flexible_number(row.fuel),
        due=parse_flexible_number(row.due),
        payout=parse_flexible_number(row.payout),
        notes=IMPORTED_NOTE,
        line=row.line,
    )


def _check_completeness(state: ImportState, row: CanonicalRow, columns: Sequence[ColumnSpec]) -> Conflict | None:
    missing = tuple(spec.label for spec in columns if spec.required and not row.value(spec.field))
    if missing:
        return Conflict(ConflictKind.INCOMPLETE_ROW, row, state.cursor, missing_fields=missing)
    return None


def _check_driver(state: ImportState, row: CanonicalRow) -> Conflict | None:
    if not state.snapshot.has_active_driver(row.driver):
        return Conflict(ConflictKind.MISSING_DRIVER, row, state.cursor, driver_name=row.driver)
    return None


def _check_duplicate(state: ImportState, row: CanonicalRow) -> Conflict | None:
    # 粒度は (date, driver) のみ。シフト/車両が異なっても同日同ドライバーは重複扱い
    persisted = next(
        (
            e for e in state.snapshot.entries
            if e.same_slot(row.date, row.driver) and e.id not in state.overridden_ids
        ),
        None,
    )
    batch = next((e for e in state.valid if e.same_slot(row.date, row.driver)), None)
    if persisted is None and batch is None:
        return None
    return Conflict(
        ConflictKind.DUPLICATE_ENTRY,
        row,
        state.cursor,
        existing=batch if batch is not None else persisted,
        new_entry=build_entry(row),
        is_batch_duplicate=batch is not None,
    )


def _validate(state: ImportState, row: CanonicalRow, columns: Sequence[ColumnSpec]) -> Conflict | None:
    checks = (
        lambda: _check_completeness(state, row, columns),
        lambda: _check_driver(state, row),
        lambda: _check_duplicate(state, row),
    )
    for check in checks[state.resume_check:]:
        conflict = check()
        if conflict is not None:
            return conflict
    return None


def skip_reason(conflict: Conflict) -> str:
    if conflict.kind is ConflictKind.INCOMPLETE_ROW:
        return f"Missing mandatory fields: {', '.join(conflict.missing_fields)}"
    if conflict.kind is ConflictKind.MISSING_DRIVER:
        return f"Driver not found: {conflict.driver_name}"
    return DUPLICATE_SKIP_REASON


# --- transitions ----------------------------------------------------------

def _require(state: ImportState, event: Event, *allowed: ImportStatus) -> None:
    if state.status not in allowed:
        raise TransitionError(
            f"{type(event).__name__} not allowed while {state.status.value}"
        )


def _require_conflict(state: ImportState, event: Event, *kinds: ConflictKind) -> Conflict:
    _require(state, event, ImportStatus.SUSPENDED)
    conflict = state.conflict
    if conflict is None or conflict.kind not in kinds:
        kind = conflict.kind.value if conflict else "none"
        raise TransitionError(f"{type(event).__name__} not applicable to conflict {kind}")
    return conflict


def _tick(state: ImportState, columns: Sequence[ColumnSpec]) -> ImportState:
    row = state.current_row
    if row is None:
        return replace(state, status=ImportStatus.DONE, resume_check=CHECK_COMPLETENESS)

    conflict = _validate(state, row, columns)
    if conflict is not None:
        return replace(state, status=ImportStatus.SUSPENDED, conflict=conflict, resume_check=CHECK_COMPLETENESS)

    entry = build_entry(row, entry_id=str(uuid.uuid4()))
    return replace(
        state,
        valid=state.valid + (entry,),
        cursor=state.cursor + 1,
        resume_check=CHECK_COMPLETENESS,
    )


def _override(state: ImportState, conflict: Conflict) -> ImportState:
    existing = conflict.existing
    if existing is None:  # pragma: no cover - duplicate conflicts always carry it
        raise TransitionError("duplicate conflict without existing record")
    if conflict.is_batch_duplicate:
        # 先に受理した行は valid から外し、skipped へ移す (行は必ずどちらか一方に属する)
        kept = tuple(e for e in state.valid if not e.same_slot(existing.date, existing.driver))
        demoted = tuple(
            SkippedRow.from_entry(e, f"Overridden by line {conflict.row.line}")
            for e in state.valid
            if e.same_slot(existing.date, existing.driver)
        )
        state = replace(state, valid=kept, skipped=state.skipped + demoted)
    else:
        state = replace(state, overridden_ids=state.overridden_ids | {existing.id})
    return replace(state, status=ImportStatus.RUNNING, conflict=None, resume_check=CHECK_DRIVER)


def step(
    state: ImportState,
    event: Event,
    columns: Sequence[ColumnSpec] = DEFAULT_COLUMNS,
) -> ImportState:
    """Apply one event and return the next state.

    Raises:
        TransitionError: event not valid for the current status / conflict.
    """
    if isinstance(event, Start):
        _require(state, event, ImportStatus.IDLE)
        fresh = ImportState(
            queue=tuple(event.queue),
            skipped=tuple(event.skipped),
            snapshot=event.snapshot,
        )
        if not fresh.queue:
            # 抽出 0 件: パイプラインは開始しない
            return fresh
        return replace(fresh, status=ImportStatus.RUNNING)

    if isinstance(event, Tick):
        _require(state, event, ImportStatus.RUNNING)
        return _tick(state, columns)

    if isinstance(event, Skip):
        conflict = _require_conflict(state, event, *ConflictKind)
        return replace(
            state,
            skipped=state.skipped + (SkippedRow.from_row(conflict.row, skip_reason(conflict)),),
            cursor=state.cursor + 1,
            status=ImportStatus.RUNNING,
            conflict=None,
            resume_check=CHECK_COMPLETENESS,
        )

    if isinstance(event, Override):
        conflict = _require_conflict(state, event, ConflictKind.DUPLICATE_ENTRY)
        return _override(state, conflict)

    if isinstance(event, DriverRegistered):
        _require_conflict(state, event, ConflictKind.MISSING_DRIVER)
        return replace(
            state,
            snapshot=state.snapshot.with_driver(event.driver),
            status=ImportStatus.RUNNING,
            conflict=None,
            resume_check=CHECK_COMPLETENESS,
        )

    if isinstance(event, Terminate):
        _require(state, event, ImportStatus.RUNNING, ImportStatus.SUSPENDED)
        return ImportState()

    if isinstance(event, Finalized):
        _require(state, event, ImportStatus.DONE)
        if state.finalized:
            raise TransitionError("import already finalized")
        return replace(state, finalized=True, error=event.error)

    if isinstance(event, Reset):
        return ImportState()

    raise TransitionError(f"unknown event: {event!r}")
