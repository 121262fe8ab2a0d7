from __future__ import annotations

import pytest

from fleet_import.models.import_state import ConflictKind, ImportState, ImportStatus, Snapshot
from fleet_import.models.row_data import CanonicalRow, DriverRecord
from fleet_import.services.pipeline import (
    IMPORTED_NOTE,
    DriverRegistered,
    Finalized,
    Override,
    Reset,
    Skip,
    Start,
    Terminate,
    Tick,
    TransitionError,
    build_entry,
    step,
)

JOHN = DriverRecord(id="d-john", name="John")


def _row(line: int, driver: str = "John", iso: str = "2024-01-31", **kw) -> CanonicalRow:
    values = dict(shift="Day", qr_code=f"Q{line}", rent="900")
    values.update(kw)
    return CanonicalRow(line=line, date=iso, driver=driver, **values)


def _start(*rows: CanonicalRow, snapshot: Snapshot | None = None) -> ImportState:
    snap = snapshot if snapshot is not None else Snapshot(drivers=(JOHN,))
    return step(ImportState(), Start(queue=rows, snapshot=snap))


def _run(state: ImportState) -> ImportState:
    while state.status is ImportStatus.RUNNING:
        state = step(state, Tick())
    return state


def _assert_one_bucket(state: ImportState, *lines: int) -> None:
    valid = [e.line for e in state.valid]
    skipped = [s.line for s in state.skipped]
    assert sorted(valid + skipped) == sorted(lines)


def test_clean_rows_are_accepted_one_per_tick():
    state = _start(_row(2), _row(3, iso="2024-02-01"))
    assert state.status is ImportStatus.RUNNING

    state = step(state, Tick())
    assert state.cursor == 1
    assert len(state.valid) == 1

    state = _run(state)
    assert state.status is ImportStatus.DONE
    assert [e.date for e in state.valid] == ["2024-01-31", "2024-02-01"]
    entry = state.valid[0]
    assert entry.rent == 900.0
    assert entry.notes == IMPORTED_NOTE
    assert entry.day == "Wednesday"
    assert entry.id  # uuid 付与済み


def test_start_with_empty_queue_stays_idle():
    state = step(ImportState(), Start(queue=()))
    assert state.status is ImportStatus.IDLE


def test_duplicate_within_batch_then_override():
    first, second = _row(2, rent="900"), _row(3, rent="950")
    state = _run(_start(first, second))

    assert state.status is ImportStatus.SUSPENDED
    conflict = state.conflict
    assert conflict.kind is ConflictKind.DUPLICATE_ENTRY
    assert conflict.is_batch_duplicate is True
    assert conflict.existing.line == 2
    assert conflict.new_entry.rent == 950.0

    state = step(state, Override())
    assert state.status is ImportStatus.RUNNING
    assert state.valid == ()
    assert state.skipped[0].line == 2
    assert state.skipped[0].reason == "Overridden by line 3"

    state = _run(state)
    assert state.status is ImportStatus.DONE
    assert [(e.line, e.rent) for e in state.valid] == [(3, 950.0)]
    _assert_one_bucket(state, 2, 3)


def test_duplicate_of_persisted_entry_then_override(entry_factory):
    persisted = entry_factory("e-old", "2024-01-31", "john")
    state = _run(_start(_row(2), snapshot=Snapshot(drivers=(JOHN,), entries=(persisted,))))

    conflict = state.conflict
    assert conflict.kind is ConflictKind.DUPLICATE_ENTRY
    assert conflict.is_batch_duplicate is False
    assert conflict.existing.id == "e-old"

    state = _run(step(state, Override()))
    assert state.status is ImportStatus.DONE
    assert state.overridden_ids == frozenset({"e-old"})
    assert len(state.valid) == 1


def test_duplicate_granularity_is_date_and_driver_only():
    # シフト/車両が違っても同日同ドライバーは重複 (1 日 1 件)
    state = _run(_start(_row(2, shift="Day", vehicle="KA01"), _row(3, shift="Night", vehicle="KA02")))
    assert state.status is ImportStatus.SUSPENDED
    assert state.conflict.kind is ConflictKind.DUPLICATE_ENTRY


def test_missing_driver_registered_and_row_rechecked():
    state = _run(_start(_row(2, driver="Unknown Guy")))
    conflict = state.conflict
    assert conflict.kind is ConflictKind.MISSING_DRIVER
    assert conflict.driver_name == "Unknown Guy"

    state = step(state, DriverRegistered(DriverRecord(id="d-new", name="Unknown Guy")))
    assert state.status is ImportStatus.RUNNING
    assert state.cursor == 0  # 同じ行を再検証
    assert state.snapshot.has_active_driver("unknown guy")

    state = _run(state)
    assert state.status is ImportStatus.DONE
    assert [e.driver for e in state.valid] == ["Unknown Guy"]


def test_terminated_driver_counts_as_missing():
    snap = Snapshot(drivers=(DriverRecord(id="d-x", name="John", active=False),))
    state = _run(_start(_row(2), snapshot=snap))
    assert state.conflict.kind is ConflictKind.MISSING_DRIVER


def test_driver_match_is_case_insensitive():
    state = _run(_start(_row(2, driver="JOHN")))
    assert state.status is ImportStatus.DONE


def test_incomplete_row_skip_records_reason_and_advances():
    state = _run(_start(_row(2, shift=""), _row(3, iso="2024-02-01")))
    conflict = state.conflict
    assert conflict.kind is ConflictKind.INCOMPLETE_ROW
    assert conflict.missing_fields == ("Shift",)

    state = step(state, Skip())
    assert state.cursor == 1
    assert state.skipped[-1].reason == "Missing mandatory fields: Shift"

    state = _run(state)
    assert state.status is ImportStatus.DONE
    _assert_one_bucket(state, 2, 3)


def test_incomplete_lists_every_missing_field_by_label():
    state = _run(_start(_row(2, qr_code="", rent="")))
    assert state.conflict.missing_fields == ("QR CODE", "Rent")


def test_completeness_checked_before_driver():
    state = _run(_start(_row(2, driver="Nobody", shift="")))
    assert state.conflict.kind is ConflictKind.INCOMPLETE_ROW


def test_skip_reasons_per_kind():
    state = step(_run(_start(_row(2, driver="Nobody"))), Skip())
    assert state.skipped[-1].reason == "Driver not found: Nobody"

    state = step(_run(_start(_row(2), _row(3))), Skip())
    assert state.skipped[-1].reason == "Duplicate entry skipped by user"


def test_no_two_accepted_entries_share_a_slot():
    rows = [_row(i, iso="2024-01-31" if i % 2 else "2024-02-01") for i in range(2, 8)]
    state = _start(*rows)
    decisions = 0
    while state.status is not ImportStatus.DONE:
        state = _run(state)
        if state.status is ImportStatus.SUSPENDED:
            state = step(state, Override() if decisions % 2 == 0 else Skip())
            decisions += 1
    assert decisions == 4
    slots = [(e.date, e.driver.lower()) for e in state.valid]
    assert len(slots) == len(set(slots))
    _assert_one_bucket(state, *range(2, 8))


def test_terminate_discards_everything():
    state = _run(_start(_row(2), _row(3)))
    assert state.status is ImportStatus.SUSPENDED
    state = step(state, Terminate())
    assert state == ImportState()


def test_terminate_allowed_while_running():
    state = step(_start(_row(2)), Terminate())
    assert state.status is ImportStatus.IDLE


@pytest.mark.parametrize(
    "event",
    [Tick(), Skip(), Override(), Terminate(), Finalized()],
)
def test_events_rejected_while_idle(event):
    with pytest.raises(TransitionError):
        step(ImportState(), event)


def test_override_only_for_duplicates():
    state = _run(_start(_row(2, driver="Nobody")))
    with pytest.raises(TransitionError):
        step(state, Override())


def test_driver_registered_only_for_missing_driver():
    state = _run(_start(_row(2, shift="")))
    with pytest.raises(TransitionError):
        step(state, DriverRegistered(JOHN))


def test_tick_rejected_while_suspended():
    state = _run(_start(_row(2, shift="")))
    with pytest.raises(TransitionError):
        step(state, Tick())


def test_start_rejected_while_running():
    with pytest.raises(TransitionError):
        step(_start(_row(2)), Start(queue=(_row(3),)))


def test_finalized_once_only():
    done = _run(_start(_row(2)))
    state = step(done, Finalized())
    assert state.finalized is True
    assert state.error is None
    with pytest.raises(TransitionError):
        step(state, Finalized())


def test_finalized_with_error_keeps_rows():
    done = _run(_start(_row(2)))
    state = step(done, Finalized(error="boom"))
    assert state.status is ImportStatus.DONE
    assert state.error == "boom"
    assert len(state.valid) == 1


def test_reset_from_any_state():
    assert step(_run(_start(_row(2), _row(3))), Reset()) == ImportState()
    assert step(ImportState(), Reset()) == ImportState()


def test_step_does_not_mutate_input():
    state = _start(_row(2))
    before = state
    step(state, Tick())
    assert state == before
    assert state.cursor == 0


def test_build_entry_keeps_given_day_and_parses_numbers():
    entry = build_entry(_row(2, day="Wed", collection="₹1,500", fuel="#N/A"), entry_id="x")
    assert entry.id == "x"
    assert entry.day == "Wed"
    assert entry.collection == 1500.0
    assert entry.fuel == 0.0
    assert entry.line == 2
