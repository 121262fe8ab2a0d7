from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from ..db.store import DuplicateDriverError, Store, StoreError
from ..models.config_models import DEFAULT_COLUMNS, ColumnSpec
from ..models.import_state import Conflict, ConflictKind, ImportState, ImportStatus
from .pipeline import DriverRegistered, Override, Skip, Terminate, step

"""Conflict resolver.

Translates an operator decision into a pipeline transition. Registration is
the only decision with a side effect: the driver is created through the store
first, and only then is DriverRegistered stepped so the same row is checked
again against the refreshed snapshot.
"""

logger = logging.getLogger(__name__)

__all__ = [
    "Action",
    "Decision",
    "ResolutionError",
    "ALLOWED_ACTIONS",
    "resolve",
]


class ResolutionError(Exception):
    """Operator-facing error; the conflict stays open for another decision."""


class Action(Enum):
    SKIP = "skip"
    REGISTER = "register"  # missing-driver: register-and-retry
    OVERRIDE = "override"  # duplicate-entry
    TERMINATE = "terminate"


ALLOWED_ACTIONS: dict[ConflictKind, tuple[Action, ...]] = {
    ConflictKind.INCOMPLETE_ROW: (Action.SKIP, Action.TERMINATE),
    ConflictKind.MISSING_DRIVER: (Action.REGISTER, Action.SKIP, Action.TERMINATE),
    ConflictKind.DUPLICATE_ENTRY: (Action.OVERRIDE, Action.SKIP, Action.TERMINATE),
}


@dataclass(frozen=True)
class Decision:
    action: Action
    name: str = ""  # REGISTER: 新規ドライバー名 (空なら行のドライバー名)
    mobile: str = ""


def _register(state: ImportState, conflict: Conflict, decision: Decision, store: Store) -> ImportState:
    name = decision.name.strip() or (conflict.driver_name or "").strip()
    if not name:
        raise ResolutionError("Name required")

    existing = state.snapshot.find_driver(name)
    if existing is not None:
        raise ResolutionError(f'Cannot add: Driver "{existing.name}" already exists.')

    try:
        driver = store.create_driver(name, decision.mobile.strip())
    except DuplicateDriverError as e:
        raise ResolutionError(f'Cannot add: Driver "{name}" already exists.') from e
    except StoreError as e:
        raise ResolutionError(f"Driver registration failed: {e}") from e

    logger.info("registered driver name=%s id=%s (line %d)", driver.name, driver.id, conflict.row.line)
    return step(state, DriverRegistered(driver))


def resolve(
    state: ImportState,
    decision: Decision,
    store: Store,
    columns: Sequence[ColumnSpec] = DEFAULT_COLUMNS,
) -> ImportState:
    """Apply an operator decision to a suspended pipeline.

    Raises:
        ResolutionError: no open conflict, action not offered for this
            conflict, or the registration was rejected.
    """
    if state.status is not ImportStatus.SUSPENDED or state.conflict is None:
        raise ResolutionError("No conflict is waiting for a decision")

    conflict = state.conflict
    allowed = ALLOWED_ACTIONS[conflict.kind]
    if decision.action not in allowed:
        options = ", ".join(a.value for a in allowed)
        raise ResolutionError(
            f"'{decision.action.value}' is not available for {conflict.kind.value} (choose: {options})"
        )

    logger.debug(
        "resolve kind=%s line=%d action=%s", conflict.kind.value, conflict.row.line, decision.action.value
    )
    if decision.action is Action.REGISTER:
        return _register(state, conflict, decision, store)
    if decision.action is Action.OVERRIDE:
        return step(state, Override(), columns)
    if decision.action is Action.SKIP:
        return step(state, Skip(), columns)
    logger.info("import terminated by operator at line %d", conflict.row.line)
    return step(state, Terminate(), columns)
