from __future__ import annotations

import logging

from ..db.store import Store, StoreError
from ..models.import_state import ImportState, ImportStatus
from .pipeline import Finalized, TransitionError, step

"""Finalizer: commit a finished run to the store.

Order: delete the overridden persisted entries first (a replacement for the
same date/driver slot is in the insert batch), then one bulk insert of every
accepted entry. A failed store call is not retried and nothing is rolled
back; the state stays DONE with ``error`` set and all accumulated rows kept
for inspection. The store's insert-if-absent semantics make a manual re-run
safe.
"""

logger = logging.getLogger(__name__)

__all__ = ["finalize"]


def finalize(state: ImportState, store: Store) -> ImportState:
    if state.status is not ImportStatus.DONE:
        raise TransitionError(f"cannot finalize while {state.status.value}")

    try:
        for entry_id in sorted(state.overridden_ids):
            store.delete_entry(entry_id)
            logger.debug("deleted overridden entry id=%s", entry_id)
        if state.valid:
            submitted = store.bulk_insert_entries(list(state.valid))
            logger.info("committed entries=%d", submitted)
        else:
            logger.info("no entries to commit")
    except StoreError as e:
        logger.error(f"finalize: {e}")
        return step(state, Finalized(error=str(e)))

    return step(state, Finalized())
