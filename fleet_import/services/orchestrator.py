from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..db.store import Store, StoreError
from ..excel.extract import Extraction, extract_rows
from ..excel.header import HeaderMatch, locate_header
from ..excel.normalize import is_blank
from ..excel.reader import SheetReadError, read_raw_grid
from ..models.config_models import ImportConfig
from ..models.import_state import Conflict, ImportState, ImportStatus, Snapshot
from ..models.processing_result import ImportResult, RunOutcome
from .finalizer import finalize
from .pipeline import Reset, Start, Tick, step
from .resolver import Action, Decision, resolve

"""Import session orchestration.

Drives one spreadsheet through extraction, the validation pipeline and the
finalizer. The session is the host loop: it steps one row per tick, hands
control back to the caller between ticks (progress display) and stops as
soon as the pipeline suspends. The caller then supplies a Decision and calls
run() again.

Typical use::

    session = ImportSession(store, config)
    session.load(path)
    while session.run().status is ImportStatus.SUSPENDED:
        session.resolve(ask_operator(session.conflict))
    session.finalize()
"""

logger = logging.getLogger(__name__)

__all__ = [
    "ImportAbort",
    "LoadReport",
    "ImportSession",
    "prepare_grid",
]


class ImportAbort(Exception):
    """Hard stop before any row enters the pipeline (state stays idle)."""


@dataclass(frozen=True)
class LoadReport:
    header: HeaderMatch
    extraction: Extraction


def prepare_grid(grid: Sequence[Sequence[Any]], config: ImportConfig) -> LoadReport:
    """Locate the header and extract rows; raise ImportAbort on a hard stop."""
    if not grid or all(is_blank(cell) for row in grid for cell in row):
        raise ImportAbort("File appears empty.")

    header = locate_header(grid, config.columns, config.thresholds)
    if header is None:
        raise ImportAbort("Could not detect header row. Please check column names (Date, Driver, etc.)")
    logger.debug(
        "header row=%d score=%d columns=%s", header.row_index + 1, header.score, header.columns
    )

    extraction = extract_rows(
        grid,
        header,
        config.columns,
        config.thresholds,
        section_markers=config.section_markers,
        weekday_names=config.weekday_names,
    )
    return LoadReport(header=header, extraction=extraction)


class ImportSession:
    """Owns the ImportState of one import and the store it commits to."""

    def __init__(self, store: Store, config: ImportConfig | None = None) -> None:
        self.store = store
        self.config = config or ImportConfig()
        self.state = ImportState()
        self.file_name = ""
        self.terminated = False
        self._extracted_rows = 0
        self._start_time: datetime | None = None

    # --- loading --------------------------------------------------------

    def load(self, path: Path) -> ImportState:
        try:
            grid = read_raw_grid(path)
        except SheetReadError as e:
            raise ImportAbort(f"Error parsing file: {e}") from e
        return self.load_grid(grid, file_name=path.name)

    def load_grid(self, grid: Sequence[Sequence[Any]], file_name: str = "<grid>") -> ImportState:
        if self.state.status is not ImportStatus.IDLE:
            raise ImportAbort(f"an import is already {self.state.status.value}")
        self.file_name = file_name
        self.terminated = False
        self._start_time = datetime.now(UTC)

        report = prepare_grid(grid, self.config)
        extraction = report.extraction
        self._extracted_rows = len(extraction.queue) + len(extraction.skipped)

        if extraction.is_empty:
            # 日付不正行はレビュー用に保持したまま idle に留まる
            self.state = step(ImportState(), Start(queue=(), skipped=tuple(extraction.skipped)))
            hint = (
                " Rows failed date parsing. Please verify the Date column (e.g., DD/MM/YYYY)."
                if extraction.skipped
                else ""
            )
            raise ImportAbort(f"No valid data rows found after header.{hint}")

        try:
            snapshot = Snapshot(
                drivers=tuple(self.store.list_drivers()),
                entries=tuple(self.store.list_entries()),
            )
        except StoreError as e:
            raise ImportAbort(f"Could not load drivers/entries: {e}") from e

        logger.info(
            "file=%s header_line=%d queued=%d pre_skipped=%d",
            file_name,
            report.header.row_index + 1,
            len(extraction.queue),
            len(extraction.skipped),
        )
        self.state = step(
            self.state,
            Start(queue=tuple(extraction.queue), skipped=tuple(extraction.skipped), snapshot=snapshot),
        )
        return self.state

    # --- stepping -------------------------------------------------------

    @property
    def status(self) -> ImportStatus:
        return self.state.status

    @property
    def conflict(self) -> Conflict | None:
        return self.state.conflict

    def tick(self) -> ImportState:
        self.state = step(self.state, Tick(), self.config.columns)
        return self.state

    def run(self, on_tick: Callable[[ImportState], None] | None = None) -> ImportState:
        """Tick until the pipeline suspends or the queue is exhausted."""
        while self.state.status is ImportStatus.RUNNING:
            self.tick()
            if on_tick is not None:
                on_tick(self.state)
        if self.state.status is ImportStatus.SUSPENDED and self.state.conflict is not None:
            c = self.state.conflict
            logger.debug(
                "suspended kind=%s line=%d remaining=%d", c.kind.value, c.row.line, self.state.remaining
            )
        return self.state

    def resolve(self, decision: Decision) -> ImportState:
        """Apply an operator decision. ResolutionError leaves the state untouched."""
        self.state = resolve(self.state, decision, self.store, self.config.columns)
        if decision.action is Action.TERMINATE:
            self.terminated = True
        return self.state

    def finalize(self) -> ImportState:
        self.state = finalize(self.state, self.store)
        return self.state

    def reset(self) -> ImportState:
        self.state = step(self.state, Reset())
        self.terminated = False
        return self.state

    # --- reporting ------------------------------------------------------

    def result(self) -> ImportResult:
        start = self._start_time or datetime.now(UTC)
        end = datetime.now(UTC)
        if self.terminated:
            outcome = RunOutcome.TERMINATED
        elif self.state.error is not None:
            outcome = RunOutcome.FAILED
        else:
            outcome = RunOutcome.COMMITTED
        return ImportResult(
            file_name=self.file_name,
            total_rows=self._extracted_rows,
            accepted_rows=len(self.state.valid),
            skipped_rows=len(self.state.skipped),
            overridden_entries=len(self.state.overridden_ids),
            outcome=outcome,
            start_time=start,
            end_time=end,
            elapsed_seconds=(end - start).total_seconds(),
            error=self.state.error,
        )
