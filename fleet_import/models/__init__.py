"""Domain models for the daily-entry spreadsheet importer.

This package contains the dataclasses shared by the extraction, pipeline and
persistence layers.
"""

from .config_models import ColumnSpec, DatabaseConfig, ImportConfig, Thresholds
from .import_state import Conflict, ConflictKind, ImportState, ImportStatus, Snapshot
from .processing_result import ImportResult, RunOutcome
from .row_data import CanonicalRow, DailyEntry, DriverRecord, SkippedRow

__all__ = [
    # Configuration models
    "ColumnSpec",
    "DatabaseConfig",
    "ImportConfig",
    "Thresholds",
    # Row models
    "CanonicalRow",
    "DailyEntry",
    "DriverRecord",
    "SkippedRow",
    # Pipeline state
    "Conflict",
    "ConflictKind",
    "ImportState",
    "ImportStatus",
    "Snapshot",
    # Results
    "ImportResult",
    "RunOutcome",
]
