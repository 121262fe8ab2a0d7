from __future__ import annotations

from ..models.processing_result import ImportResult

"""SUMMARY line rendering for one import run."""


def _fmt_seconds(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # 指数表記を避ける
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: ImportResult) -> str:
    """Render the SUMMARY line of an ImportResult.

    Format:
    SUMMARY file={name} rows={total} accepted={n} skipped={n} overridden={n}
    status={committed|failed|terminated} elapsed_sec={elapsed}

    Examples:
        >>> from datetime import datetime, timezone
        >>> from fleet_import.models.processing_result import RunOutcome
        >>> t = datetime(2024, 1, 31, tzinfo=timezone.utc)
        >>> result = ImportResult(
        ...     file_name="jan.xlsx", total_rows=12, accepted_rows=10, skipped_rows=2,
        ...     overridden_entries=1, outcome=RunOutcome.COMMITTED,
        ...     start_time=t, end_time=t, elapsed_seconds=2.0,
        ... )
        >>> render_summary_line(result)
        'SUMMARY file=jan.xlsx rows=12 accepted=10 skipped=2 overridden=1 status=committed elapsed_sec=2'
    """
    return (
        f"SUMMARY file={result.file_name} "
        f"rows={result.total_rows} "
        f"accepted={result.accepted_rows} "
        f"skipped={result.skipped_rows} "
        f"overridden={result.overridden_entries} "
        f"status={result.outcome.value} "
        f"elapsed_sec={_fmt_seconds(result.elapsed_seconds)}"
    )
