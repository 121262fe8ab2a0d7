from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..models.import_state import ImportState

"""Row progress display with tqdm (TTY only).

One bar per import, advanced from the session's on_tick callback. In non-TTY
environments (CI, piped output) the bar is disabled to avoid ANSI control
sequence spam. While the pipeline is suspended the bar is cleared so the
operator prompt is readable.
"""

__all__ = [
    "RowProgress",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class RowProgress:
    """Progress bar over the row queue of one import."""

    def __init__(self, total_rows: int, *, description: str = "Validating rows") -> None:
        self.total_rows = total_rows
        self.description = description
        self.position = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_rows,
                desc=description,
                unit="row",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def update(self, state: ImportState) -> None:
        """Move the bar to the pipeline cursor (on_tick callback)."""
        advanced = state.cursor - self.position
        self.position = state.cursor
        if self.enabled and self.pbar is not None:
            if advanced > 0:
                self.pbar.update(advanced)
            self.pbar.set_postfix(valid=len(state.valid), skipped=len(state.skipped))

    def clear(self) -> None:
        """Hide the bar before prompting the operator."""
        if self.enabled and self.pbar is not None:
            self.pbar.clear()

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> RowProgress:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
