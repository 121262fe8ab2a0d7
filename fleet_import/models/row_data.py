from __future__ import annotations

import json
from dataclasses import asdict, dataclass, replace

"""Row level domain models.

CanonicalRow: one sheet row after column mapping and cell cleaning, before
validation. Every row that enters the pipeline ends up either as a
DailyEntry (accepted) or as a SkippedRow (rejected, kept for review only).
"""

__all__ = [
    "CanonicalRow",
    "DailyEntry",
    "SkippedRow",
    "DriverRecord",
]


@dataclass(frozen=True)
class CanonicalRow:
    """A transaction row after column mapping (all values are cleaned strings)."""
    line: int  # 1-based line number in the source sheet
    date: str = ""  # ISO YYYY-MM-DD once accepted into the queue
    day: str = ""
    vehicle: str = ""
    driver: str = ""
    shift: str = ""
    qr_code: str = ""
    rent: str = ""
    collection: str = ""
    fuel: str = ""
    due: str = ""
    payout: str = ""

    def value(self, field_name: str) -> str:
        return getattr(self, field_name)

    def with_date(self, iso_date: str) -> CanonicalRow:
        return replace(self, date=iso_date)


@dataclass(frozen=True)
class DailyEntry:
    """A daily driver transaction, accepted by the pipeline or read from the store."""
    id: str
    date: str  # ISO YYYY-MM-DD
    day: str
    vehicle: str
    driver: str
    shift: str
    qr_code: str
    rent: float = 0.0
    collection: float = 0.0
    fuel: float = 0.0
    due: float = 0.0  # 正: ドライバー未払い / 負: 会社側未払い
    payout: float = 0.0
    notes: str | None = None
    line: int | None = None  # 取込元の行番号 (store から読んだ場合 None)

    def same_slot(self, date: str, driver: str) -> bool:
        """True when this entry occupies the (date, driver) slot."""
        return self.date == date and self.driver.lower() == driver.lower()


@dataclass(frozen=True)
class SkippedRow:
    """A rejected row plus the reason shown to the operator."""
    line: int
    date: str
    driver: str
    qr_code: str
    vehicle: str
    shift: str
    rent: str
    collection: str
    fuel: str
    due: str
    payout: str
    reason: str

    @staticmethod
    def from_row(row: CanonicalRow, reason: str) -> SkippedRow:
        return SkippedRow(
            line=row.line,
            date=row.date,
            driver=row.driver,
            qr_code=row.qr_code,
            vehicle=row.vehicle,
            shift=row.shift,
            rent=row.rent,
            collection=row.collection,
            fuel=row.fuel,
            due=row.due,
            payout=row.payout,
            reason=reason,
        )

    @staticmethod
    def from_entry(entry: DailyEntry, reason: str) -> SkippedRow:
        """Demote an already accepted entry (used when a later row overrides it)."""
        return SkippedRow(
            line=entry.line if entry.line is not None else -1,
            date=entry.date,
            driver=entry.driver,
            qr_code=entry.qr_code,
            vehicle=entry.vehicle,
            shift=entry.shift,
            rent=_fmt_number(entry.rent),
            collection=_fmt_number(entry.collection),
            fuel=_fmt_number(entry.fuel),
            due=_fmt_number(entry.due),
            payout=_fmt_number(entry.payout),
            reason=reason,
        )

    def to_json_line(self) -> str:
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)


@dataclass(frozen=True)
class DriverRecord:
    id: str
    name: str
    mobile: str = ""
    active: bool = True  # termination_date 未設定なら True


def _fmt_number(value: float) -> str:
    if value == int(value):
        return str(int(value))
    return str(value)
