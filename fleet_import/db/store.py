from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from typing import Any, Protocol

from ..models.row_data import DailyEntry, DriverRecord
from .batch_insert import BatchMetrics, batch_insert

"""Persistence collaborator used by the import pipeline.

Store is the narrow contract the pipeline needs (drivers + daily entries).
PostgresStore talks to the back-office tables through psycopg2; MemoryStore
keeps everything in dicts (mock mode / tests).

Every PostgresStore write commits on its own: a failure in a later call does
not roll back an earlier one (driver registration survives a failed finalize).
"""

logger = logging.getLogger(__name__)

__all__ = [
    "Store",
    "StoreError",
    "DuplicateDriverError",
    "PostgresStore",
    "MemoryStore",
    "ENTRY_COLUMNS",
]

ENTRY_COLUMNS = (
    "id", "date", "day", "vehicle", "driver", "shift", "qr_code",
    "rent", "collection", "fuel", "due", "payout", "notes",
)


class StoreError(Exception):
    """Persistence call failed."""


class DuplicateDriverError(StoreError):
    """A driver with the same name already exists."""


class Store(Protocol):
    def list_drivers(self) -> list[DriverRecord]: ...

    def create_driver(self, name: str, mobile: str = "") -> DriverRecord: ...

    def list_entries(self) -> list[DailyEntry]: ...

    def bulk_insert_entries(self, entries: Sequence[DailyEntry]) -> int: ...

    def delete_entry(self, entry_id: str) -> None: ...


def _entry_row(e: DailyEntry) -> tuple[Any, ...]:
    return (
        e.id, e.date, e.day, e.vehicle, e.driver, e.shift, e.qr_code,
        e.rent, e.collection, e.fuel, e.due, e.payout, e.notes,
    )


class PostgresStore:
    """psycopg2 implementation over the ``drivers`` / ``daily_entries`` tables."""

    def __init__(self, conn: Any, page_size: int = 1000) -> None:
        self._conn = conn
        self._page_size = page_size

    def _fail(self, action: str, e: Exception) -> StoreError:
        try:
            self._conn.rollback()
        except Exception:  # pragma: no cover
            logger.debug("rollback failed after %s", action, exc_info=True)
        return StoreError(f"{action}: {e}")

    def list_drivers(self) -> list[DriverRecord]:
        try:
            with self._conn.cursor() as cur:
                cur.execute(
                    "SELECT id, name, mobile, termination_date FROM drivers ORDER BY name"
                )
                rows = cur.fetchall()
        except Exception as e:
            raise self._fail("list drivers", e) from e
        return [
            DriverRecord(id=str(r[0]), name=r[1] or "", mobile=r[2] or "", active=r[3] is None)
            for r in rows
        ]

    def create_driver(self, name: str, mobile: str = "") -> DriverRecord:
        driver_id = str(uuid.uuid4())
        try:
            with self._conn.cursor() as cur:
                # 名前 (大文字小文字無視) または携帯番号の重複を拒否
                cur.execute(
                    "SELECT name FROM drivers WHERE lower(name) = lower(%s) OR (%s <> '' AND mobile = %s)",
                    (name, mobile, mobile),
                )
                clash = cur.fetchone()
                if clash is not None:
                    self._conn.rollback()
                    raise DuplicateDriverError(f"Driver name or mobile already exists: {clash[0]}")
                cur.execute(
                    """
                    INSERT INTO drivers (id, name, mobile, join_date, deposit, qr_code, vehicle, status, current_shift)
                    VALUES (%s, %s, %s, %s, 0, '', '', 'Active', 'Day')
                    """,
                    (driver_id, name, mobile, datetime.now(UTC).date().isoformat()),
                )
            self._conn.commit()
        except StoreError:
            raise
        except Exception as e:
            raise self._fail("create driver", e) from e
        return DriverRecord(id=driver_id, name=name, mobile=mobile, active=True)

    def list_entries(self) -> list[DailyEntry]:
        try:
            with self._conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT id, to_char(date, 'YYYY-MM-DD'), day, vehicle, driver, shift, qr_code,
                           rent, collection, fuel, due, payout, notes
                    FROM daily_entries
                    """
                )
                rows = cur.fetchall()
        except Exception as e:
            raise self._fail("list entries", e) from e
        return [
            DailyEntry(
                id=str(r[0]), date=r[1], day=r[2] or "", vehicle=r[3] or "", driver=r[4] or "",
                shift=r[5] or "", qr_code=r[6] or "",
                rent=float(r[7] or 0), collection=float(r[8] or 0), fuel=float(r[9] or 0),
                due=float(r[10] or 0), payout=float(r[11] or 0), notes=r[12],
            )
            for r in rows
        ]

    def bulk_insert_entries(self, entries: Sequence[DailyEntry]) -> int:
        def _log_metrics(m: BatchMetrics) -> None:
            logger.debug("daily_entries batch size=%d elapsed=%.3fs", m.batch_size, m.elapsed_seconds)

        try:
            with self._conn.cursor() as cur:
                result = batch_insert(
                    cur,
                    "daily_entries",
                    ENTRY_COLUMNS,
                    (_entry_row(e) for e in entries),
                    on_conflict="(id)",
                    page_size=self._page_size,
                    metrics_callback=_log_metrics,
                )
            self._conn.commit()
        except Exception as e:
            raise self._fail("bulk insert", e) from e
        return result.submitted_rows

    def delete_entry(self, entry_id: str) -> None:
        try:
            with self._conn.cursor() as cur:
                cur.execute("DELETE FROM daily_entries WHERE id = %s", (entry_id,))
            self._conn.commit()
        except Exception as e:
            raise self._fail("delete entry", e) from e


class MemoryStore:
    """In-memory store (mock mode and tests). Same semantics as PostgresStore."""

    def __init__(
        self,
        drivers: Iterable[DriverRecord] = (),
        entries: Iterable[DailyEntry] = (),
    ) -> None:
        self.drivers: dict[str, DriverRecord] = {d.id: d for d in drivers}
        self.entries: dict[str, DailyEntry] = {e.id: e for e in entries}
        self.deleted_ids: list[str] = []

    def list_drivers(self) -> list[DriverRecord]:
        return sorted(self.drivers.values(), key=lambda d: d.name)

    def create_driver(self, name: str, mobile: str = "") -> DriverRecord:
        for d in self.drivers.values():
            if d.name.lower() == name.lower() or (mobile and d.mobile == mobile):
                raise DuplicateDriverError(f"Driver name or mobile already exists: {d.name}")
        driver = DriverRecord(id=str(uuid.uuid4()), name=name, mobile=mobile, active=True)
        self.drivers[driver.id] = driver
        return driver

    def list_entries(self) -> list[DailyEntry]:
        return list(self.entries.values())

    def bulk_insert_entries(self, entries: Sequence[DailyEntry]) -> int:
        for e in entries:
            # insert-if-absent
            self.entries.setdefault(e.id, e)
        return len(entries)

    def delete_entry(self, entry_id: str) -> None:
        self.entries.pop(entry_id, None)
        self.deleted_ids.append(entry_id)
