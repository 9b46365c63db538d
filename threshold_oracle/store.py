# threshold_oracle/store.py
"""
SQLite-backed price history.

Every stamp is aligned to the price interval when written, so the table only
ever holds interval-aligned samples. Inserts at an existing aligned stamp
replace the stored price.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Iterable, List, Optional

from threshold_oracle.errors import StorageError
from threshold_oracle.models import PricePoint
from threshold_oracle.util import align

log = logging.getLogger("thold.store")

_CREATE_TABLES = (
    """
    CREATE TABLE IF NOT EXISTS price_history (
        stamp INTEGER PRIMARY KEY,
        price INTEGER NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_price ON price_history(price);",
)


def _row_to_point(row) -> Optional[PricePoint]:
    if row is None:
        return None
    return PricePoint(price=row["price"], stamp=row["stamp"])


class PriceStore:
    """Thread-safe store of interval-aligned price points."""

    def __init__(self, db_path, price_ival: int):
        self.price_ival = price_ival
        self.db_path = str(db_path)
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            with self._conn:
                for ddl in _CREATE_TABLES:
                    self._conn.execute(ddl)
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"cannot open price store at {self.db_path}: {e}") from e
        self._lock = threading.RLock()
        log.info(f"price store ready at {self.db_path} (interval {price_ival}s)")

    def align(self, stamp: int) -> int:
        return align(stamp, self.price_ival)

    def insert(self, price: float, stamp: int) -> PricePoint:
        point = PricePoint(price=price, stamp=self.align(stamp))
        self._write([point])
        return point

    def insert_many(self, points: Iterable[PricePoint]) -> List[PricePoint]:
        aligned = [PricePoint(price=p.price, stamp=self.align(p.stamp)) for p in points]
        if aligned:
            self._write(aligned)
        return aligned

    def latest(self) -> Optional[PricePoint]:
        row = self._fetch_one("SELECT price, stamp FROM price_history ORDER BY stamp DESC LIMIT 1")
        return _row_to_point(row)

    def at(self, stamp: int) -> Optional[PricePoint]:
        row = self._fetch_one(
            "SELECT price, stamp FROM price_history WHERE stamp = ?",
            (self.align(stamp),),
        )
        return _row_to_point(row)

    def range(self, start: int, end: int) -> List[PricePoint]:
        rows = self._fetch_all(
            """
            SELECT price, stamp FROM price_history
            WHERE stamp BETWEEN ? AND ?
            ORDER BY stamp ASC
            """,
            (self.align(start), self.align(end)),
        )
        return [_row_to_point(r) for r in rows]

    def first_below(self, threshold: float, start: int, end: int) -> Optional[PricePoint]:
        """Earliest point in [start, end] strictly below threshold."""
        row = self._fetch_one(
            """
            SELECT price, stamp FROM price_history
            WHERE stamp BETWEEN ? AND ?
            AND price < ?
            ORDER BY stamp ASC
            LIMIT 1
            """,
            (self.align(start), self.align(end), threshold),
        )
        return _row_to_point(row)

    def count(self) -> int:
        row = self._fetch_one("SELECT COUNT(*) AS n FROM price_history")
        return row["n"]

    def close(self):
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    def _write(self, points: List[PricePoint]):
        try:
            with self._lock, self._conn:
                self._conn.executemany(
                    "INSERT OR REPLACE INTO price_history (price, stamp) VALUES (?, ?)",
                    [(p.price, p.stamp) for p in points],
                )
        except sqlite3.Error as e:
            raise StorageError(f"price insert failed: {e}") from e

    def _fetch_one(self, sql: str, params=()):
        try:
            with self._lock:
                return self._conn.execute(sql, params).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"price query failed: {e}") from e

    def _fetch_all(self, sql: str, params=()):
        try:
            with self._lock:
                return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"price query failed: {e}") from e
