"""Typed SQLite read/write abstraction for cached price history.

Rows are keyed by (range_token, timestamp_ms); a refresh replaces the whole
series for its range, so reads return exactly the last built series.
"""

from datetime import datetime, timezone

from qi_history.data.database import HistoryDatabase
from qi_history.logging import get_logger
from qi_history.models import PricePoint

logger = get_logger(__name__)


class PriceHistoryStore:
    """Async SQLite store for per-range price history rows.

    Usage:
        async with HistoryDatabase("data/qi_history.db") as database:
            store = PriceHistoryStore(database)
            rows = await store.get_history("24h")
    """

    def __init__(self, database: HistoryDatabase) -> None:
        self._database = database

    async def get_history(self, range_token: str) -> list[dict]:
        """Return cached rows for a range, ascending by timestamp."""
        cursor = await self._database.db.execute(
            "SELECT timestamp_ms, price, block_number_hex FROM qi_price_history "
            "WHERE range_token = ? ORDER BY timestamp_ms ASC",
            (range_token,),
        )
        rows = await cursor.fetchall()
        return [
            {
                "timestamp_ms": row[0],
                "price": row[1],
                "block_number_hex": row[2],
            }
            for row in rows
        ]

    async def latest_timestamp(self, range_token: str) -> int | None:
        """Return the newest cached timestamp for a range, or None if empty."""
        cursor = await self._database.db.execute(
            "SELECT MAX(timestamp_ms) FROM qi_price_history WHERE range_token = ?",
            (range_token,),
        )
        row = await cursor.fetchone()
        return row[0] if row is not None else None

    async def upsert_history(
        self,
        range_token: str,
        points: list[PricePoint],
        fetched_at: datetime | None = None,
    ) -> list[dict]:
        """Replace the stored series for a range; returns the written rows.

        Rows from earlier refreshes are deleted in the same transaction, so
        a range never holds more than one built series.
        """
        if not points:
            return []

        fetched = (fetched_at or datetime.now(timezone.utc)).isoformat()
        rows = [
            {"range": range_token, **point.to_dict(), "fetched_at": fetched}
            for point in points
        ]

        db = self._database.db
        try:
            await db.execute(
                "DELETE FROM qi_price_history WHERE range_token = ?",
                (range_token,),
            )
            await db.executemany(
                "INSERT OR REPLACE INTO qi_price_history "
                "(range_token, timestamp_ms, price, block_number_hex, fetched_at) "
                "VALUES (?, ?, ?, ?, ?)",
                [
                    (
                        r["range"],
                        r["timestamp_ms"],
                        r["price"],
                        r["block_number_hex"],
                        r["fetched_at"],
                    )
                    for r in rows
                ],
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.debug("history_rows_replaced", range=range_token, rows=len(rows))
        return rows
