"""History cache persistence -- aiosqlite database and typed store."""

from qi_history.data.database import HistoryDatabase
from qi_history.data.store import PriceHistoryStore

__all__ = ["HistoryDatabase", "PriceHistoryStore"]
