"""Async SQLite history store.

Local stand-in for the hosted Supabase store: same three tables
(market_history, breaking_alerts_sent, notable_alerts) and the same
operations. Used when Supabase is not configured, and in tests.

Timestamps are stored as ISO-8601 UTC strings with a Z suffix, so
string comparison orders them correctly.
"""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Optional
import aiosqlite
from loguru import logger

from data.models import MarketSnapshot, NotableAlert
from logic.formatting import iso_timestamp


SCHEMA = """
-- Market price snapshots (one row per market per snapshot run)
CREATE TABLE IF NOT EXISTS market_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    market_id TEXT NOT NULL,
    market_title TEXT,
    source TEXT,
    yes_price REAL,
    volume REAL,
    liquidity REAL,
    recorded_at TEXT NOT NULL
);

-- Breaking alerts already emailed
CREATE TABLE IF NOT EXISTS breaking_alerts_sent (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    market_id TEXT NOT NULL,
    alert_type TEXT NOT NULL,
    sent_at TEXT NOT NULL
);

-- LLM alerts awaiting the weekly digest
CREATE TABLE IF NOT EXISTS notable_alerts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    type TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    url TEXT,
    source TEXT,
    sent_in_digest INTEGER DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_market_history_market ON market_history(market_id, recorded_at);
CREATE INDEX IF NOT EXISTS idx_alerts_sent_market ON breaking_alerts_sent(market_id, alert_type, sent_at);
CREATE INDEX IF NOT EXISTS idx_notable_alerts_digest ON notable_alerts(sent_in_digest, created_at);
"""


class LocalHistoryStore:
    """Async SQLite store for market history and alert logs.

    All operations are serialized through one connection and lock.
    """

    def __init__(self, db_path: str = "data/history.db"):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file (":memory:" for a throwaway store)
        """
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    @property
    def is_configured(self) -> bool:
        return True

    async def connect(self) -> None:
        """Establish database connection and create tables."""
        async with self._lock:
            if self._connection is None:
                self._connection = await aiosqlite.connect(self.db_path)
                self._connection.row_factory = aiosqlite.Row
                await self._connection.executescript(SCHEMA)
                await self._connection.commit()
                logger.info(f"LocalHistoryStore connected: {self.db_path}")

    async def close(self) -> None:
        async with self._lock:
            if self._connection:
                await self._connection.close()
                self._connection = None
                logger.info("LocalHistoryStore closed")

    async def _ensure_connected(self) -> aiosqlite.Connection:
        if self._connection is None:
            await self.connect()
        return self._connection

    # =========================================================================
    # Market History
    # =========================================================================

    async def save_snapshots(self, snapshots: list[MarketSnapshot], recorded_at: Optional[datetime] = None) -> int:
        """Insert one market_history row per snapshot.

        Args:
            snapshots: Rows to insert
            recorded_at: Row timestamp (defaults to now)

        Returns:
            Number of rows saved
        """
        conn = await self._ensure_connected()
        timestamp = iso_timestamp(recorded_at)

        async with self._lock:
            await conn.executemany("""
                INSERT INTO market_history (
                    market_id, market_title, source, yes_price, volume, liquidity, recorded_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, [
                (s.market_id, s.market_title, s.source, s.yes_price, s.volume, s.liquidity, timestamp)
                for s in snapshots
            ])
            await conn.commit()

        logger.debug(f"Saved {len(snapshots)} market snapshots")
        return len(snapshots)

    async def get_price_before(self, market_id: str, before: datetime) -> Optional[float]:
        """Latest recorded YES price at or before a time.

        Returns:
            The price, or None when there is no row (or its price is null)
        """
        conn = await self._ensure_connected()

        async with self._lock:
            cursor = await conn.execute("""
                SELECT yes_price FROM market_history
                WHERE market_id = ? AND recorded_at <= ?
                ORDER BY recorded_at DESC LIMIT 1
            """, (market_id, iso_timestamp(before)))
            row = await cursor.fetchone()

        return row["yes_price"] if row else None

    # =========================================================================
    # Breaking Alerts
    # =========================================================================

    async def alert_sent_since(self, market_id: str, alert_type: str, since: datetime) -> bool:
        conn = await self._ensure_connected()

        async with self._lock:
            cursor = await conn.execute("""
                SELECT 1 FROM breaking_alerts_sent
                WHERE market_id = ? AND alert_type = ? AND sent_at >= ?
                LIMIT 1
            """, (market_id, alert_type, iso_timestamp(since)))
            row = await cursor.fetchone()

        return row is not None

    async def record_alert_sent(self, market_id: str, alert_type: str, sent_at: Optional[datetime] = None) -> None:
        conn = await self._ensure_connected()

        async with self._lock:
            await conn.execute(
                "INSERT INTO breaking_alerts_sent (market_id, alert_type, sent_at) VALUES (?, ?, ?)",
                (market_id, alert_type, iso_timestamp(sent_at)),
            )
            await conn.commit()

    # =========================================================================
    # Notable Alerts
    # =========================================================================

    async def save_notable_alerts(self, alerts: list[NotableAlert], created_at: Optional[datetime] = None) -> int:
        """Queue alerts for the weekly digest.

        Returns:
            Number of alerts saved
        """
        conn = await self._ensure_connected()
        timestamp = iso_timestamp(created_at)

        async with self._lock:
            await conn.executemany("""
                INSERT INTO notable_alerts (type, title, description, url, source, sent_in_digest, created_at)
                VALUES (?, ?, ?, ?, ?, 0, ?)
            """, [
                (a.type, a.title, a.description, a.url, a.source, timestamp)
                for a in alerts
            ])
            await conn.commit()

        return len(alerts)

    async def get_unsent_notable_alerts(self, start: datetime, end: datetime) -> list[dict]:
        """Alerts not yet in a digest, created within [start, end], newest first."""
        conn = await self._ensure_connected()

        async with self._lock:
            cursor = await conn.execute("""
                SELECT * FROM notable_alerts
                WHERE sent_in_digest = 0 AND created_at >= ? AND created_at <= ?
                ORDER BY created_at DESC
            """, (iso_timestamp(start), iso_timestamp(end)))
            rows = await cursor.fetchall()

        return [{**dict(row), "sent_in_digest": bool(row["sent_in_digest"])} for row in rows]

    async def mark_alerts_sent(self, alert_ids: list) -> None:
        if not alert_ids:
            return
        conn = await self._ensure_connected()
        placeholders = ", ".join("?" for _ in alert_ids)

        async with self._lock:
            await conn.execute(
                f"UPDATE notable_alerts SET sent_in_digest = 1 WHERE id IN ({placeholders})",
                list(alert_ids),
            )
            await conn.commit()
