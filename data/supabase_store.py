"""Supabase (PostgREST) history store.

Hosted counterpart of ``LocalHistoryStore`` with the same operations,
backed by three tables served over REST:
- market_history: price snapshots
- breaking_alerts_sent: breaking alerts already emailed
- notable_alerts: LLM alerts awaiting the weekly digest

Upstream errors surface as ``httpx.HTTPStatusError``.
"""

from datetime import datetime
from typing import Any, Optional
import httpx
from loguru import logger

from data.models import MarketSnapshot, NotableAlert
from logic.formatting import iso_timestamp


class SupabaseStore:
    """Async PostgREST client for the history tables."""

    TIMEOUT = 30

    def __init__(
        self,
        url: Optional[str],
        key: Optional[str],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the store.

        Args:
            url: Project URL (https://<project>.supabase.co)
            key: Service or anon key
            transport: Optional httpx transport (tests)
        """
        self.url = (url or "").rstrip("/")
        self._key = key
        self._transport = transport

        logger.info(f"SupabaseStore initialized | Configured: {self.is_configured}")

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self._key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.url}/rest/v1",
            timeout=self.TIMEOUT,
            transport=self._transport,
            headers={
                "apikey": self._key or "",
                "Authorization": f"Bearer {self._key}",
                "Content-Type": "application/json",
            },
        )

    async def _select(self, table: str, params: list[tuple[str, Any]]) -> list[dict]:
        async with self._client() as client:
            response = await client.get(f"/{table}", params=params)
            response.raise_for_status()
            return response.json()

    async def _insert(self, table: str, rows: Any) -> None:
        async with self._client() as client:
            response = await client.post(f"/{table}", json=rows, headers={"Prefer": "return=minimal"})
            response.raise_for_status()

    # =========================================================================
    # Market History
    # =========================================================================

    async def save_snapshots(self, snapshots: list[MarketSnapshot], recorded_at: Optional[datetime] = None) -> int:
        """Bulk insert market_history rows.

        ``recorded_at`` is left to the table default unless given.
        """
        rows = [s.model_dump() for s in snapshots]
        if recorded_at is not None:
            timestamp = iso_timestamp(recorded_at)
            rows = [{**row, "recorded_at": timestamp} for row in rows]

        await self._insert("market_history", rows)
        logger.debug(f"Saved {len(rows)} market snapshots")
        return len(rows)

    async def get_price_before(self, market_id: str, before: datetime) -> Optional[float]:
        rows = await self._select("market_history", [
            ("market_id", f"eq.{market_id}"),
            ("recorded_at", f"lte.{iso_timestamp(before)}"),
            ("order", "recorded_at.desc"),
            ("limit", 1),
        ])
        if not rows:
            return None
        return rows[0].get("yes_price")

    # =========================================================================
    # Breaking Alerts
    # =========================================================================

    async def alert_sent_since(self, market_id: str, alert_type: str, since: datetime) -> bool:
        rows = await self._select("breaking_alerts_sent", [
            ("market_id", f"eq.{market_id}"),
            ("alert_type", f"eq.{alert_type}"),
            ("sent_at", f"gte.{iso_timestamp(since)}"),
        ])
        return len(rows) > 0

    async def record_alert_sent(self, market_id: str, alert_type: str, sent_at: Optional[datetime] = None) -> None:
        row = {"market_id": market_id, "alert_type": alert_type}
        if sent_at is not None:
            row["sent_at"] = iso_timestamp(sent_at)
        await self._insert("breaking_alerts_sent", row)

    # =========================================================================
    # Notable Alerts
    # =========================================================================

    async def save_notable_alerts(self, alerts: list[NotableAlert], created_at: Optional[datetime] = None) -> int:
        rows = [
            {
                "type": a.type,
                "title": a.title,
                "description": a.description,
                "url": a.url,
                "source": a.source,
                "sent_in_digest": False,
            }
            for a in alerts
        ]
        if created_at is not None:
            timestamp = iso_timestamp(created_at)
            rows = [{**row, "created_at": timestamp} for row in rows]

        await self._insert("notable_alerts", rows)
        return len(rows)

    async def get_unsent_notable_alerts(self, start: datetime, end: datetime) -> list[dict]:
        return await self._select("notable_alerts", [
            ("sent_in_digest", "eq.false"),
            ("created_at", f"gte.{iso_timestamp(start)}"),
            ("created_at", f"lte.{iso_timestamp(end)}"),
            ("order", "created_at.desc"),
        ])

    async def mark_alerts_sent(self, alert_ids: list) -> None:
        if not alert_ids:
            return
        id_list = ",".join(str(alert_id) for alert_id in alert_ids)
        async with self._client() as client:
            response = await client.patch(
                "/notable_alerts",
                params={"id": f"in.({id_list})"},
                json={"sent_in_digest": True},
            )
            response.raise_for_status()
