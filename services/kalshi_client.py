"""Kalshi API client.

Read-only access to public market data on the elections subdomain,
which serves all Kalshi markets. No authentication is needed.
"""

from typing import Optional
import httpx
from loguru import logger

from services.http_client import UpstreamClient


class KalshiClient(UpstreamClient):
    """Client for Kalshi prediction market API."""

    BASE_URL = "https://api.elections.kalshi.com/trade-api/v2"

    def __init__(self, base_url: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(base_url=base_url, transport=transport)
        logger.info(f"KalshiClient initialized | {self.base_url}")

    async def get_markets(self,
                          limit: int = 1000,
                          cursor: Optional[str] = None,
                          status: Optional[str] = None) -> dict:
        """Fetch one page of markets.

        Args:
            limit: Max results to return
            cursor: Pagination cursor
            status: Optional market status filter (open, closed, settled)

        Returns:
            Dict with 'markets' list and 'cursor' for pagination
        """
        params = {"limit": limit}
        if cursor:
            params["cursor"] = cursor
        if status:
            params["status"] = status
        return await self._get_json("/markets", params=params)

    async def get_market(self, ticker: str) -> dict:
        """Get single market by ticker."""
        return await self._get_json(f"/markets/{ticker}")

    async def get_events(self, status: str = "open", limit: int = 200) -> dict:
        """Fetch events (series of related markets).

        Args:
            status: Event status (open, closed, settled)
            limit: Max results per page
        """
        return await self._get_json("/events", params={"limit": limit, "status": status})
