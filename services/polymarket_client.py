"""Polymarket Gamma API client (public market metadata)."""

from typing import Optional
import httpx
from loguru import logger

from services.http_client import UpstreamClient


class GammaClient(UpstreamClient):
    """Client for the Polymarket Gamma events API."""

    BASE_URL = "https://gamma-api.polymarket.com"

    def __init__(self, base_url: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(base_url=base_url, transport=transport)
        logger.info(f"GammaClient initialized | {self.base_url}")

    async def get_event_by_slug(self, slug: str) -> dict:
        """Fetch one event (with its markets) by slug."""
        return await self._get_json(f"/events/slug/{slug}")

    async def get_events(self, limit: int = 100, closed: bool = False) -> list:
        """Fetch a page of events, newest first.

        Args:
            limit: Max events to return
            closed: Include closed events
        """
        params = {
            "closed": str(closed).lower(),
            "limit": limit,
            "ascending": "false",
        }
        return await self._get_json("/events", params=params)
