"""Virlo client for social video tracking (Comet) and trend digests."""

from typing import Optional
import httpx
from loguru import logger

from services.http_client import UpstreamClient


class VirloClient(UpstreamClient):
    """Bearer-authenticated Virlo API client."""

    BASE_URL = "https://api.virlo.ai"

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url=base_url, transport=transport)
        self._api_key = api_key
        logger.info("VirloClient initialized")

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def list_comets(self):
        """Configured video trackers ({'data': [...]} or a bare list)."""
        return await self._get_json("/comet/list")

    async def get_comet_videos(self, comet_id: str, limit: int = 50):
        """Tracked videos for a comet, most viewed first."""
        params = {"limit": limit, "orderBy": "views", "orderDirection": "desc"}
        return await self._get_json(f"/comet/{comet_id}/videos", params=params)

    async def get_trends_digest(self):
        """Current trends, grouped and ranked."""
        return await self._get_json("/trends/digest")
