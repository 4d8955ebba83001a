"""Firecrawl client for web search and page scraping."""

from typing import Optional
import httpx
from loguru import logger

from services.http_client import UpstreamClient


class FirecrawlClient(UpstreamClient):
    """Paid search/scrape API. Every call is billed, so callers cache."""

    BASE_URL = "https://api.firecrawl.dev/v1"

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url=base_url, transport=transport)
        self._api_key = api_key
        logger.info("FirecrawlClient initialized")

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def search(self, query: str, limit: int = 10) -> dict:
        """Web search.

        Returns:
            Raw response (results under 'data' or 'results', or a bare list)
        """
        return await self._post_json("/search", {"query": query, "limit": limit})

    async def scrape(self, url: str, wait_for_ms: int = 2000, timeout_ms: int = 30000) -> dict:
        """Scrape one page's main content as markdown and html."""
        return await self._post_json("/scrape", {
            "url": url,
            "formats": ["markdown", "html"],
            "onlyMainContent": True,
            "waitFor": wait_for_ms,
            "timeout": timeout_ms,
        })
