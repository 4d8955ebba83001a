"""GitHub REST client for the changelog feed."""

from typing import Optional
import httpx
from loguru import logger

from services.http_client import UpstreamClient


class GitHubClient(UpstreamClient):
    """Reads public commit history."""

    BASE_URL = "https://api.github.com"
    USER_AGENT = "MonitorMamdani-Changelog"

    def __init__(self, base_url: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(base_url=base_url, transport=transport)
        logger.info("GitHubClient initialized")

    def _headers(self) -> dict:
        return {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": self.USER_AGENT,
        }

    async def get_commits(self, repo: str, per_page: int = 20) -> list:
        """Most recent commits of ``owner/name``.

        Raises:
            httpx.HTTPStatusError: If the repo is missing or private
            ValueError: If GitHub answers with something other than a list
        """
        data = await self._get_json(f"/repos/{repo}/commits", params={"per_page": per_page})
        if not isinstance(data, list):
            raise ValueError("Invalid response format from GitHub API")
        return data
