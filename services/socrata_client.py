"""NYC Open Data (Socrata SODA) client.

Queries are expressed with SoQL parameters ($select, $where, $group,
$order, $limit) against ``/resource/{dataset}.json``.
"""

from typing import Optional
import httpx
from loguru import logger

from services.http_client import UpstreamClient


class SocrataClient(UpstreamClient):
    """Read-only client for NYC Open Data datasets."""

    BASE_URL = "https://data.cityofnewyork.us/resource"

    def __init__(self, base_url: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(base_url=base_url, transport=transport)
        logger.info(f"SocrataClient initialized | {self.base_url}")

    async def query(self, dataset: str, **soql) -> list[dict]:
        """Run a SoQL query against a dataset.

        Args:
            dataset: Dataset id, e.g. "erm2-nwe9"
            **soql: Clause values keyed without the "$" (select=, where=, order=, limit=)

        Returns:
            List of row dicts
        """
        params = {f"${name}": value for name, value in soql.items() if value is not None}
        return await self._get_json(f"/{dataset}.json", params=params)
