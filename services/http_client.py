"""Shared plumbing for upstream JSON API clients.

Each request opens a short-lived ``httpx.AsyncClient`` (30 s timeout),
raises on non-2xx via ``raise_for_status`` and returns the decoded JSON.
A transport can be injected so tests can serve canned responses with
``httpx.MockTransport``.
"""

from typing import Any, Optional
import httpx


DEFAULT_TIMEOUT = 30


class UpstreamClient:
    """Base class for the upstream API clients."""

    BASE_URL = ""

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self._transport = transport
        self._timeout = timeout

    def _headers(self) -> dict:
        """Headers sent with every request."""
        return {"Accept": "application/json"}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers=self._headers(),
        )

    async def _get_json(self, path: str, params: Optional[dict] = None) -> Any:
        async with self._client() as client:
            response = await client.get(path, params=params)
            response.raise_for_status()
            return response.json()

    async def _post_json(self, path: str, payload: Any) -> Any:
        async with self._client() as client:
            response = await client.post(path, json=payload)
            response.raise_for_status()
            return response.json()
