"""Buttondown newsletter client (subscribers and email campaigns)."""

from typing import Any, Optional
import httpx
from loguru import logger

from services.http_client import UpstreamClient


class ButtondownClient(UpstreamClient):
    """Token-authenticated Buttondown API client."""

    BASE_URL = "https://api.buttondown.email/v1"

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(base_url=base_url, transport=transport)
        self._api_key = api_key
        logger.info("ButtondownClient initialized")

    def _headers(self) -> dict:
        return {
            "Authorization": f"Token {self._api_key}",
            "Content-Type": "application/json",
        }

    async def subscribe(self, email: str, tags: Optional[list[str]] = None) -> tuple[int, Any]:
        """Add a subscriber.

        Non-2xx answers are returned rather than raised, since a 409
        (already subscribed) is an expected outcome.

        Returns:
            (HTTP status, decoded body or {} when the body is not JSON)
        """
        async with self._client() as client:
            response = await client.post("/subscribers", json={"email": email, "tags": tags or []})
            try:
                data = response.json()
            except ValueError:
                data = {}
            return response.status_code, data

    async def send_email(self, subject: str, body: str, tags: list[str]) -> dict:
        """Publish an email to the subscribers carrying any of ``tags``.

        Raises:
            httpx.HTTPStatusError: If Buttondown rejects the email
        """
        return await self._post_json("/emails", {
            "subject": subject,
            "body": body,
            "email_type": "public",
            "tags": tags,
        })
