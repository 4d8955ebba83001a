"""HTTP routes under /api.

Each route checks the method, parses the JSON body where there is one,
calls the service and turns its FeedResult into a JSON response.
"""

import json
from typing import Any, Awaitable, Callable, Optional
from aiohttp import web
from loguru import logger

from logic.formatting import iso_timestamp
from services.analysis import AnalysisService
from services.feeds import FeedResult, FeedService
from services.notifications import NotificationService
from services.settings import Settings


class InvalidBody(Exception):
    """Request body is not a JSON object."""


def _dumps(obj: Any) -> str:
    return json.dumps(obj, default=str)


def to_response(result: FeedResult) -> web.Response:
    headers = {"Cache-Control": result.cache_control} if result.cache_control else None
    return web.json_response(result.body, status=result.status, headers=headers, dumps=_dumps)


def method_not_allowed() -> web.Response:
    return web.json_response({"error": "Method not allowed"}, status=405)


async def read_json_body(request: web.Request) -> dict:
    """Parse the request body; an empty body is treated as {}."""
    text = await request.text()
    if not text.strip():
        return {}
    try:
        body = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidBody(str(e)) from e
    if not isinstance(body, dict):
        raise InvalidBody("Body must be a JSON object")
    return body


class ApiHandlers:
    """Maps /api routes onto the feed, analysis and notification services."""

    def __init__(
        self,
        feeds: FeedService,
        analysis: AnalysisService,
        notifications: NotificationService,
        settings: Optional[Settings] = None,
        stats_provider: Optional[Callable[[], dict]] = None,
    ):
        self.feeds = feeds
        self.analysis = analysis
        self.notifications = notifications
        self.settings = settings or Settings()
        self._stats_provider = stats_provider

        # path -> (allowed methods, handler, takes a JSON body)
        self.routes: dict[str, tuple[tuple[str, ...], Callable[..., Awaitable[FeedResult]], bool]] = {
            "/api/changelog": (("GET",), feeds.changelog, False),
            "/api/polymarket": (("GET",), feeds.polymarket, False),
            "/api/kalshi": (("GET",), feeds.kalshi_markets, False),
            "/api/nyc-311": (("GET",), feeds.nyc_311, False),
            "/api/nyc-budget": (("GET",), feeds.nyc_budget, False),
            "/api/nyc-legislation": (("GET",), feeds.nyc_legislation, False),
            "/api/nyc-mmr": (("GET",), feeds.nyc_mmr, False),
            "/api/firecrawl-search": (("GET",), feeds.news, False),
            "/api/platform-promises": (("GET",), feeds.platform_promises, False),
            "/api/comet-mamdani": (("GET", "POST"), feeds.comet_videos, False),
            "/api/trends": (("GET",), feeds.trends, False),
            "/api/promise-completion": (("POST",), analysis.promise_completion, True),
            "/api/promise-enrichment": (("POST",), analysis.promise_enrichment, True),
            "/api/claude-alerts": (("POST",), analysis.notable_alerts, True),
            "/api/save-market-snapshot": (("POST",), notifications.save_market_snapshot, True),
            "/api/check-breaking-alerts": (("POST",), notifications.check_breaking_alerts, True),
            "/api/subscribe": (("POST",), notifications.subscribe, True),
            "/api/send-weekly-digest": (("POST",), notifications.send_weekly_digest, False),
        }

    def register(self, app: web.Application) -> None:
        for path in self.routes:
            app.router.add_route("*", path, self._dispatch)
        app.router.add_route("*", "/api/health", self._handle_health)
        logger.debug(f"Registered {len(self.routes) + 1} API routes")

    async def _dispatch(self, request: web.Request) -> web.Response:
        methods, handler, takes_body = self.routes[request.path]
        if request.method not in methods:
            return method_not_allowed()

        if not takes_body:
            return to_response(await handler())

        try:
            body = await read_json_body(request)
        except InvalidBody as e:
            logger.warning(f"Invalid JSON body for {request.path}: {e}")
            return web.json_response({"error": "Invalid JSON body"}, status=400)

        return to_response(await handler(body))

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Which credentials are configured, never their values."""
        if request.method != "GET":
            return method_not_allowed()

        payload = {
            "status": "ok",
            "timestamp": iso_timestamp(),
            "credentials": self.settings.credential_status(),
            "supabaseConfigured": self.settings.supabase_configured,
        }
        if self._stats_provider:
            payload["poller"] = self._stats_provider()
        return web.json_response(payload)
