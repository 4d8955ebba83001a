"""Web server: JSON feed API plus live dashboard state over WebSocket."""

import json
from datetime import datetime
from typing import Optional
from dataclasses import dataclass, asdict
from aiohttp import web
import aiohttp
from loguru import logger

from logic.formatting import iso_timestamp, utc_now


@dataclass
class DashboardEvent:
    """Event to send to dashboard."""
    type: str  # 'init', 'feed_update', 'status'
    timestamp: str
    data: dict

    def to_json(self) -> str:
        return json.dumps(asdict(self), default=str)


class Dashboard:
    """Web server for the feed API and live dashboard updates."""

    def __init__(self, host: str = "0.0.0.0", port: int = 8080, api=None):
        """Initialize the dashboard server.

        Args:
            host: Bind address
            port: Bind port
            api: ApiHandlers whose routes are mounted on the same app
        """
        self.host = host
        self.port = port
        self.api = api
        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self._websockets: set[web.WebSocketResponse] = set()

        # State
        self._feeds: dict[str, object] = {}
        self._feed_updated_at: dict[str, str] = {}
        self._status = "ERROR"
        self._last_updated: Optional[datetime] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get('/ws', self._handle_websocket)
        app.router.add_get('/api/state', self._handle_state)
        if self.api is not None:
            self.api.register(app)
        return app

    async def start(self) -> None:
        """Start the server."""
        self._app = self.build_app()

        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()

        logger.info(f"Dashboard running at http://localhost:{self.port}")

    async def stop(self) -> None:
        """Stop the server."""
        for ws in list(self._websockets):
            await ws.close()
        self._websockets.clear()

        if self._runner:
            await self._runner.cleanup()

    def snapshot(self) -> dict:
        return {
            'status': self._status,
            'lastUpdated': iso_timestamp(self._last_updated) if self._last_updated else None,
            'feeds': dict(self._feeds),
            'feedUpdatedAt': dict(self._feed_updated_at),
        }

    async def _handle_state(self, request: web.Request) -> web.Response:
        """Return current state as JSON."""
        return web.json_response(self.snapshot(), dumps=lambda obj: json.dumps(obj, default=str))

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Handle WebSocket connection for real-time updates."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self._websockets.add(ws)
        logger.debug(f"Dashboard client connected ({len(self._websockets)} total)")

        # Send current state
        await ws.send_str(DashboardEvent(
            type='init',
            timestamp=iso_timestamp(),
            data=self.snapshot(),
        ).to_json())

        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.ERROR:
                    break
        finally:
            self._websockets.discard(ws)
            logger.debug(f"Dashboard client disconnected ({len(self._websockets)} total)")

        return ws

    async def _broadcast(self, event: DashboardEvent) -> None:
        """Broadcast event to all connected clients."""
        if not self._websockets:
            return

        message = event.to_json()
        dead = set()

        for ws in list(self._websockets):
            try:
                await ws.send_str(message)
            except (ConnectionResetError, RuntimeError) as e:
                logger.debug(f"Dropping dashboard client: {e}")
                dead.add(ws)

        self._websockets -= dead

    # Public methods for the poller to call

    async def feed_updated(self, feed: str, payload) -> None:
        """Called after a feed refresh."""
        now = utc_now()
        self._feeds[feed] = payload
        self._feed_updated_at[feed] = iso_timestamp(now)
        self._last_updated = now

        await self._broadcast(DashboardEvent(
            type='feed_update',
            timestamp=iso_timestamp(now),
            data={'feed': feed, 'payload': payload},
        ))

    async def update_status(self, status: str) -> None:
        """Called when the poller's overall status changes."""
        if status == self._status:
            return
        self._status = status

        await self._broadcast(DashboardEvent(
            type='status',
            timestamp=iso_timestamp(),
            data={'status': status},
        ))

    def get_stats(self) -> dict:
        return {
            'clients': len(self._websockets),
            'feeds': len(self._feeds),
            'status': self._status,
        }
