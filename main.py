"""Main entry point for the Monitor Mamdani civic dashboard backend.

Serves the /api feed endpoints and keeps a live dashboard state fresh
by polling every feed on a tiered schedule.
"""

import asyncio
import signal
import sys
from typing import Optional

from dotenv import load_dotenv
from loguru import logger

from data.database import LocalHistoryStore
from data.supabase_store import SupabaseStore
from logic.ai_alerts import AIAnalyst
from logic.cache import DailyCache
from services.analysis import AnalysisService
from services.api import ApiHandlers
from services.buttondown_client import ButtondownClient
from services.dashboard import Dashboard
from services.feeds import FeedService
from services.firecrawl_client import FirecrawlClient
from services.github_client import GitHubClient
from services.kalshi_client import KalshiClient
from services.notifications import NotificationService
from services.poller import FeedPoller, PollerConfig
from services.polymarket_client import GammaClient
from services.settings import Settings
from services.socrata_client import SocrataClient
from services.virlo_client import VirloClient


# Load environment variables
load_dotenv()


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure logging with loguru.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for log output
    """
    # Remove default handler
    logger.remove()

    # Add console handler with custom format
    logger.add(
        sys.stderr,
        level=log_level,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        ),
        colorize=True,
    )

    # Add file handler if specified
    if log_file:
        logger.add(
            log_file,
            level=log_level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}",
            rotation="10 MB",
            retention="7 days",
            compression="gz",
        )


def build_store(settings: Settings):
    """Supabase when configured, else the local SQLite store."""
    if settings.supabase_configured:
        return SupabaseStore(settings.supabase_url, settings.supabase_key)
    logger.warning(f"Supabase not configured - using local history store at {settings.history_db_path}")
    return LocalHistoryStore(settings.history_db_path)


class CivicMonitor:
    """Main orchestrator.

    Wires upstream clients into the feed, analysis and notification
    services, mounts them on the web server and runs the poller.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._running = False

        cache = DailyCache()
        self.store = build_store(settings)

        self.feeds = FeedService(
            github=GitHubClient(),
            gamma=GammaClient(),
            kalshi=KalshiClient(),
            socrata=SocrataClient(),
            cache=cache,
            firecrawl=FirecrawlClient(settings.firecrawl_api_key) if settings.firecrawl_api_key else None,
            virlo=VirloClient(settings.virlo_api_key) if settings.virlo_api_key else None,
            github_repo=settings.github_repo,
        )
        self.analysis = AnalysisService(
            cache=cache,
            analyst=AIAnalyst(api_key=settings.anthropic_api_key),
            store=self.store,
        )
        self.notifications = NotificationService(
            store=self.store,
            newsletter=ButtondownClient(settings.buttondown_api_key) if settings.buttondown_api_key else None,
        )

        self.dashboard = Dashboard(host=settings.host, port=settings.port)
        self.poller = FeedPoller(
            self.feeds,
            self.analysis,
            self.notifications,
            config=PollerConfig(
                fast_seconds=settings.poll_fast_seconds,
                hourly_seconds=settings.poll_hourly_seconds,
                daily_seconds=settings.poll_daily_seconds,
            ),
            on_update=self.dashboard.feed_updated,
            on_status=self.dashboard.update_status,
        )
        self.dashboard.api = ApiHandlers(
            self.feeds,
            self.analysis,
            self.notifications,
            settings=settings,
            stats_provider=self.poller.get_stats,
        )

    async def start(self) -> None:
        if self._running:
            logger.warning("CivicMonitor already running")
            return

        self._running = True

        logger.info("=" * 60)
        logger.info("MONITOR MAMDANI STARTING")
        logger.info("=" * 60)
        for name, status in self.settings.credential_status().items():
            logger.info(f"{name}: {status}")

        if isinstance(self.store, LocalHistoryStore):
            await self.store.connect()

        await self.dashboard.start()

        if self.settings.poller_enabled:
            await self.poller.start()
        else:
            logger.info("Poller disabled - serving on-demand requests only")

        logger.info("CivicMonitor started successfully")

    async def stop(self) -> None:
        """Stop gracefully."""
        if not self._running:
            return

        logger.info("Stopping CivicMonitor...")
        self._running = False

        await self.poller.stop()
        await self.dashboard.stop()

        if isinstance(self.store, LocalHistoryStore):
            await self.store.close()

        stats = self.poller.get_stats()
        logger.info(f"Poller cycles: {stats['total_cycles']} | Last status: {stats['status']}")
        logger.info(f"AI stats: {self.analysis.analyst.get_stats()}")
        logger.info("CivicMonitor stopped")


async def serve(monitor: CivicMonitor, shutdown: asyncio.Event) -> None:
    """Run the monitor until ``shutdown`` is set, then stop it."""
    try:
        await monitor.start()

        # Keep running until a shutdown signal
        await shutdown.wait()

    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    finally:
        await monitor.stop()


async def main():
    """Main async entry point."""
    settings = Settings.from_env()

    # Setup logging
    setup_logging(settings.log_level, settings.log_file)

    monitor = CivicMonitor(settings)
    shutdown = asyncio.Event()

    # Setup signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def handle_shutdown():
        logger.info("Shutdown signal received")
        shutdown.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_shutdown)

    await serve(monitor, shutdown)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
