"""Tiered feed poller.

Re-fetches every feed on one of three schedules and keeps the latest
payload per feed:
- fast (60 s): prediction markets, videos, trends
- hourly (1 h): news, then LLM alerts, promise tracking, market snapshot
  and breaking-alert check
- daily (24 h): campaign promises, NYC datasets, changelog

Within a stage, jobs run concurrently and one failure never cancels the
others. Later stages of a tier read what earlier stages just stored.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional
from loguru import logger

from logic.formatting import iso_timestamp, utc_now
from services.analysis import AnalysisService
from services.feeds import FeedResult, FeedService
from services.notifications import NotificationService


# (feed name, payload)
UpdateCallback = Callable[[str, Any], Awaitable[None]]
StatusCallback = Callable[[str], Awaitable[None]]

Job = Callable[[], Awaitable[FeedResult]]


@dataclass
class PollerConfig:
    """Refresh intervals for each tier."""

    fast_seconds: int = 60
    hourly_seconds: int = 3600
    daily_seconds: int = 86400

    # Pause after an unexpected loop error before the next cycle
    error_backoff_seconds: int = 60


@dataclass
class Tier:
    name: str
    interval_seconds: int
    stages: list[list[str]] = field(default_factory=list)


def feed_succeeded(result: FeedResult) -> bool:
    """A 2xx response without an 'error' field."""
    if result.status >= 400:
        return False
    if isinstance(result.body, dict) and result.body.get("error"):
        return False
    return True


class FeedPoller:
    """Keeps the dashboard state fresh by polling feeds in tiers."""

    def __init__(
        self,
        feeds: FeedService,
        analysis: AnalysisService,
        notifications: NotificationService,
        config: Optional[PollerConfig] = None,
        on_update: Optional[UpdateCallback] = None,
        on_status: Optional[StatusCallback] = None,
    ):
        """Initialize the poller.

        Args:
            feeds: Feed endpoints
            analysis: Promise and alert analysis
            notifications: Snapshot and breaking-alert actions
            config: Tier intervals
            on_update: Callback after each feed refresh
            on_status: Callback with LIVE/ERROR after each tier refresh
        """
        self.feeds = feeds
        self.analysis = analysis
        self.notifications = notifications
        self.config = config or PollerConfig()
        self._on_update = on_update
        self._on_status = on_status

        self._jobs: dict[str, Job] = {
            "polymarket": feeds.polymarket,
            "kalshi": feeds.kalshi_markets,
            "videos": feeds.comet_videos,
            "trends": feeds.trends,
            "news": feeds.news,
            "alerts": self._alerts,
            "promiseCompletion": self._promise_completion,
            "promiseEnrichment": self._promise_enrichment,
            "marketSnapshot": self._snapshot_and_check,
            "promises": feeds.platform_promises,
            "nyc311": feeds.nyc_311,
            "nycBudget": feeds.nyc_budget,
            "nycLegislation": feeds.nyc_legislation,
            "nycMmr": feeds.nyc_mmr,
            "changelog": feeds.changelog,
        }

        self.tiers = [
            Tier("fast", self.config.fast_seconds, [["polymarket", "kalshi", "videos", "trends"]]),
            Tier("hourly", self.config.hourly_seconds, [
                ["news"],
                ["alerts", "promiseCompletion", "promiseEnrichment", "marketSnapshot"],
            ]),
            Tier("daily", self.config.daily_seconds, [
                ["promises", "nyc311", "nycBudget", "nycLegislation", "nycMmr", "changelog"],
            ]),
        ]

        self._state: dict[str, Any] = {}
        self._feed_ok: dict[str, bool] = {}
        self._last_cycle_ok = False
        self._last_refresh: Optional[datetime] = None
        self._running = False
        self._tasks: list[asyncio.Task] = []
        self._total_cycles = 0

        logger.info(
            f"FeedPoller initialized | Fast: {self.config.fast_seconds}s | "
            f"Hourly: {self.config.hourly_seconds}s | Daily: {self.config.daily_seconds}s"
        )

    # =========================================================================
    # State
    # =========================================================================

    @property
    def status(self) -> str:
        """LIVE when any feed in the last cycle succeeded, else ERROR."""
        return "LIVE" if self._last_cycle_ok else "ERROR"

    def payload(self, feed: str, default: Any = None) -> Any:
        return self._state.get(feed, default)

    def _items(self, feed: str, key: str) -> list:
        data = self._state.get(feed)
        if isinstance(data, dict) and isinstance(data.get(key), list):
            return data[key]
        return []

    def all_markets(self) -> list[dict]:
        return self._items("polymarket", "markets") + self._items("kalshi", "markets")

    def get_state(self) -> dict:
        return {
            "status": self.status,
            "lastUpdated": iso_timestamp(self._last_refresh) if self._last_refresh else None,
            "feeds": dict(self._state),
            "feedStatus": {name: ("LIVE" if ok else "ERROR") for name, ok in self._feed_ok.items()},
        }

    # =========================================================================
    # Derived jobs
    # =========================================================================

    async def _alerts(self) -> FeedResult:
        return await self.analysis.notable_alerts({
            "videos": self._items("videos", "items"),
            "news": self._items("news", "items"),
            "markets": self._items("polymarket", "markets"),
        })

    async def _promise_completion(self) -> FeedResult:
        return await self.analysis.promise_completion({
            "promises": self._items("promises", "promises"),
            "news": self._items("news", "items"),
            "videos": self._items("videos", "items"),
        })

    async def _promise_enrichment(self) -> FeedResult:
        return await self.analysis.promise_enrichment({
            "promises": self._items("promises", "promises"),
            "markets": self._items("polymarket", "markets"),
            "kalshiMarkets": self._items("kalshi", "markets"),
            "news": self._items("news", "items"),
            "videos": self._items("videos", "items"),
        })

    async def _snapshot_and_check(self) -> FeedResult:
        """Record prices, then look for breaking moves against history."""
        markets = self.all_markets()
        if not markets:
            return FeedResult(body={"success": True, "saved": 0})

        snapshot = await self.notifications.save_market_snapshot({"markets": markets})
        if self.notifications.can_email:
            check = await self.notifications.check_breaking_alerts({"markets": markets})
            if not feed_succeeded(check):
                logger.warning(f"Breaking-alert check failed: {check.body}")
        return snapshot

    # =========================================================================
    # Refresh
    # =========================================================================

    async def _run_job(self, name: str) -> bool:
        result = await self._jobs[name]()
        ok = feed_succeeded(result)
        self._state[name] = result.body
        self._feed_ok[name] = ok

        if self._on_update:
            try:
                await self._on_update(name, result.body)
            except Exception as e:
                logger.error(f"Error in update callback for {name}: {e}")
        return ok

    async def refresh_tier(self, tier: Tier) -> dict[str, bool]:
        """Run every stage of a tier.

        Returns:
            Success flag per feed (False for feeds whose job raised)
        """
        outcomes: dict[str, bool] = {}
        for stage in tier.stages:
            results = await asyncio.gather(
                *(self._run_job(name) for name in stage),
                return_exceptions=True,
            )
            for name, result in zip(stage, results):
                if isinstance(result, BaseException):
                    logger.error(f"Feed {name} failed: {result}")
                    self._feed_ok[name] = False
                    outcomes[name] = False
                else:
                    outcomes[name] = result

        self._last_cycle_ok = any(outcomes.values())
        self._last_refresh = utc_now()
        self._total_cycles += 1

        if self._on_status:
            try:
                await self._on_status(self.status)
            except Exception as e:
                logger.error(f"Error in status callback: {e}")

        logger.info(
            f"Tier {tier.name} refreshed | OK: {sum(outcomes.values())}/{len(outcomes)} | "
            f"Status: {self.status}"
        )
        return outcomes

    async def refresh_all(self) -> None:
        """One pass over every tier (daily first so promises exist for hourly)."""
        by_name = {tier.name: tier for tier in self.tiers}
        for name in ("daily", "fast", "hourly"):
            await self.refresh_tier(by_name[name])

    async def start(self) -> None:
        """Refresh everything once, then schedule each tier."""
        self._running = True
        await self.refresh_all()
        self._tasks = [asyncio.create_task(self._tier_loop(tier)) for tier in self.tiers]
        logger.info("FeedPoller started")

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("FeedPoller stopped")

    async def _tier_loop(self, tier: Tier) -> None:
        while self._running:
            try:
                await asyncio.sleep(tier.interval_seconds)
                if self._running:
                    await self.refresh_tier(tier)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Tier {tier.name} refresh error: {e}")
                await asyncio.sleep(self.config.error_backoff_seconds)

    def get_stats(self) -> dict:
        return {
            "running": self._running,
            "status": self.status,
            "feeds": len(self._state),
            "total_cycles": self._total_cycles,
            "last_refresh": self._last_refresh.isoformat() if self._last_refresh else None,
        }
