"""Tests for the tiered feed poller."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from services.feeds import FeedResult
from services.poller import FeedPoller, PollerConfig, feed_succeeded


def ok(body=None) -> FeedResult:
    return FeedResult(body=body if body is not None else {"items": []})


def failed() -> FeedResult:
    return FeedResult(body={"error": "Failed", "items": []})


@pytest.fixture
def feeds():
    service = AsyncMock()
    for name in ("polymarket", "kalshi_markets", "comet_videos", "trends", "news",
                 "platform_promises", "nyc_311", "nyc_budget", "nyc_legislation", "nyc_mmr", "changelog"):
        getattr(service, name).return_value = ok()
    return service


@pytest.fixture
def analysis():
    service = AsyncMock()
    service.notable_alerts.return_value = ok({"alerts": []})
    service.promise_completion.return_value = ok({"completed": 0})
    service.promise_enrichment.return_value = ok({"enrichedPromises": []})
    return service


@pytest.fixture
def notifications():
    service = MagicMock()
    service.can_email = True
    service.save_market_snapshot = AsyncMock(return_value=ok({"success": True, "saved": 1}))
    service.check_breaking_alerts = AsyncMock(return_value=ok({"success": True, "alertsSent": 0}))
    return service


@pytest.fixture
def poller(feeds, analysis, notifications):
    return FeedPoller(feeds, analysis, notifications, config=PollerConfig(fast_seconds=1))


def tier(poller, name):
    return next(t for t in poller.tiers if t.name == name)


class TestFeedSucceeded:

    def test_status_and_error_field(self):
        assert feed_succeeded(ok())
        assert not feed_succeeded(failed())
        assert not feed_succeeded(FeedResult(body={"error": "x"}, status=500))
        assert feed_succeeded(FeedResult(body=[]))


class TestRefresh:

    @pytest.mark.asyncio
    async def test_fast_tier_stores_payloads(self, poller, feeds):
        feeds.polymarket.return_value = ok({"markets": [{"id": "1"}]})

        outcomes = await poller.refresh_tier(tier(poller, "fast"))

        assert outcomes == {"polymarket": True, "kalshi": True, "videos": True, "trends": True}
        assert poller.payload("polymarket") == {"markets": [{"id": "1"}]}
        assert poller.status == "LIVE"

    @pytest.mark.asyncio
    async def test_one_failure_does_not_cancel_others(self, poller, feeds):
        """A raising job is recorded as failed while its siblings still land."""
        feeds.kalshi_markets.side_effect = RuntimeError("boom")
        feeds.trends.return_value = failed()

        outcomes = await poller.refresh_tier(tier(poller, "fast"))

        assert outcomes["kalshi"] is False
        assert outcomes["trends"] is False
        assert outcomes["polymarket"] is True
        assert poller.get_state()["feedStatus"]["kalshi"] == "ERROR"
        assert poller.status == "LIVE"

    @pytest.mark.asyncio
    async def test_all_failures_mean_error_status(self, poller, feeds):
        for name in ("polymarket", "kalshi_markets", "comet_videos", "trends"):
            getattr(feeds, name).return_value = failed()

        await poller.refresh_tier(tier(poller, "fast"))

        assert poller.status == "ERROR"

    @pytest.mark.asyncio
    async def test_hourly_stage_sees_fresh_news(self, poller, feeds, analysis):
        feeds.news.return_value = ok({"items": [{"title": "Fresh story"}]})

        await poller.refresh_tier(tier(poller, "hourly"))

        sent = analysis.notable_alerts.await_args.args[0]
        assert sent["news"] == [{"title": "Fresh story"}]

    @pytest.mark.asyncio
    async def test_derived_jobs_use_stored_promises_and_markets(self, poller, feeds, analysis):
        feeds.platform_promises.return_value = ok({"promises": [{"id": "transit"}]})
        feeds.kalshi_markets.return_value = ok({"markets": [{"id": "K1"}]})

        await poller.refresh_all()

        enrichment = analysis.promise_enrichment.await_args.args[0]
        assert enrichment["promises"] == [{"id": "transit"}]
        assert enrichment["kalshiMarkets"] == [{"id": "K1"}]

    @pytest.mark.asyncio
    async def test_snapshot_then_breaking_check(self, poller, feeds, notifications):
        feeds.polymarket.return_value = ok({"markets": [{"id": "P1"}]})
        feeds.kalshi_markets.return_value = ok({"markets": [{"id": "K1"}]})
        await poller.refresh_tier(tier(poller, "fast"))

        await poller.refresh_tier(tier(poller, "hourly"))

        markets = notifications.save_market_snapshot.await_args.args[0]["markets"]
        assert [m["id"] for m in markets] == ["P1", "K1"]
        notifications.check_breaking_alerts.assert_awaited_once()
        assert poller.payload("marketSnapshot") == {"success": True, "saved": 1}

    @pytest.mark.asyncio
    async def test_no_breaking_check_without_email(self, poller, feeds, notifications):
        notifications.can_email = False
        feeds.polymarket.return_value = ok({"markets": [{"id": "P1"}]})
        await poller.refresh_tier(tier(poller, "fast"))

        await poller.refresh_tier(tier(poller, "hourly"))

        notifications.save_market_snapshot.assert_awaited_once()
        notifications.check_breaking_alerts.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_markets_skips_snapshot(self, poller, notifications):
        await poller.refresh_tier(tier(poller, "hourly"))

        notifications.save_market_snapshot.assert_not_awaited()
        assert poller.payload("marketSnapshot") == {"success": True, "saved": 0}


class TestCallbacks:

    @pytest.mark.asyncio
    async def test_update_and_status_callbacks(self, feeds, analysis, notifications):
        on_update = AsyncMock()
        on_status = AsyncMock()
        poller = FeedPoller(feeds, analysis, notifications, on_update=on_update, on_status=on_status)

        await poller.refresh_tier(tier(poller, "daily"))

        updated = {call.args[0] for call in on_update.await_args_list}
        assert updated == {"promises", "nyc311", "nycBudget", "nycLegislation", "nycMmr", "changelog"}
        on_status.assert_awaited_once_with("LIVE")

    @pytest.mark.asyncio
    async def test_callback_errors_are_contained(self, feeds, analysis, notifications):
        on_update = AsyncMock(side_effect=RuntimeError("socket closed"))
        poller = FeedPoller(feeds, analysis, notifications, on_update=on_update)

        outcomes = await poller.refresh_tier(tier(poller, "daily"))

        assert all(outcomes.values())

    @pytest.mark.asyncio
    async def test_stats(self, poller):
        await poller.refresh_all()
        stats = poller.get_stats()

        assert stats["total_cycles"] == 3
        assert stats["feeds"] == 15
        assert stats["running"] is False
        assert stats["last_refresh"] is not None

    @pytest.mark.asyncio
    async def test_start_and_stop(self, poller):
        await poller.start()
        assert poller.get_stats()["running"] is True
        assert len(poller._tasks) == 3

        await poller.stop()
        assert poller.get_stats()["running"] is False
        assert poller._tasks == []
