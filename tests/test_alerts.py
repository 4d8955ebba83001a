"""Tests for breaking-alert detection, the weekly digest and the daily cache."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from data.models import BreakingAlert
from logic.breaking_alerts import (
    PRICE_SPIKE,
    BreakingAlertConfig,
    detect_breaking_alerts,
    format_alert_email,
    percent_change,
    start_of_utc_day,
)
from logic.cache import DailyCache, next_utc_midnight
from logic.digest import build_digest, digest_week, format_week_range, group_alerts


NOW = datetime(2025, 1, 15, 14, 30, tzinfo=timezone.utc)  # Wednesday


class FakeHistory:
    """In-memory price history keyed by market id."""

    def __init__(self, prices: dict, sent: set = frozenset()):
        self.prices = prices
        self.sent = set(sent)
        self.lookups = []

    async def get_price_before(self, market_id, before):
        self.lookups.append((market_id, before))
        return self.prices.get(market_id)

    async def alert_sent_since(self, market_id, alert_type, since):
        return (market_id, alert_type) in self.sent


def market(market_id="m1", price=0.55, title="Rent freeze?"):
    return {"id": market_id, "title": title, "yesPrice": price, "url": f"https://x/{market_id}"}


# ============================================================================
# Breaking Alerts
# ============================================================================

class TestBreakingAlerts:

    @pytest.mark.asyncio
    async def test_move_past_threshold_alerts(self):
        history = FakeHistory({"m1": 0.50})
        alerts = await detect_breaking_alerts([market(price=0.56)], history, now=NOW)

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.market_id == "m1"
        assert alert.direction == "up"
        assert alert.change_percent == "12.0"
        assert history.lookups == [("m1", NOW - timedelta(hours=1))]

    @pytest.mark.asyncio
    async def test_price_drop_alerts(self):
        history = FakeHistory({"m1": 0.50})
        alerts = await detect_breaking_alerts([market(price=0.40)], history, now=NOW)
        assert alerts[0].direction == "down"
        assert alerts[0].change_percent == "20.0"

    @pytest.mark.asyncio
    async def test_small_move_ignored(self):
        history = FakeHistory({"m1": 0.50})
        assert await detect_breaking_alerts([market(price=0.52)], history, now=NOW) == []

    @pytest.mark.asyncio
    async def test_no_history_or_zero_baseline_skipped(self):
        history = FakeHistory({"m2": 0.0})
        markets = [market("m1", 0.9), market("m2", 0.9)]
        assert await detect_breaking_alerts(markets, history, now=NOW) == []

    @pytest.mark.asyncio
    async def test_missing_price_or_id_skipped(self):
        history = FakeHistory({"m1": 0.5})
        markets = [{"id": "m1", "yesPrice": None}, {"title": "no id", "yesPrice": 0.9}]
        assert await detect_breaking_alerts(markets, history, now=NOW) == []
        assert history.lookups == []

    @pytest.mark.asyncio
    async def test_string_prices_coerced_and_junk_skipped(self):
        """A numeric string is read as a price; a non-numeric one skips only that market."""
        history = FakeHistory({"str": 0.40, "junk": 0.40, "good": 0.40})
        markets = [market("str", "0.55"), market("junk", "n/a"), market("good", 0.60)]

        alerts = await detect_breaking_alerts(markets, history, now=NOW)

        assert [a.market_id for a in alerts] == ["str", "good"]
        assert alerts[0].change_percent == "37.5"
        assert [lookup[0] for lookup in history.lookups] == ["str", "good"]

    @pytest.mark.asyncio
    async def test_already_alerted_today(self):
        history = FakeHistory({"m1": 0.50}, sent={("m1", PRICE_SPIKE)})
        assert await detect_breaking_alerts([market(price=0.9)], history, now=NOW) == []

    @pytest.mark.asyncio
    async def test_lookup_failure_skips_only_that_market(self):
        history = AsyncMock()
        history.get_price_before.side_effect = [RuntimeError("db down"), 0.2]
        history.alert_sent_since.return_value = False

        alerts = await detect_breaking_alerts([market("m1", 0.9), market("m2", 0.4)], history, now=NOW)

        assert [a.market_id for a in alerts] == ["m2"]
        since = history.alert_sent_since.await_args.args[2]
        assert since == datetime(2025, 1, 15, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_custom_threshold(self):
        history = FakeHistory({"m1": 0.50})
        config = BreakingAlertConfig(price_change_threshold=0.5)
        assert await detect_breaking_alerts([market(price=0.7)], history, config, now=NOW) == []

    def test_percent_change_is_absolute(self):
        assert percent_change(0.5, 0.25) == 0.5

    def test_start_of_utc_day(self):
        assert start_of_utc_day(NOW) == datetime(2025, 1, 15, tzinfo=timezone.utc)

    def test_alert_email(self):
        alert = BreakingAlert(market_id="m1", title="Rent freeze?", old_price=0.5,
                              current_price=0.6, percent_change=0.2, url="https://x/m1")
        subject, body = format_alert_email(alert)

        assert subject == "🚨 Breaking: Rent freeze? 📈 20.0%"
        assert "has moved **20.0%** up in the last hour." in body
        assert "- Previous: 50.0%" in body
        assert "- Current: 60.0%" in body
        assert "[View Market](https://x/m1)" in body


# ============================================================================
# Weekly Digest
# ============================================================================

class TestDigest:

    def test_weekday_reports_previous_week(self):
        start, end = digest_week(NOW)
        assert start == datetime(2025, 1, 6, tzinfo=timezone.utc)
        assert end == datetime(2025, 1, 10, 23, 59, 59, 999000, tzinfo=timezone.utc)

    def test_monday_reports_previous_week(self):
        start, _ = digest_week(datetime(2025, 1, 13, 9, tzinfo=timezone.utc))
        assert start == datetime(2025, 1, 6, tzinfo=timezone.utc)

    def test_sunday_reports_week_just_ended(self):
        start, end = digest_week(datetime(2025, 1, 12, 20, tzinfo=timezone.utc))
        assert start == datetime(2025, 1, 6, tzinfo=timezone.utc)
        assert end.day == 10

    def test_week_range_label(self):
        start, end = digest_week(NOW)
        assert format_week_range(start, end) == "Jan 6 - Jan 10, 2025"

    def test_group_drops_unknown_types(self):
        grouped = group_alerts([{"type": "RISK"}, {"type": "GOSSIP"}, {"type": "TREND"}])
        assert list(grouped) == ["TREND", "OPPORTUNITY", "RISK", "MOMENTUM"]
        assert sum(len(v) for v in grouped.values()) == 2

    def test_build_digest(self):
        alerts = [
            {"type": "RISK", "title": "Budget gap", "description": "Shortfall grows"},
            {"type": "TREND", "title": "Rent videos", "description": "Views up"},
        ]
        subject, body = build_digest(alerts, "Jan 6 - Jan 10, 2025")

        assert subject == "📊 Informed on Zohran - Week of Jan 6 - Jan 10, 2025"
        assert body.index("## 📈 Trends") < body.index("## ⚠️ Risks")
        assert "- **Budget gap**: Shortfall grows" in body
        assert "Opportunities" not in body


# ============================================================================
# Daily Cache
# ============================================================================

class TestDailyCache:

    def test_next_midnight(self):
        assert next_utc_midnight(NOW) == datetime(2025, 1, 16, tzinfo=timezone.utc)

    def test_entry_expires_at_midnight(self):
        clock = {"now": NOW}
        cache = DailyCache(clock=lambda: clock["now"])
        cache.set("k", {"v": 1})

        clock["now"] = datetime(2025, 1, 15, 23, 59, tzinfo=timezone.utc)
        assert cache.get("k") == {"v": 1}

        clock["now"] = datetime(2025, 1, 16, 0, 0, tzinfo=timezone.utc)
        assert cache.get("k") is None
        assert cache.get_stats() == {"entries": 0, "hits": 1, "misses": 1}

    @pytest.mark.asyncio
    async def test_get_or_fetch_calls_upstream_once(self):
        cache = DailyCache(clock=lambda: NOW)
        fetch = AsyncMock(return_value={"items": [1]})

        assert await cache.get_or_fetch("news", fetch) == {"items": [1]}
        assert await cache.get_or_fetch("news", fetch) == {"items": [1]}
        fetch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_fetch_not_cached(self):
        cache = DailyCache(clock=lambda: NOW)
        fetch = AsyncMock(side_effect=[RuntimeError("boom"), {"ok": True}])

        with pytest.raises(RuntimeError):
            await cache.get_or_fetch("k", fetch)
        assert await cache.get_or_fetch("k", fetch) == {"ok": True}
