"""Tests for the local SQLite and Supabase history stores."""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio

from data.database import LocalHistoryStore
from data.models import MarketSnapshot, NotableAlert
from data.supabase_store import SupabaseStore


T0 = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def store(tmp_path):
    history = LocalHistoryStore(str(tmp_path / "history.db"))
    await history.connect()
    yield history
    await history.close()


def snapshot(market_id: str, price, title: str = "Market") -> MarketSnapshot:
    return MarketSnapshot(market_id=market_id, market_title=title, source="polymarket", yes_price=price)


def alert(title: str, alert_type: str = "TREND") -> NotableAlert:
    return NotableAlert(type=alert_type, title=title, description=f"{title} details")


# ============================================================================
# Local Store
# ============================================================================

class TestLocalHistoryStore:

    @pytest.mark.asyncio
    async def test_price_before_picks_latest_row_at_or_before(self, store):
        await store.save_snapshots([snapshot("m1", 0.40)], recorded_at=T0 - timedelta(hours=3))
        await store.save_snapshots([snapshot("m1", 0.45)], recorded_at=T0 - timedelta(hours=1))
        await store.save_snapshots([snapshot("m1", 0.60)], recorded_at=T0)

        assert await store.get_price_before("m1", T0 - timedelta(hours=1)) == 0.45
        assert await store.get_price_before("m1", T0 - timedelta(hours=2)) == 0.40
        assert await store.get_price_before("m1", T0 - timedelta(hours=5)) is None
        assert await store.get_price_before("other", T0) is None

    @pytest.mark.asyncio
    async def test_null_price_returned_as_none(self, store):
        await store.save_snapshots([snapshot("m1", None)], recorded_at=T0 - timedelta(hours=2))
        assert await store.get_price_before("m1", T0) is None

    @pytest.mark.asyncio
    async def test_save_returns_count(self, store):
        assert await store.save_snapshots([snapshot("a", 0.1), snapshot("b", 0.2)]) == 2

    @pytest.mark.asyncio
    async def test_alert_sent_since(self, store):
        await store.record_alert_sent("m1", "price_spike", sent_at=T0)

        assert await store.alert_sent_since("m1", "price_spike", T0 - timedelta(hours=12))
        assert not await store.alert_sent_since("m1", "price_spike", T0 + timedelta(minutes=1))
        assert not await store.alert_sent_since("m2", "price_spike", T0 - timedelta(hours=12))

    @pytest.mark.asyncio
    async def test_notable_alert_digest_cycle(self, store):
        await store.save_notable_alerts([alert("Old")], created_at=T0 - timedelta(days=10))
        await store.save_notable_alerts([alert("First"), alert("Second", "RISK")], created_at=T0)
        await store.save_notable_alerts([alert("Newest")], created_at=T0 + timedelta(hours=1))

        window = (T0 - timedelta(days=1), T0 + timedelta(days=1))
        unsent = await store.get_unsent_notable_alerts(*window)

        assert [a["title"] for a in unsent][0] == "Newest"
        assert {a["title"] for a in unsent} == {"First", "Second", "Newest"}
        assert unsent[0]["sent_in_digest"] is False

        await store.mark_alerts_sent([a["id"] for a in unsent[:2]])
        remaining = await store.get_unsent_notable_alerts(*window)
        assert len(remaining) == 1

    @pytest.mark.asyncio
    async def test_mark_nothing_is_noop(self, store):
        await store.mark_alerts_sent([])

    @pytest.mark.asyncio
    async def test_in_memory_store_connects_lazily(self):
        history = LocalHistoryStore(":memory:")
        try:
            assert await history.get_price_before("m1", T0) is None
        finally:
            await history.close()


# ============================================================================
# Supabase Store
# ============================================================================

class TestSupabaseStore:

    @pytest.fixture
    def calls(self):
        return []

    @pytest.fixture
    def supabase(self, calls):
        responses = {
            ("GET", "/rest/v1/market_history"): [{"yes_price": 0.42}],
            ("GET", "/rest/v1/breaking_alerts_sent"): [],
            ("GET", "/rest/v1/notable_alerts"): [{"id": 7, "type": "TREND"}],
        }

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            body = responses.get((request.method, request.url.path))
            if body is None:
                return httpx.Response(201)
            return httpx.Response(200, json=body)

        return SupabaseStore("https://proj.supabase.co/", "service-key", transport=httpx.MockTransport(handler))

    def test_configured(self):
        assert SupabaseStore("https://proj.supabase.co", "k").is_configured
        assert not SupabaseStore(None, "k").is_configured

    @pytest.mark.asyncio
    async def test_price_before_filters(self, supabase, calls):
        price = await supabase.get_price_before("m1", T0)

        assert price == 0.42
        request = calls[-1]
        assert request.headers["apikey"] == "service-key"
        assert request.headers["authorization"] == "Bearer service-key"
        params = request.url.params
        assert params["market_id"] == "eq.m1"
        assert params["recorded_at"] == "lte.2025-01-15T12:00:00.000Z"
        assert params["order"] == "recorded_at.desc"
        assert params["limit"] == "1"

    @pytest.mark.asyncio
    async def test_alert_sent_since_empty(self, supabase, calls):
        assert await supabase.alert_sent_since("m1", "price_spike", T0) is False
        assert calls[-1].url.params["sent_at"] == "gte.2025-01-15T12:00:00.000Z"

    @pytest.mark.asyncio
    async def test_save_snapshots_bulk_insert(self, supabase, calls):
        saved = await supabase.save_snapshots([snapshot("m1", 0.4), snapshot("m2", 0.5)])

        assert saved == 2
        request = calls[-1]
        assert request.method == "POST"
        assert request.headers["prefer"] == "return=minimal"
        rows = json.loads(request.content)
        assert [r["market_id"] for r in rows] == ["m1", "m2"]
        assert "recorded_at" not in rows[0]

    @pytest.mark.asyncio
    async def test_unsent_alert_range(self, supabase, calls):
        alerts = await supabase.get_unsent_notable_alerts(T0 - timedelta(days=7), T0)

        assert alerts == [{"id": 7, "type": "TREND"}]
        created_filters = calls[-1].url.params.get_list("created_at")
        assert created_filters == ["gte.2025-01-08T12:00:00.000Z", "lte.2025-01-15T12:00:00.000Z"]
        assert calls[-1].url.params["sent_in_digest"] == "eq.false"

    @pytest.mark.asyncio
    async def test_mark_alerts_sent_patch(self, supabase, calls):
        await supabase.mark_alerts_sent([7, 8])

        request = calls[-1]
        assert request.method == "PATCH"
        assert request.url.params["id"] == "in.(7,8)"
        assert json.loads(request.content) == {"sent_in_digest": True}

    @pytest.mark.asyncio
    async def test_record_alert_sent(self, supabase, calls):
        await supabase.record_alert_sent("m1", "price_spike")
        assert json.loads(calls[-1].content) == {"market_id": "m1", "alert_type": "price_spike"}
