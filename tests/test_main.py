"""Tests for application wiring."""

import asyncio

import pytest

from data.database import LocalHistoryStore
from data.supabase_store import SupabaseStore
from main import CivicMonitor, build_store, serve
from services.settings import Settings


def test_store_falls_back_to_local(tmp_path):
    store = build_store(Settings(history_db_path=str(tmp_path / "h.db")))
    assert isinstance(store, LocalHistoryStore)


def test_store_uses_supabase_when_configured():
    store = build_store(Settings(supabase_url="https://p.supabase.co", supabase_key="k"))
    assert isinstance(store, SupabaseStore)


def test_optional_clients_follow_credentials(tmp_path):
    monitor = CivicMonitor(Settings(history_db_path=str(tmp_path / "h.db"), virlo_api_key="v"))

    assert monitor.feeds.firecrawl is None
    assert monitor.feeds.virlo is not None
    assert monitor.notifications.newsletter is None
    assert monitor.analysis.ai_available is False
    assert "/api/claude-alerts" in monitor.dashboard.api.routes


def test_settings_from_env_legacy_names(monkeypatch):
    monkeypatch.setenv("CLAUDE_API", "legacy-key")
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.setenv("POLLER_ENABLED", "false")

    settings = Settings.from_env()

    assert settings.anthropic_api_key == "legacy-key"
    assert settings.poller_enabled is False
    assert settings.credential_status()["ANTHROPIC_API_KEY"] == "SET"


@pytest.mark.asyncio
async def test_shutdown_runs_full_stop(tmp_path):
    """Setting the shutdown event stops the server and closes the store before serve returns."""
    settings = Settings(host="127.0.0.1", port=0, poller_enabled=False,
                        history_db_path=str(tmp_path / "h.db"))
    monitor = CivicMonitor(settings)
    shutdown = asyncio.Event()
    shutdown.set()

    await serve(monitor, shutdown)

    assert monitor._running is False
    assert monitor.store._connection is None
    assert monitor.dashboard.get_stats()["clients"] == 0
