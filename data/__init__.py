"""Data module for Pydantic models and history stores."""

from .models import (
    Commit,
    NormalizedMarket,
    NewsItem,
    VideoItem,
    Trend,
    CampaignPromise,
    NotableAlert,
    BreakingAlert,
    MarketSnapshot,
    MarketSource,
    Severity,
    AlertType,
)
from .database import LocalHistoryStore
from .supabase_store import SupabaseStore

__all__ = [
    "Commit",
    "NormalizedMarket",
    "NewsItem",
    "VideoItem",
    "Trend",
    "CampaignPromise",
    "NotableAlert",
    "BreakingAlert",
    "MarketSnapshot",
    "MarketSource",
    "Severity",
    "AlertType",
    "LocalHistoryStore",
    "SupabaseStore",
]
