"""Logic module for feed normalization, promise tracking and alerting."""

from .cache import DailyCache
from .markets import MarketWatchlist
from .breaking_alerts import BreakingAlertConfig, detect_breaking_alerts
from .ai_alerts import AIAnalyst, AnalysisResult

__all__ = [
    # Cache
    "DailyCache",
    # Markets
    "MarketWatchlist",
    # Breaking Alerts
    "BreakingAlertConfig",
    "detect_breaking_alerts",
    # AI Alerts
    "AIAnalyst",
    "AnalysisResult",
]
