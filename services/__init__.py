"""Services module for upstream clients, endpoint services, poller, and dashboard."""

from .feeds import FeedResult, FeedService
from .analysis import AnalysisService
from .notifications import NotificationService
from .poller import FeedPoller, PollerConfig
from .api import ApiHandlers
from .dashboard import Dashboard
from .settings import Settings

__all__ = [
    "FeedResult",
    "FeedService",
    "AnalysisService",
    "NotificationService",
    "FeedPoller",
    "PollerConfig",
    "ApiHandlers",
    "Dashboard",
    "Settings",
]
