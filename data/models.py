"""Pydantic V2 models for the Civic Monitor feeds.

This module defines the normalized shapes served to the dashboard:
- Commit: One changelog entry from GitHub
- NormalizedMarket: A Polymarket event or Kalshi market in a shared format
- NewsItem: A web-search result
- VideoItem: A tracked social video
- Trend: A social-video trend
- CampaignPromise: A campaign platform position
- NotableAlert: An LLM-generated alert
- BreakingAlert: A price move that crossed the alert threshold
- MarketSnapshot: One market_history row

Models serialize with camelCase aliases (``model_dump(by_alias=True)``),
which is the contract the dashboard renders from.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator, computed_field
from pydantic.alias_generators import to_camel


class MarketSource(str, Enum):
    """Prediction market platform."""
    POLYMARKET = "polymarket"
    KALSHI = "kalshi"


class Severity(str, Enum):
    """Display severity for feed items."""
    HOT = "hot"
    SPIKE = "spike"
    NEW = "new"
    TRENDING = "trending"
    NEWS = "news"


class AlertType(str, Enum):
    """Category tag for notable alerts, in digest order."""
    TREND = "TREND"
    OPPORTUNITY = "OPPORTUNITY"
    RISK = "RISK"
    MOMENTUM = "MOMENTUM"


class CompletionStatus(str, Enum):
    """Promise completion status."""
    COMPLETED = "completed"
    IN_PROGRESS = "in_progress"


class Confidence(str, Enum):
    """Confidence level for heuristics."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FeedModel(BaseModel):
    """Base for dashboard payload models (camelCase on the wire)."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "use_enum_values": True,
    }

    def to_payload(self) -> dict:
        """Serialize for the dashboard."""
        return self.model_dump(by_alias=True)


class Commit(FeedModel):
    """A normalized GitHub commit."""
    sha: str = Field(default="", description="Short (7 char) commit hash")
    title: str = Field(..., description="First line of the commit message")
    body: str = Field(default="", description="Remaining message lines, truncated")
    date: str = Field(default="", description="Relative display date")
    date_raw: Optional[str] = Field(None, description="Upstream ISO timestamp")
    author: str = Field(default="Unknown")
    url: str = Field(default="")


class NormalizedMarket(FeedModel):
    """A prediction market in the shared Polymarket/Kalshi format.

    Attributes:
        id: Polymarket event id or Kalshi ticker
        yes_price: Probability of YES as a decimal (0-1)
        no_price: Probability of NO as a decimal (0-1)
        volume: Traded volume as reported upstream
        liquidity: Liquidity (Polymarket) or open interest (Kalshi)
    """
    id: str = Field(..., description="Market identifier")
    title: str = Field(default="Unknown Market")
    slug: Optional[str] = Field(None)
    yes_price: Optional[float] = Field(None, ge=0.0, le=1.0)
    no_price: Optional[float] = Field(None, ge=0.0, le=1.0)
    volume: float = Field(default=0.0)
    liquidity: float = Field(default=0.0)
    end_date: Optional[str] = Field(None)
    active: bool = Field(default=True)
    url: str = Field(default="")
    source: MarketSource = Field(...)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v) -> str:
        """Polymarket ids may arrive as integers."""
        return str(v)

    @field_validator("yes_price", "no_price")
    @classmethod
    def round_price(cls, v: Optional[float]) -> Optional[float]:
        """Round prices to 4 decimal places."""
        if v is None:
            return None
        return round(v, 4)


class NewsItem(FeedModel):
    """A normalized web-search result."""
    title: str = Field(default="Untitled")
    description: str = Field(default="")
    url: str = Field(default="")
    source: str = Field(default="Web")
    published_at: Optional[str] = Field(None)
    severity: Severity = Field(default=Severity.NEWS)


class VideoItem(FeedModel):
    """A normalized tracked video."""
    ts: str = Field(..., description="Publish timestamp")
    severity: str = Field(default=Severity.TRENDING.value)
    title: str = Field(default="Untitled")
    metric: str = Field(default="Tracking")
    source: str = Field(default="Social Media")
    url: str = Field(default="")


class Trend(FeedModel):
    """A normalized social trend."""
    id: Optional[str] = Field(None)
    name: str = Field(default="")
    description: str = Field(default="")
    ranking: int = Field(default=0)
    group_title: str = Field(default="Trends")
    type: str = Field(default="content")
    severity: Optional[Severity] = Field(None)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v) -> Optional[str]:
        return None if v is None else str(v)

    def to_payload(self) -> dict:
        """Serialize, omitting severity on unfiltered trends."""
        payload = self.model_dump(by_alias=True)
        if payload["severity"] is None:
            del payload["severity"]
        return payload


class CampaignPromise(FeedModel):
    """A campaign platform position tracked on the dashboard."""
    id: str = Field(...)
    title: str = Field(...)
    icon: str = Field(default="")
    status: str = Field(default="active")
    excerpt: str = Field(default="")
    keywords_found: list[str] = Field(default_factory=list)


class NotableAlert(FeedModel):
    """An LLM-generated alert connecting news, videos and markets."""
    type: AlertType = Field(...)
    title: str = Field(..., min_length=1)
    description: str = Field(default="")
    url: Optional[str] = Field(None)
    source: Optional[str] = Field(None)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        """Accept lowercase category tags."""
        if isinstance(v, str):
            return v.strip().upper()
        return v

    def to_payload(self) -> dict:
        """Serialize, leaving out url/source when no source matched."""
        return self.model_dump(by_alias=True, exclude_none=True)


class BreakingAlert(FeedModel):
    """A market whose price moved past the alert threshold."""
    market_id: str = Field(...)
    title: str = Field(default="")
    old_price: float = Field(..., gt=0.0)
    current_price: float = Field(..., ge=0.0)
    percent_change: float = Field(..., ge=0.0)
    url: str = Field(default="")

    @computed_field
    @property
    def direction(self) -> str:
        """'up' when the price rose, else 'down'."""
        return "up" if self.current_price > self.old_price else "down"

    @computed_field
    @property
    def change_percent(self) -> str:
        """Percent change with one decimal, for display."""
        return f"{self.percent_change * 100:.1f}"


class MarketSnapshot(BaseModel):
    """One market_history row (snake_case, as stored)."""
    market_id: str = Field(...)
    market_title: Optional[str] = Field(None)
    source: str = Field(default="unknown")
    yes_price: Optional[float] = Field(None)
    volume: float = Field(default=0.0)
    liquidity: float = Field(default=0.0)

    @classmethod
    def from_market(cls, market: dict) -> "MarketSnapshot":
        """Build a snapshot row from a normalized market dict."""
        return cls(
            market_id=str(market.get("id") or market.get("slug") or ""),
            market_title=market.get("title"),
            source=market.get("source") or "unknown",
            yes_price=market.get("yesPrice"),
            volume=market.get("volume") or 0,
            liquidity=market.get("liquidity") or 0,
        )
