"""Prediction market normalization for Polymarket and Kalshi.

Both platforms are reshaped into ``NormalizedMarket`` so the dashboard,
the snapshot recorder and the breaking-alert pass can treat them alike.
Kalshi quotes prices in cents (0-100); Polymarket in decimals (0-1).
"""

import json
from dataclasses import dataclass, field
from typing import Optional
from loguru import logger

from data.models import NormalizedMarket, MarketSource
from logic.formatting import to_float


POLYMARKET_EVENT_URL = "https://polymarket.com/event/{slug}"
KALSHI_MARKET_URL = "https://kalshi.com/markets/{ticker}"


@dataclass
class MarketWatchlist:
    """Which markets the dashboard follows."""

    # Substring matched against Polymarket event titles and slugs
    polymarket_keyword: str = "mamdani"

    polymarket_slugs: list[str] = field(default_factory=lambda: [
        "will-mamdani-freeze-nyc-rents-before-2027",
        "mamdani-opens-city-owned-grocery-store-by-june-30",
        "will-mamdani-make-nyc-buses-free-by-march-31",
        "zohran-mamdani-out-as-mayor-of-nyc-before-2027",
        "will-mamdani-pass-the-2-millionaire-tax-before-2027",
        "zohran-mamdani-citizenship-revoked-before-2027",
        "will-mamdani-raise-the-minimum-wage-to-30-before-2027",
    ])

    kalshi_keywords: list[str] = field(default_factory=lambda: [
        "zohran", "mamdani", "nyc mayor",
    ])

    kalshi_tickers: list[str] = field(default_factory=lambda: [
        "KXPERSONPRESMAM-45",
        "KXNYCCORPORATETAX-27JAN01",
        "KXNYCCHILDCARE-27JAN01",
        "KXNYCTAXMILLIONS-27JAN01",
        "KXNYCFREEBUS-27MAR31",
        "KXNYCRENTFREEZE-27JAN01",
        "KXNYCGROCERY-26JUN30",
        "KXNYCMINWAGE-27JAN01",
    ])

    kalshi_ticker_prefixes: list[str] = field(default_factory=lambda: [
        "KXNYC", "KXPERSONPRESMAM", "MAM",
    ])

    # Pagination cap for the Kalshi markets scan
    kalshi_max_pages: int = 5


# ============================================================================
# Polymarket
# ============================================================================

def parse_outcome_prices(raw) -> tuple[Optional[float], Optional[float]]:
    """Extract (yes, no) prices from a Gamma ``outcomePrices`` field.

    The field is usually a JSON-encoded list of strings, e.g. '["0.42", "0.58"]'.
    Zero or unparsable prices are reported as None.
    """
    if raw is None:
        return None, None
    prices = raw
    if isinstance(raw, str):
        try:
            prices = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.debug(f"Error parsing prices: {e}")
            return None, None
    if not isinstance(prices, list):
        return None, None

    yes_price = to_float(prices[0], None) if len(prices) > 0 else None
    no_price = to_float(prices[1], None) if len(prices) > 1 else None
    return yes_price or None, no_price or None


def is_relevant_polymarket_event(event: dict, keyword: str) -> bool:
    """Whether an event title or slug mentions the keyword."""
    title = (event.get("title") or "").lower()
    slug = (event.get("slug") or "").lower()
    keyword = keyword.lower()
    return keyword in title or keyword in slug


def normalize_polymarket_event(event: dict) -> NormalizedMarket:
    """Reshape a Gamma API event into the shared market format."""
    markets = event.get("markets") or []
    main_market = markets[0] if markets else None

    yes_price, no_price = (None, None)
    if main_market:
        yes_price, no_price = parse_outcome_prices(main_market.get("outcomePrices"))

    volume = to_float(event.get("volume"), 0.0)
    if not volume and main_market:
        volume = to_float(main_market.get("volume"), 0.0)

    slug = event.get("slug")
    return NormalizedMarket(
        id=event.get("id"),
        title=event.get("title") or "Unknown Market",
        slug=slug,
        yes_price=yes_price,
        no_price=no_price,
        volume=volume or 0.0,
        liquidity=to_float(event.get("liquidity"), 0.0) or 0.0,
        end_date=event.get("endDate"),
        active=event.get("active") is not False,
        url=POLYMARKET_EVENT_URL.format(slug=slug),
        source=MarketSource.POLYMARKET,
    )


# ============================================================================
# Kalshi
# ============================================================================

def _cents_to_decimal(value) -> Optional[float]:
    cents = to_float(value, None)
    if cents is None:
        return None
    return cents / 100


def is_relevant_kalshi_event(event: dict, keywords: list[str]) -> bool:
    """Whether an event's title or category mentions a keyword."""
    search_text = f"{event.get('title') or ''} {event.get('category') or ''}".lower()
    return any(keyword.lower() in search_text for keyword in keywords)


def is_relevant_kalshi_market(market: dict, keywords: list[str], prefixes: list[str]) -> bool:
    """Whether a market has a watched ticker prefix or mentions a keyword."""
    ticker = (market.get("ticker") or "").upper()
    if any(ticker.startswith(prefix) for prefix in prefixes):
        return True
    search_text = f"{market.get('title') or ''} {market.get('subtitle') or ''}".lower()
    return any(keyword.lower() in search_text for keyword in keywords)


def normalize_kalshi_market(market: dict) -> NormalizedMarket:
    """Reshape a Kalshi market into the shared market format.

    Uses the best YES bid, falling back to the last traded price.
    """
    yes_price = _cents_to_decimal(market.get("yes_bid"))
    if yes_price is None:
        yes_price = _cents_to_decimal(market.get("last_price"))
    no_price = round(1 - yes_price, 4) if yes_price is not None else None

    ticker = market.get("ticker") or ""
    return NormalizedMarket(
        id=ticker,
        title=market.get("title") or "Unknown Market",
        slug=ticker,
        yes_price=yes_price,
        no_price=no_price,
        volume=to_float(market.get("volume"), 0.0) or 0.0,
        liquidity=to_float(market.get("open_interest"), 0.0) or 0.0,
        end_date=market.get("close_time"),
        active=market.get("status") in ("active", "open"),
        url=KALSHI_MARKET_URL.format(ticker=ticker),
        source=MarketSource.KALSHI,
    )


def sort_by_volume(markets: list[NormalizedMarket]) -> list[NormalizedMarket]:
    """Most traded first."""
    return sorted(markets, key=lambda m: m.volume or 0, reverse=True)
