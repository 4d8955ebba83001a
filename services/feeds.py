"""Feed endpoints: fetch upstream data and normalize it for the dashboard.

Every method returns a ``FeedResult``. Upstream failures never raise out
of here: they are logged and turned into a 200 with an empty or fallback
payload carrying 'error', 'message' and 'updatedAt'.
"""

from dataclasses import dataclass
from typing import Any, Optional
import httpx
from loguru import logger
from pydantic import ValidationError

from data.models import NormalizedMarket
from logic.cache import DailyCache
from logic.feeds import (
    extract_result_list,
    normalize_commits,
    normalize_search_results,
    normalize_trends,
    normalize_videos,
)
from logic.formatting import iso_timestamp
from logic.markets import (
    MarketWatchlist,
    is_relevant_kalshi_event,
    is_relevant_kalshi_market,
    is_relevant_polymarket_event,
    normalize_kalshi_market,
    normalize_polymarket_event,
    sort_by_volume,
)
from logic.nyc_data import (
    BUDGET_DATASET,
    LEGISLATION_DATASET,
    MMR_DATASET,
    SERVICE_REQUESTS_DATASET,
    normalize_budget,
    normalize_legislation,
    normalize_mmr,
    normalize_service_requests,
    service_request_date_filter,
)
from logic.promises import PLATFORM_URL, extract_promises, fallback_promises
from services.firecrawl_client import FirecrawlClient
from services.github_client import GitHubClient
from services.kalshi_client import KalshiClient
from services.polymarket_client import GammaClient
from services.socrata_client import SocrataClient
from services.virlo_client import VirloClient


SHORT_CACHE = "s-maxage=60, stale-while-revalidate"
MARKETS_CACHE = "s-maxage=120, stale-while-revalidate"
FIVE_MINUTE_CACHE = "s-maxage=300, stale-while-revalidate"
HALF_HOUR_CACHE = "s-maxage=1800, stale-while-revalidate"
HOUR_CACHE = "s-maxage=3600, stale-while-revalidate"


@dataclass
class FeedResult:
    """An endpoint response, independent of the web framework."""
    body: Any
    status: int = 200
    cache_control: Optional[str] = None


def failure(error: str, exc: Exception, **empty) -> FeedResult:
    """200 response describing an upstream failure."""
    return FeedResult(body={
        "error": error,
        "message": str(exc),
        "updatedAt": iso_timestamp(),
        **empty,
    })


def _error_entry(slug: str, exc: Exception) -> dict:
    if isinstance(exc, httpx.HTTPStatusError):
        return {"slug": slug, "status": exc.response.status_code}
    return {"slug": slug, "error": str(exc)}


def _normalize_all(raw: list[dict], normalize) -> list[NormalizedMarket]:
    markets = []
    for item in raw:
        try:
            markets.append(normalize(item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed market: {e}")
    return markets


class FeedService:
    """Read-only feeds shown on the dashboard.

    Clients for paid APIs are optional; a missing client means the
    corresponding credential is not configured.
    """

    NEWS_QUERY = "Zohran Mamdani NYC mayor campaign 2025"
    COMET_NAME_HINTS = ("mamdani", "monitor")

    def __init__(
        self,
        github: GitHubClient,
        gamma: GammaClient,
        kalshi: KalshiClient,
        socrata: SocrataClient,
        cache: DailyCache,
        firecrawl: Optional[FirecrawlClient] = None,
        virlo: Optional[VirloClient] = None,
        github_repo: str = "VirloGit/monitormamdani",
        watchlist: Optional[MarketWatchlist] = None,
    ):
        self.github = github
        self.gamma = gamma
        self.kalshi = kalshi
        self.socrata = socrata
        self.cache = cache
        self.firecrawl = firecrawl
        self.virlo = virlo
        self.github_repo = github_repo
        self.watchlist = watchlist or MarketWatchlist()

        logger.info(
            f"FeedService initialized | Repo: {github_repo} | "
            f"Firecrawl: {firecrawl is not None} | Virlo: {virlo is not None}"
        )

    # =========================================================================
    # Changelog
    # =========================================================================

    async def changelog(self) -> FeedResult:
        try:
            commits = await self.github.get_commits(self.github_repo, per_page=20)
            payload = normalize_commits(commits)
            logger.debug(f"Changelog: {payload['count']} commits")
            return FeedResult(body=payload, cache_control=FIVE_MINUTE_CACHE)
        except Exception as e:
            logger.error(f"Error fetching commits: {e}")
            return failure("Failed to fetch changelog", e, commits=[])

    # =========================================================================
    # Prediction Markets
    # =========================================================================

    async def polymarket(self) -> FeedResult:
        """Known slugs first, then a keyword scan of open events."""
        try:
            events: list[dict] = []
            errors: list[dict] = []

            for slug in self.watchlist.polymarket_slugs:
                try:
                    event = await self.gamma.get_event_by_slug(slug)
                except Exception as e:
                    logger.warning(f"Polymarket slug {slug} failed: {e}")
                    errors.append(_error_entry(slug, e))
                    continue
                if isinstance(event, dict) and event.get("id"):
                    events.append(event)

            try:
                listed = await self.gamma.get_events(limit=100)
                if isinstance(listed, list):
                    seen = {str(e["id"]) for e in events}
                    for event in listed:
                        if not is_relevant_polymarket_event(event, self.watchlist.polymarket_keyword):
                            continue
                        if event.get("id") is None or str(event["id"]) in seen:
                            continue
                        events.append(event)
                        seen.add(str(event["id"]))
            except Exception as e:
                logger.warning(f"Search for additional Polymarket markets failed: {e}")

            markets = sort_by_volume(_normalize_all(events, normalize_polymarket_event))
            debug = {
                "slugsFetched": len(self.watchlist.polymarket_slugs),
                "marketsFound": len(markets),
            }
            if errors:
                debug["errors"] = errors

            logger.info(f"Polymarket: {len(markets)} markets")
            return FeedResult(body={
                "updatedAt": iso_timestamp(),
                "markets": [m.to_payload() for m in markets],
                "count": len(markets),
                "debug": debug,
            }, cache_control=MARKETS_CACHE)
        except Exception as e:
            logger.error(f"Error fetching Polymarket data: {e}")
            return failure("Failed to fetch Polymarket data", e, markets=[])

    async def kalshi_markets(self) -> FeedResult:
        """Known tickers, then relevant events, then a paginated market scan."""
        try:
            raw_markets: list[dict] = []
            seen: set[str] = set()

            def add(market: dict) -> None:
                ticker = market.get("ticker")
                if ticker and ticker not in seen:
                    raw_markets.append(market)
                    seen.add(ticker)

            for ticker in self.watchlist.kalshi_tickers:
                try:
                    data = await self.kalshi.get_market(ticker)
                except Exception as e:
                    logger.debug(f"Failed to fetch ticker {ticker}: {e}")
                    continue
                if isinstance(data, dict) and data.get("market"):
                    add(data["market"])

            try:
                data = await self.kalshi.get_events(status="open", limit=200)
                for event in data.get("events") or []:
                    if is_relevant_kalshi_event(event, self.watchlist.kalshi_keywords):
                        for market in event.get("markets") or []:
                            add(market)
            except Exception as e:
                logger.warning(f"Kalshi events search failed: {e}")

            pages_scanned = 0
            cursor = None
            while pages_scanned < self.watchlist.kalshi_max_pages:
                try:
                    data = await self.kalshi.get_markets(limit=1000, cursor=cursor)
                except Exception as e:
                    logger.error(f"Kalshi markets API error: {e}")
                    break
                pages_scanned += 1

                page = data.get("markets") or []
                for market in page:
                    if is_relevant_kalshi_market(
                        market, self.watchlist.kalshi_keywords, self.watchlist.kalshi_ticker_prefixes
                    ):
                        add(market)

                cursor = data.get("cursor")
                if not cursor or not page:
                    break

            markets = sort_by_volume(_normalize_all(raw_markets, normalize_kalshi_market))

            logger.info(f"Kalshi: {len(markets)} markets from {pages_scanned} pages")
            return FeedResult(body={
                "updatedAt": iso_timestamp(),
                "markets": [m.to_payload() for m in markets],
                "count": len(markets),
                "debug": {
                    "knownTickersFetched": len(self.watchlist.kalshi_tickers),
                    "pagesScanned": pages_scanned,
                    "marketsFound": len(markets),
                },
            }, cache_control=MARKETS_CACHE)
        except Exception as e:
            logger.error(f"Error fetching Kalshi data: {e}")
            return failure("Failed to fetch Kalshi data", e, markets=[])

    # =========================================================================
    # NYC Open Data
    # =========================================================================

    async def nyc_311(self) -> FeedResult:
        try:
            aggregated = await self.socrata.query(
                SERVICE_REQUESTS_DATASET,
                select="complaint_type,agency,count(*)",
                where=f"created_date>'{service_request_date_filter()}'",
                group="complaint_type,agency",
                order="count DESC",
                limit=50,
            )
            logger.debug(f"311 data received: {len(aggregated)} records")

            try:
                recent = await self.socrata.query(SERVICE_REQUESTS_DATASET, limit=20, order="created_date DESC")
            except Exception as e:
                logger.warning(f"Recent 311 requests unavailable: {e}")
                recent = []

            return FeedResult(body=normalize_service_requests(aggregated, recent), cache_control=HALF_HOUR_CACHE)
        except Exception as e:
            logger.error(f"Error fetching 311 data: {e}")
            return failure("Failed to fetch 311 Service Requests", e, items=[], recentRequests=[])

    async def nyc_budget(self) -> FeedResult:
        try:
            data = await self.socrata.query(BUDGET_DATASET, limit=500, order="fiscal_year DESC")
            logger.debug(f"Budget data received: {len(data)} records")
            return FeedResult(body=normalize_budget(data), cache_control=HOUR_CACHE)
        except Exception as e:
            logger.error(f"Error fetching budget data: {e}")
            return failure("Failed to fetch Expense Budget", e, items=[])

    async def nyc_legislation(self) -> FeedResult:
        try:
            data = await self.socrata.query(LEGISLATION_DATASET, limit=50, order="intro_date DESC")
            logger.debug(f"Legislation data received: {len(data)} records")
            return FeedResult(body=normalize_legislation(data), cache_control=HOUR_CACHE)
        except Exception as e:
            logger.error(f"Error fetching legislation data: {e}")
            return failure("Failed to fetch City Council Legislation", e, items=[])

    async def nyc_mmr(self) -> FeedResult:
        try:
            data = await self.socrata.query(MMR_DATASET, limit=100, order="fiscal_year DESC")
            logger.debug(f"MMR data received: {len(data)} records")
            return FeedResult(body=normalize_mmr(data), cache_control=HOUR_CACHE)
        except Exception as e:
            logger.error(f"Error fetching MMR data: {e}")
            return failure("Failed to fetch Mayor Management Report", e, items=[])

    # =========================================================================
    # News & Platform
    # =========================================================================

    async def news(self) -> FeedResult:
        """Web search news, at most one paid search per query per UTC day."""
        if self.firecrawl is None:
            return FeedResult(body={
                "error": "Firecrawl API key not configured",
                "updatedAt": iso_timestamp(),
                "items": [],
            })

        try:
            payload = await self.cache.get_or_fetch(f"news:{self.NEWS_QUERY}", self._search_news)
            return FeedResult(body=payload, cache_control=FIVE_MINUTE_CACHE)
        except Exception as e:
            logger.error(f"Error with Firecrawl search: {e}")
            return failure("Failed to search news", e, items=[])

    async def _search_news(self) -> dict:
        # Raises on upstream failure so nothing is cached
        data = await self.firecrawl.search(self.NEWS_QUERY, limit=10)
        results = extract_result_list(data, "data", "results")
        logger.info(f"Firecrawl returned {len(results)} results")
        return normalize_search_results(results)

    async def platform_promises(self) -> FeedResult:
        """Campaign promises scraped from the platform page, with fallbacks."""
        if self.firecrawl is None:
            return FeedResult(body={
                "updatedAt": iso_timestamp(),
                "sourceUrl": PLATFORM_URL,
                "promises": fallback_promises(),
                "usingFallback": True,
                "debug": "Firecrawl API key missing",
            })

        try:
            data = await self.firecrawl.scrape(PLATFORM_URL)
            markdown = ((data or {}).get("data") or {}).get("markdown") or ""
            return FeedResult(body={
                "updatedAt": iso_timestamp(),
                "sourceUrl": PLATFORM_URL,
                "promises": extract_promises(markdown),
                "rawMarkdown": markdown[:5000],
            }, cache_control=HOUR_CACHE)
        except Exception as e:
            logger.error(f"Error scraping platform: {e}")
            return FeedResult(body={
                "updatedAt": iso_timestamp(),
                "sourceUrl": PLATFORM_URL,
                "promises": fallback_promises(),
                "error": str(e),
                "usingFallback": True,
            })

    # =========================================================================
    # Social Video
    # =========================================================================

    async def _find_comet_id(self) -> Optional[str]:
        """Id of the first existing comet whose name matches; never creates one."""
        try:
            comets = extract_result_list(await self.virlo.list_comets(), "data")
        except Exception as e:
            logger.error(f"Error listing comets: {e}")
            return None

        for comet in comets:
            name = (comet.get("name") or "").lower()
            if any(hint in name for hint in self.COMET_NAME_HINTS) and comet.get("id"):
                logger.debug(f"Found existing Comet: {comet['id']} {comet.get('name')}")
                return str(comet["id"])

        logger.info(f"No matching Comet found in {len(comets)} comets")
        return None

    async def comet_videos(self) -> FeedResult:
        if self.virlo is None:
            return FeedResult(body={
                "error": "Server configuration error",
                "message": "API key not configured",
                "updatedAt": iso_timestamp(),
                "items": [],
            })

        try:
            comet_id = await self._find_comet_id()
            if not comet_id:
                return FeedResult(body={
                    "updatedAt": iso_timestamp(),
                    "items": [],
                    "debug": {"message": "No Mamdani Comet found. Please create one manually via Virlo dashboard."},
                })

            try:
                data = await self.virlo.get_comet_videos(comet_id, limit=50)
            except httpx.HTTPStatusError as e:
                logger.error(f"Virlo Comet videos error: {e.response.status_code}")
                return FeedResult(body={
                    "updatedAt": iso_timestamp(),
                    "items": [],
                    "debug": {
                        "cometId": comet_id,
                        "error": f"Videos API returned {e.response.status_code}",
                        "message": "Comet may still be collecting videos",
                    },
                })

            payload = normalize_videos(data)
            payload["debug"] = {
                "cometId": comet_id,
                "rawDataKeys": list(data.keys()) if isinstance(data, dict) else [],
                "rawDataLength": len(extract_result_list(data, "data", "videos", "items")),
            }
            return FeedResult(body=payload, cache_control=FIVE_MINUTE_CACHE)
        except Exception as e:
            logger.error(f"Error with Virlo Comet: {e}")
            return failure("Failed to fetch Comet data", e, items=[])

    async def trends(self) -> FeedResult:
        if self.virlo is None:
            return FeedResult(body={
                "error": "Server configuration error",
                "message": "API key not configured",
                "updatedAt": iso_timestamp(),
                "items": [],
                "allTrends": [],
            })

        try:
            data = await self.virlo.get_trends_digest()
            return FeedResult(body=normalize_trends(data), cache_control=SHORT_CACHE)
        except Exception as e:
            logger.error(f"Error fetching Virlo trends: {e}")
            return failure("Failed to fetch trends", e, items=[], allTrends=[])
