"""Analysis endpoints over feed data the dashboard posts back.

- promise completion: keyword heuristic over news and videos
- promise enrichment: matched markets/content plus velocity, optionally LLM-rated
- notable alerts: LLM alerts, cached per input per UTC day and queued for the digest
"""

import hashlib
import json
from typing import Any, Optional
from loguru import logger

from logic.ai_alerts import AIAnalyst
from logic.cache import DailyCache
from logic.formatting import iso_timestamp
from logic.promises import (
    content_titles,
    empty_completion_summary,
    enrich_promises,
    merge_velocities,
    summarize_completion,
)
from services.feeds import FIVE_MINUTE_CACHE, FeedResult


PUBLIC_FIVE_MINUTES = "public, max-age=300"


def list_field(body: dict, name: str) -> list:
    """A list-valued body field, or [] when missing or mistyped."""
    value = body.get(name)
    return value if isinstance(value, list) else []


def alerts_cache_key(videos: list, news: list, markets: list) -> str:
    """Digest of the inputs the alerts prompt actually uses."""
    context = {
        "videos": videos[:5],
        "news": news[:5],
        "markets": markets[:7],
    }
    encoded = json.dumps(context, sort_keys=True, default=str).encode()
    return "alerts:" + hashlib.sha256(encoded).hexdigest()


class AnalysisService:
    """Promise tracking and LLM alerts."""

    def __init__(self, cache: DailyCache, analyst: Optional[AIAnalyst] = None, store: Optional[Any] = None):
        """Initialize the service.

        Args:
            cache: Daily cache for paid LLM calls
            analyst: Claude analyst (None when no API key is configured)
            store: History store that keeps alerts for the weekly digest
        """
        self.cache = cache
        self.analyst = analyst
        self.store = store

        logger.info(f"AnalysisService initialized | AI: {self.ai_available}")

    @property
    def ai_available(self) -> bool:
        return self.analyst is not None and self.analyst.is_available

    # =========================================================================
    # Promises
    # =========================================================================

    async def promise_completion(self, body: dict) -> FeedResult:
        try:
            summary = summarize_completion(
                list_field(body, "promises"),
                list_field(body, "news"),
                list_field(body, "videos"),
                checked_at=iso_timestamp(),
            )
            return FeedResult(body=summary, cache_control=FIVE_MINUTE_CACHE)
        except Exception as e:
            logger.error(f"Error analyzing promise completion: {e}")
            return FeedResult(body={**empty_completion_summary(), "error": str(e)})

    async def promise_enrichment(self, body: dict) -> FeedResult:
        """Keyword enrichment, upgraded with LLM velocity levels when available."""
        promises = list_field(body, "promises")
        if not promises:
            return FeedResult(body={"enrichedPromises": []})

        news = list_field(body, "news")
        videos = list_field(body, "videos")

        try:
            enriched = enrich_promises(
                promises,
                list_field(body, "markets"),
                list_field(body, "kalshiMarkets"),
                news,
                videos,
            )
        except Exception as e:
            logger.error(f"Error enriching promises: {e}")
            return FeedResult(body={
                "error": "Failed to enrich promises",
                "message": str(e),
                "updatedAt": iso_timestamp(),
                "enrichedPromises": [],
            })

        used_claude = False
        titles = content_titles(news, videos)
        if self.ai_available and titles:
            try:
                result = await self.analyst.rate_velocity(enriched, titles)
                enriched = merge_velocities(enriched, result.velocities)
                used_claude = True
            except Exception as e:
                logger.error(f"Claude enrichment failed, using keyword matching: {e}")

        return FeedResult(body={
            "enrichedPromises": enriched,
            "analyzedAt": iso_timestamp(),
            "usedClaude": used_claude,
        }, cache_control=PUBLIC_FIVE_MINUTES)

    # =========================================================================
    # Notable Alerts
    # =========================================================================

    async def notable_alerts(self, body: dict) -> FeedResult:
        if not self.ai_available:
            return FeedResult(body={"error": "Claude API key not configured"}, status=500)

        videos = list_field(body, "videos")
        news = list_field(body, "news")
        markets = list_field(body, "markets")

        key = alerts_cache_key(videos, news, markets)
        cached = self.cache.get(key)
        if cached is not None:
            return FeedResult(body=cached, cache_control=PUBLIC_FIVE_MINUTES)

        try:
            result = await self.analyst.generate_alerts(videos, news, markets)
            payload = {
                "alerts": [alert.to_payload() for alert in result.alerts],
                "generatedAt": iso_timestamp(),
            }
            # An empty or unparsable reply is retried on the next call
            if result.alerts:
                self.cache.set(key, payload)
                await self._save_alerts(result.alerts)
            return FeedResult(body=payload, cache_control=PUBLIC_FIVE_MINUTES)
        except Exception as e:
            logger.error(f"Error generating alerts: {e}")
            return FeedResult(body={
                "error": "Failed to generate alerts",
                "message": str(e),
                "updatedAt": iso_timestamp(),
                "alerts": [],
            })

    async def _save_alerts(self, alerts: list) -> None:
        """Queue alerts for the digest; failures are logged only."""
        if self.store is None or not alerts:
            return
        try:
            saved = await self.store.save_notable_alerts(alerts)
            logger.debug(f"Saved {saved} notable alerts")
        except Exception as e:
            logger.error(f"Failed to save alerts: {e}")
