"""LLM analysis for the dashboard.

Two tasks share one Claude client:
- Notable alerts connecting videos, news and markets (2-4 per call)
- Per-promise news velocity ratings

Responses are expected to be bare JSON. Fenced or chatty responses are
tolerated; anything still unparsable yields no results rather than an error.
"""

import asyncio
import json
import re
import time
from dataclasses import dataclass, field
from typing import Optional, Any
from loguru import logger

import anthropic
from pydantic import ValidationError

from data.models import NotableAlert


# ============================================================================
# Prompts
# ============================================================================

ALERTS_PROMPT = """You are an analyst monitoring NYC Mayor Zohran Mamdani's term. Analyze the following data sources and identify 2-4 notable connections, trends, or actionable alerts.

VIRAL VIDEOS:
{videos}

NEWS HEADLINES:
{news}

PREDICTION MARKETS:
{markets}

Generate 2-4 brief, actionable alerts that connect dots between these sources. Each alert should:
1. Have a clear category tag (TREND, OPPORTUNITY, RISK, or MOMENTUM)
2. Be 1-2 sentences max
3. Reference specific data points when possible
4. Help people understand what's happening and potential actions

Respond in JSON format:
{{
  "alerts": [
    {{
      "type": "TREND|OPPORTUNITY|RISK|MOMENTUM",
      "title": "Brief headline",
      "description": "1-2 sentence explanation connecting the dots"
    }}
  ]
}}

Only respond with valid JSON, no markdown or extra text."""

VELOCITY_PROMPT = """Analyze news/content velocity for these NYC Mayor Mamdani campaign promises.

CAMPAIGN PROMISES:
{promises}

RECENT NEWS & VIDEO TITLES:
{content}

For each promise, determine the news/content velocity (how much it's being discussed):
- "high": 4+ relevant mentions, actively trending
- "medium": 2-3 relevant mentions, moderate coverage
- "low": 0-1 mentions, minimal coverage

Respond in JSON format only:
{{
  "velocities": [
    {{"promiseId": "promise-id-here", "level": "high|medium|low", "reason": "brief explanation"}}
  ]
}}

Only respond with valid JSON, no extra text."""


def build_alerts_prompt(videos: list[dict], news: list[dict], markets: list[dict]) -> str:
    """Fill the alerts prompt from the first 5 videos, 5 news items and 7 markets."""
    video_lines = "\n".join(
        f"- Video: \"{v.get('title')}\" ({v.get('source') or 'Unknown'}) - {v.get('metric') or 'N/A'}"
        for v in videos[:5]
    )
    news_lines = "\n".join(
        f"- News: \"{n.get('title')}\" - {n.get('source') or 'Web'}"
        for n in news[:5]
    )
    market_lines = "\n".join(
        f"- Market: \"{m.get('title')}\" - "
        + (f"{round(m['yesPrice'] * 100)}% YES" if m.get("yesPrice") else "N/A")
        for m in markets[:7]
    )
    return ALERTS_PROMPT.format(
        videos=video_lines or "No videos available",
        news=news_lines or "No news available",
        markets=market_lines or "No markets available",
    )


def build_velocity_prompt(promises: list[dict], titles: list[str]) -> str:
    promise_lines = "\n".join(
        f"- {p.get('title')}: keywords [{', '.join(p.get('keywordsFound') or [])}]"
        for p in promises
    )
    content_lines = "\n".join(f"- {title}" for title in titles[:20])
    return VELOCITY_PROMPT.format(promises=promise_lines, content=content_lines)


# ============================================================================
# Response parsing
# ============================================================================

def parse_json_object(response_text: str) -> Optional[dict]:
    """Pull a JSON object out of an LLM response.

    Tries the whole text (after removing a ``` fence), then the first
    {...} block.

    Returns:
        Parsed object, or None when nothing parses
    """
    text = response_text.strip()

    if text.startswith("```"):
        match = re.search(r"```(?:json)?\s*([\s\S]*?)```", text)
        if match:
            text = match.group(1).strip()

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        match = re.search(r"\{[\s\S]*\}", text)
        if not match:
            return None
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            return None

    return data if isinstance(data, dict) else None


def validate_alerts(raw_alerts: Any) -> list[NotableAlert]:
    """Keep the alerts that match the schema, skipping the rest."""
    if not isinstance(raw_alerts, list):
        return []

    alerts = []
    for raw in raw_alerts:
        try:
            alerts.append(NotableAlert.model_validate(raw))
        except ValidationError as e:
            logger.warning(f"Skipping invalid alert: {e}")
    return alerts


def _title_words(title: str) -> list[str]:
    return [word for word in title.lower().split() if len(word) > 3]


def enrich_alert_sources(alerts: list[NotableAlert], news: list[dict], videos: list[dict]) -> list[NotableAlert]:
    """Attach the url/source of the news item (then video) an alert most likely came from.

    An item matches when its title contains any word longer than 3
    characters from the alert title.
    """
    enriched = []
    for alert in alerts:
        words = _title_words(alert.title)
        match = None
        for items, default_source in ((news, "News"), (videos, "Video")):
            candidate = next(
                (item for item in items if any(w in (item.get("title") or "").lower() for w in words)),
                None,
            )
            if candidate and candidate.get("url"):
                match = (candidate["url"], candidate.get("source") or default_source)
                break

        if match:
            alert = alert.model_copy(update={"url": match[0], "source": match[1]})
        enriched.append(alert)
    return enriched


# ============================================================================
# Analyst
# ============================================================================

@dataclass
class AnalysisResult:
    """Outcome of one LLM call."""
    alerts: list[NotableAlert] = field(default_factory=list)
    velocities: list[dict] = field(default_factory=list)
    latency_ms: int = 0
    raw_response: Optional[str] = None


class AIAnalyst:
    """Generates notable alerts and velocity ratings with Claude.

    Single attempt per call with a timeout. API and timeout errors
    propagate to the caller; unparsable output yields an empty result.
    """

    DEFAULT_MODEL = "claude-sonnet-4-20250514"
    TIMEOUT_SECONDS = 30.0
    MAX_TOKENS = 1024

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        timeout_seconds: float = TIMEOUT_SECONDS,
        client: Optional[Any] = None,
    ):
        """Initialize the analyst.

        Args:
            api_key: Anthropic API key
            model: Model to use
            timeout_seconds: Timeout per request
            client: Pre-built Anthropic client (tests)
        """
        if client is not None:
            self._client = client
        elif api_key:
            self._client = anthropic.Anthropic(api_key=api_key)
        else:
            logger.warning("No Anthropic API key - AI alerts disabled")
            self._client = None

        self.model = model
        self.timeout_seconds = timeout_seconds

        self._total_calls = 0
        self._successful_calls = 0
        self._failed_calls = 0
        self._total_latency_ms = 0

        logger.info(f"AIAnalyst initialized | Model: {model}")

    @property
    def is_available(self) -> bool:
        return self._client is not None

    async def generate_alerts(self, videos: list[dict], news: list[dict], markets: list[dict]) -> AnalysisResult:
        """Ask for 2-4 alerts connecting the given feeds.

        Returns:
            AnalysisResult with validated, source-enriched alerts

        Raises:
            RuntimeError: If no API key is configured
            asyncio.TimeoutError: If the request times out
            anthropic.APIError: If the API call fails
        """
        response, latency_ms = await self._complete(build_alerts_prompt(videos, news, markets))

        data = parse_json_object(response)
        if data is None:
            logger.error(f"Failed to parse alerts response: {response[:200]}")
            return AnalysisResult(latency_ms=latency_ms, raw_response=response)

        alerts = enrich_alert_sources(validate_alerts(data.get("alerts")), news, videos)
        logger.debug(f"Generated {len(alerts)} alerts | Latency: {latency_ms}ms")

        return AnalysisResult(alerts=alerts, latency_ms=latency_ms, raw_response=response)

    async def rate_velocity(self, promises: list[dict], titles: list[str]) -> AnalysisResult:
        """Ask for a high/medium/low velocity per promise.

        Raises:
            RuntimeError: If no API key is configured
            asyncio.TimeoutError: If the request times out
            anthropic.APIError: If the API call fails
        """
        response, latency_ms = await self._complete(build_velocity_prompt(promises, titles))

        data = parse_json_object(response) or {}
        velocities = data.get("velocities")
        if not isinstance(velocities, list):
            velocities = []

        return AnalysisResult(
            velocities=[v for v in velocities if isinstance(v, dict)],
            latency_ms=latency_ms,
            raw_response=response,
        )

    async def _complete(self, prompt: str) -> tuple[str, int]:
        if not self.is_available:
            raise RuntimeError("Claude API key not configured")

        start_time = time.monotonic()
        self._total_calls += 1

        try:
            response = await asyncio.wait_for(self._call_api(prompt), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            self._failed_calls += 1
            logger.warning("Claude request timed out")
            raise
        except Exception as e:
            self._failed_calls += 1
            logger.error(f"Claude API error: {e}")
            raise

        latency_ms = int((time.monotonic() - start_time) * 1000)
        self._successful_calls += 1
        self._total_latency_ms += latency_ms
        return response, latency_ms

    async def _call_api(self, prompt: str) -> str:
        """Call the Anthropic API.

        Args:
            prompt: User prompt

        Returns:
            Raw response text
        """
        response = await asyncio.to_thread(
            self._client.messages.create,
            model=self.model,
            max_tokens=self.MAX_TOKENS,
            messages=[{"role": "user", "content": prompt}],
        )

        if not response.content:
            return ""
        return response.content[0].text

    def get_stats(self) -> dict[str, Any]:
        avg_latency = 0
        if self._successful_calls > 0:
            avg_latency = self._total_latency_ms / self._successful_calls

        return {
            "available": self.is_available,
            "model": self.model,
            "total_calls": self._total_calls,
            "successful_calls": self._successful_calls,
            "failed_calls": self._failed_calls,
            "avg_latency_ms": round(avg_latency, 0),
        }
