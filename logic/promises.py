"""Campaign promise extraction, completion heuristic and enrichment.

Promise payloads travel as plain dicts (camelCase keys) because the
completion and enrichment passes receive them back from the dashboard
and must echo unknown fields untouched.
"""

from dataclasses import dataclass, field
from typing import Optional

from data.models import CampaignPromise, CompletionStatus, Confidence
from logic.formatting import truncate


PLATFORM_URL = "https://www.zohranfornyc.com/platform"


@dataclass(frozen=True)
class CampaignArea:
    id: str
    title: str
    keywords: tuple[str, ...]
    icon: str


CAMPAIGN_AREAS = (
    CampaignArea("housing", "Housing & Rent",
                 ("rent", "housing", "tenant", "landlord", "affordable", "freeze"), "🏠"),
    CampaignArea("transit", "Free Transit",
                 ("bus", "transit", "fare", "transportation", "mta", "subway"), "🚌"),
    CampaignArea("safety", "Community Safety",
                 ("safety", "police", "community", "violence", "crisis"), "🛡️"),
    CampaignArea("grocery", "City-Owned Groceries",
                 ("grocery", "food", "supermarket", "city-owned"), "🛒"),
    CampaignArea("healthcare", "Healthcare",
                 ("health", "hospital", "medical", "care", "mental"), "🏥"),
    CampaignArea("workers", "Workers Rights",
                 ("worker", "union", "wage", "labor", "job"), "✊"),
    CampaignArea("environment", "Climate & Environment",
                 ("climate", "green", "environment", "energy", "sustainable"), "🌱"),
    CampaignArea("democracy", "Democracy & Engagement",
                 ("democracy", "vote", "engagement", "participatory", "budget"), "🗳️"),
)

FALLBACK_PROMISES = (
    CampaignPromise(
        id="rent-freeze", title="Rent Freeze", icon="🏠",
        excerpt="Implement a rent freeze for NYC tenants to combat the housing affordability crisis.",
        keywords_found=["rent", "freeze", "housing"],
    ),
    CampaignPromise(
        id="fare-free", title="Fare-Free Buses", icon="🚌",
        excerpt="Make all NYC buses fare-free to improve transit access for all New Yorkers.",
        keywords_found=["bus", "fare", "free", "transit"],
    ),
    CampaignPromise(
        id="community-safety", title="Department of Community Safety", icon="🛡️",
        excerpt="Create a new Department of Community Safety with non-police crisis responders.",
        keywords_found=["community", "safety", "crisis"],
    ),
    CampaignPromise(
        id="city-grocery", title="City-Owned Grocery Stores", icon="🛒",
        excerpt="Establish city-owned grocery stores in food deserts to ensure affordable access to fresh food.",
        keywords_found=["grocery", "city-owned", "food"],
    ),
    CampaignPromise(
        id="bad-landlords", title="Crack Down on Bad Landlords", icon="⚖️",
        excerpt="Strengthen enforcement against negligent landlords and protect tenant rights.",
        keywords_found=["landlord", "tenant", "housing"],
    ),
    CampaignPromise(
        id="mass-engagement", title="Office of Mass Engagement", icon="🗳️",
        excerpt="Create an Office of Mass Engagement to increase participatory democracy.",
        keywords_found=["engagement", "democracy", "participatory"],
    ),
)

COMPLETION_PHRASES = (
    "signed into law", "becomes law", "enacted", "approved", "passed",
    "implemented", "launched", "achieved", "completed", "fulfilled",
    "delivered", "announced today", "officially", "begins today",
    "now in effect", "takes effect", "rollout begins", "program launched",
    "initiative launched", "successfully", "milestone reached", "goal met",
    "target achieved",
)


# ============================================================================
# Extraction
# ============================================================================

def fallback_promises() -> list[dict]:
    """Known campaign positions, used when the platform page is unavailable."""
    return [promise.to_payload() for promise in FALLBACK_PROMISES]


def extract_relevant_section(markdown: str, keywords: tuple[str, ...]) -> str:
    """First keyword line plus the two following lines, if substantial."""
    lines = markdown.split("\n")
    for keyword in keywords:
        for i, line in enumerate(lines):
            if keyword in line.lower():
                excerpt = " ".join(lines[i:i + 3]).strip()
                if len(excerpt) > 20:
                    return truncate(excerpt, 200)
    return ""


def extract_promises(markdown: str) -> list[dict]:
    """Find the campaign areas a platform page talks about.

    Args:
        markdown: Scraped page content

    Returns:
        One promise per area with at least one keyword present, or the
        fallback promises when no area matches
    """
    lower_markdown = markdown.lower()
    promises = []

    for area in CAMPAIGN_AREAS:
        found = [kw for kw in area.keywords if kw in lower_markdown]
        if not found:
            continue
        promises.append(CampaignPromise(
            id=area.id,
            title=area.title,
            icon=area.icon,
            excerpt=extract_relevant_section(markdown, area.keywords),
            keywords_found=found,
        ).to_payload())

    return promises or fallback_promises()


# ============================================================================
# Completion heuristic
# ============================================================================

def build_content_items(news: Optional[list[dict]], videos: Optional[list[dict]]) -> list[dict]:
    """Flatten news and video payloads into one searchable list."""
    items = [
        {
            "title": n.get("title") or "",
            "description": n.get("description") or "",
            "source": n.get("source") or "News",
            "url": n.get("url") or "",
            "date": n.get("publishedAt") or n.get("date") or "",
        }
        for n in news or []
    ]
    items.extend(
        {
            "title": v.get("title") or "",
            "description": v.get("description") or v.get("caption") or "",
            "source": v.get("source") or v.get("platform") or "Video",
            "url": v.get("url") or "",
            "date": v.get("ts") or v.get("timestamp") or "",
        }
        for v in videos or []
    )
    return items


def analyze_completion(promise: dict, content: list[dict]) -> dict:
    """Score one promise against the content for signs it was achieved.

    An item counts when it mentions one of the promise keywords (or the
    start of its title) together with at least one completion phrase.

    Returns:
        Dict with 'status', 'confidence' and up to 3 'evidence' items
    """
    title = (promise.get("title") or "").lower()
    keywords = [k.lower() for k in (promise.get("keywordsFound") or promise.get("keywords") or [])]
    title_prefix = title[:20]

    evidence = []
    score = 0

    for item in content:
        item_text = f"{item['title']} {item['description']}".lower()
        is_related = any(kw in item_text for kw in keywords) or title_prefix in item_text
        if not is_related:
            continue

        phrases = [phrase for phrase in COMPLETION_PHRASES if phrase in item_text]
        if phrases:
            score += len(phrases)
            evidence.append({
                "title": item["title"],
                "source": item["source"],
                "url": item["url"],
                "phrases": phrases,
                "date": item["date"],
            })

    if score >= 3 or len(evidence) >= 2:
        status = CompletionStatus.COMPLETED
        confidence = Confidence.HIGH if score >= 5 else Confidence.MEDIUM
    elif score >= 1:
        status = CompletionStatus.IN_PROGRESS
        confidence = Confidence.MEDIUM
    else:
        status = CompletionStatus.IN_PROGRESS
        confidence = Confidence.LOW

    return {
        "status": status.value,
        "confidence": confidence.value,
        "evidence": evidence[:3],
    }


def empty_completion_summary() -> dict:
    return {
        "completed": 0,
        "total": 0,
        "completedPromises": [],
        "inProgressPromises": [],
    }


def summarize_completion(promises: list[dict], news: Optional[list[dict]],
                         videos: Optional[list[dict]], checked_at: str) -> dict:
    """Run the completion heuristic over every promise."""
    if not promises:
        return empty_completion_summary()

    content = build_content_items(news, videos)
    completed, in_progress = [], []

    for promise in promises:
        result = analyze_completion(promise, content)
        analyzed = {
            **promise,
            "completionStatus": result["status"],
            "completionConfidence": result["confidence"],
            "completionEvidence": result["evidence"],
        }
        if result["status"] == CompletionStatus.COMPLETED.value:
            completed.append(analyzed)
        else:
            in_progress.append(analyzed)

    return {
        "completed": len(completed),
        "total": len(promises),
        "completedPromises": completed,
        "inProgressPromises": in_progress,
        "lastChecked": checked_at,
    }


# ============================================================================
# Enrichment
# ============================================================================

@dataclass
class PromiseMarketLink:
    """Markets and keywords associated with one promise id."""
    polymarket_slugs: list[str] = field(default_factory=list)
    kalshi_tickers: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)


_RENT = (["will-mamdani-freeze-nyc-rents-before-2027"], ["KXNYCRENTFREEZE-27JAN01"])
_BUS = (["will-mamdani-make-nyc-buses-free-by-march-31"], ["KXNYCFREEBUS-27MAR31"])
_GROCERY = (["mamdani-opens-city-owned-grocery-store-by-june-30"], ["KXNYCGROCERY-26JUN30"])

PROMISE_MARKET_MAP = {
    "rent-freeze": PromiseMarketLink(*_RENT, ["rent", "freeze", "housing", "tenant"]),
    "fare-free": PromiseMarketLink(*_BUS, ["bus", "fare", "free", "transit", "mta"]),
    "city-grocery": PromiseMarketLink(*_GROCERY, ["grocery", "food", "supermarket", "city-owned"]),
    "housing": PromiseMarketLink(*_RENT, ["rent", "housing", "tenant", "landlord", "affordable"]),
    "transit": PromiseMarketLink(*_BUS, ["bus", "transit", "fare", "transportation", "mta"]),
    "grocery": PromiseMarketLink(*_GROCERY, ["grocery", "food", "supermarket"]),
    "workers": PromiseMarketLink(
        ["will-mamdani-raise-the-minimum-wage-to-30-before-2027"], ["KXNYCMINWAGE-27JAN01"],
        ["worker", "wage", "minimum", "labor", "union"],
    ),
    "bad-landlords": PromiseMarketLink(*_RENT, ["landlord", "tenant", "housing", "rent"]),
    "democracy": PromiseMarketLink(keywords=["democracy", "engagement", "participatory", "vote"]),
    "mass-engagement": PromiseMarketLink(keywords=["engagement", "democracy", "participatory"]),
    "community-safety": PromiseMarketLink(keywords=["safety", "community", "police", "crisis"]),
    "healthcare": PromiseMarketLink(
        kalshi_tickers=["KXNYCCHILDCARE-27JAN01"],
        keywords=["health", "care", "medical", "childcare"],
    ),
    "environment": PromiseMarketLink(keywords=["climate", "green", "environment", "energy"]),
}

CONTENT_WINDOW = 20


def link_for(promise: dict) -> PromiseMarketLink:
    """Market link for a promise id, defaulting to its found keywords."""
    link = PROMISE_MARKET_MAP.get(promise.get("id") or "")
    if link is not None:
        return link
    return PromiseMarketLink(keywords=list(promise.get("keywordsFound") or []))


def velocity_level(match_count: int) -> str:
    if match_count >= 5:
        return Confidence.HIGH.value
    if match_count >= 2:
        return Confidence.MEDIUM.value
    return Confidence.LOW.value


def _market_matches(market: dict, link: PromiseMarketLink) -> bool:
    slug = (market.get("slug") or "").lower()
    title = (market.get("title") or "").lower()
    ticker = str(market.get("id") or "").upper()

    direct = (
        any(s.lower() in slug for s in link.polymarket_slugs)
        or any(t.upper() in ticker for t in link.kalshi_tickers)
    )
    return direct or any(kw.lower() in title for kw in link.keywords)


def enrich_promise(promise: dict, markets: list[dict], news: list[dict], videos: list[dict]) -> dict:
    """Attach matched markets, matched content and a velocity level.

    Args:
        promise: Promise payload
        markets: Combined markets, each with its display 'source'
        news: News window (already capped)
        videos: Video window (already capped)
    """
    link = link_for(promise)
    keywords = [kw.lower() for kw in link.keywords]

    matched_markets = [m for m in markets if _market_matches(m, link)]

    matched_news = [
        {"title": item.get("title"), "url": item.get("url"), "source": item.get("source") or "News"}
        for item in news
        if any(kw in f"{(item.get('title') or '').lower()} {(item.get('description') or '').lower()}"
               for kw in keywords)
    ]
    matched_videos = [
        {
            "title": item.get("title"),
            "url": item.get("url"),
            "source": item.get("source") or "Video",
            "platform": item.get("platform"),
        }
        for item in videos
        if any(kw in (item.get("title") or "").lower() for kw in keywords)
    ]

    match_count = len(matched_news) + len(matched_videos)

    return {
        **promise,
        "markets": [
            {"title": m.get("title"), "yesPrice": m.get("yesPrice"), "source": m.get("source"), "url": m.get("url")}
            for m in matched_markets[:3]
        ],
        "velocity": {
            "level": velocity_level(match_count),
            "matchCount": match_count,
            "totalContent": len(news) + len(videos),
        },
        "matchedContent": {
            "news": matched_news[:5],
            "videos": matched_videos[:5],
        },
    }


def enrich_promises(promises: list[dict], markets: Optional[list[dict]], kalshi_markets: Optional[list[dict]],
                    news: Optional[list[dict]], videos: Optional[list[dict]]) -> list[dict]:
    """Keyword-based enrichment for every promise."""
    all_markets = [{**m, "source": "Polymarket"} for m in markets or []]
    all_markets.extend({**m, "source": "Kalshi"} for m in kalshi_markets or [])
    news_window = (news or [])[:CONTENT_WINDOW]
    video_window = (videos or [])[:CONTENT_WINDOW]

    return [enrich_promise(p, all_markets, news_window, video_window) for p in promises]


def content_titles(news: Optional[list[dict]], videos: Optional[list[dict]]) -> list[str]:
    """Non-empty news and video titles from the content windows."""
    titles = [n.get("title") for n in (news or [])[:CONTENT_WINDOW]]
    titles.extend(v.get("title") for v in (videos or [])[:CONTENT_WINDOW])
    return [t for t in titles if t]


def merge_velocities(enriched: list[dict], velocities: list[dict]) -> list[dict]:
    """Overlay LLM velocity levels onto keyword results, matching ids case-insensitively."""
    by_id = {}
    for entry in velocities:
        promise_id = entry.get("promiseId")
        if isinstance(promise_id, str):
            by_id.setdefault(promise_id.lower(), entry)

    merged = []
    for promise in enriched:
        entry = by_id.get(str(promise.get("id") or "").lower())
        if entry is None:
            merged.append(promise)
            continue
        merged.append({
            **promise,
            "velocity": {
                **promise.get("velocity", {}),
                "level": entry.get("level"),
                "reason": entry.get("reason"),
            },
        })
    return merged
