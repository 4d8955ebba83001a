"""Normalizers for the changelog, news, video and trend feeds."""

import re
from datetime import datetime
from typing import Optional

from data.models import Commit, NewsItem, VideoItem, Trend, Severity
from logic.formatting import (
    extract_domain,
    format_count,
    format_relative_date,
    iso_timestamp,
    parse_timestamp,
    to_float,
    truncate,
    utc_now,
)


COMMIT_BODY_MAX = 150
NEWS_DESCRIPTION_MAX = 200

TREND_KEYWORDS = [
    "mamdani", "zohran", "nyc mayor", "new york mayor",
    "rent freeze", "affordable housing", "nyc housing",
    "fare free", "free bus", "queens", "astoria",
    "socialist", "progressive", "landlord",
]


# ============================================================================
# Changelog
# ============================================================================

def clean_commit_title(title: str) -> str:
    """Drop robot emoji prefixes and generated-by footers."""
    title = re.sub(r"^🤖\s*", "", title)
    title = re.sub(r"^Generated with \[Claude Code\].*$", "", title)
    return title.strip()


def is_merge_commit(title: str) -> bool:
    lower = title.lower()
    return lower.startswith("merge pull request") or lower.startswith("merge branch")


def normalize_commit(commit: dict, now: Optional[datetime] = None) -> Commit:
    """Reshape one GitHub commit object."""
    details = commit.get("commit") or {}
    author_info = details.get("author") or {}
    committer_info = details.get("committer") or {}

    message = details.get("message") or ""
    lines = message.split("\n")
    title = lines[0] or "No message"
    body = " ".join(
        line for line in lines[1:]
        if line.strip() and "Co-Authored-By" not in line
    ).strip()

    date = author_info.get("date") or committer_info.get("date")
    author = author_info.get("name") or (commit.get("author") or {}).get("login") or "Unknown"

    return Commit(
        sha=(commit.get("sha") or "")[:7],
        title=clean_commit_title(title),
        body=truncate(body, COMMIT_BODY_MAX) if body else "",
        date=format_relative_date(date, now=now),
        date_raw=date,
        author=author,
        url=commit.get("html_url") or "",
    )


def normalize_commits(commits: list[dict], now: Optional[datetime] = None) -> dict:
    """Normalize a GitHub commits listing, dropping merge commits.

    Returns:
        Dict with 'updatedAt', 'commits' and 'count'
    """
    items = [normalize_commit(commit, now=now) for commit in commits]
    items = [item for item in items if not is_merge_commit(item.title)]
    return {
        "updatedAt": iso_timestamp(),
        "commits": [item.to_payload() for item in items],
        "count": len(items),
    }


# ============================================================================
# News (web search)
# ============================================================================

def extract_result_list(data, *keys: str) -> list:
    """Find the result array in an upstream envelope.

    Upstreams wrap results inconsistently ({"data": [...]}, {"results": [...]},
    or a bare list); the first list found under ``keys`` wins.
    """
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in keys:
            value = data.get(key)
            if isinstance(value, list):
                return value
    return []


def normalize_search_result(item: dict) -> NewsItem:
    metadata = item.get("metadata") or {}
    url = item.get("url") or item.get("sourceURL") or metadata.get("sourceURL") or ""
    description = (
        item.get("description")
        or metadata.get("description")
        or truncate(item.get("markdown") or item.get("content") or "", NEWS_DESCRIPTION_MAX)
    )
    return NewsItem(
        title=item.get("title") or metadata.get("title") or "Untitled",
        description=description,
        url=url,
        source=extract_domain(url),
        published_at=item.get("publishedAt") or metadata.get("publishedAt"),
    )


def normalize_search_results(results: list[dict]) -> dict:
    """Normalize web-search hits into the news feed payload."""
    items = [normalize_search_result(item) for item in results]
    return {
        "updatedAt": iso_timestamp(),
        "items": [item.to_payload() for item in items],
        "source": "firecrawl",
        "count": len(items),
    }


# ============================================================================
# Videos
# ============================================================================

_TIMESTAMP_FIELDS = ("timestamp", "publishedAt", "published_at", "createdAt", "created_at", "date")


def _first(item: dict, *fields: str):
    for name in fields:
        value = item.get(name)
        if value:
            return value
    return None


def video_severity(item: dict, now: Optional[datetime] = None) -> str:
    """Classify a video by reach, then by age.

    hot: >1M views, >100K engagement or >10% engagement rate
    spike: >500K views, >50K engagement or >5% engagement rate
    new: published within the last 24 hours
    trending: everything else
    """
    if item.get("severity"):
        return str(item["severity"]).lower()

    views = to_float(_first(item, "views", "viewCount", "view_count"), 0.0)
    engagement = to_float(_first(item, "engagement", "likes", "interactions"), 0.0)
    engagement_rate = to_float(_first(item, "engagementRate", "engagement_rate"), 0.0)

    if views > 1_000_000 or engagement > 100_000 or engagement_rate > 10:
        return Severity.HOT.value
    if views > 500_000 or engagement > 50_000 or engagement_rate > 5:
        return Severity.SPIKE.value

    now = now or utc_now()
    published = parse_timestamp(_first(item, *_TIMESTAMP_FIELDS[:5])) or now
    hours_since_publish = (now - published).total_seconds() / 3600
    if hours_since_publish < 24:
        return Severity.NEW.value

    return Severity.TRENDING.value


def video_metric(item: dict) -> str:
    """Build the 'Views: 1.2M | Likes: 3.4K' display string."""
    if item.get("metric"):
        return str(item["metric"])

    parts = []
    views = _first(item, "views", "viewCount", "view_count")
    if views:
        parts.append(f"Views: {format_count(views)}")
    if item.get("likes"):
        parts.append(f"Likes: {format_count(item['likes'])}")
    comments = _first(item, "comments", "comment_count")
    if comments:
        parts.append(f"Comments: {format_count(comments)}")
    shares = _first(item, "shares", "share_count")
    if shares:
        parts.append(f"Shares: {format_count(shares)}")
    rate = _first(item, "engagementRate", "engagement_rate")
    if rate:
        parts.append(f"ER: {to_float(rate, 0.0):.2f}%")
    if item.get("engagement") and not item.get("likes"):
        parts.append(f"Engagement: {format_count(item['engagement'])}")

    return " | ".join(parts) if parts else "Tracking"


def normalize_video(item: dict, fallback_ts: str, now: Optional[datetime] = None) -> VideoItem:
    return VideoItem(
        ts=_first(item, *_TIMESTAMP_FIELDS) or fallback_ts,
        severity=video_severity(item, now=now),
        title=_first(item, "title", "caption", "description") or "Untitled",
        metric=video_metric(item),
        source=_first(item, "platform", "source") or "Social Media",
        url=_first(item, "url", "link", "videoUrl", "video_url") or "",
    )


def normalize_videos(data, now: Optional[datetime] = None) -> dict:
    """Normalize a Comet videos response into the video feed payload."""
    updated_at = iso_timestamp()
    raw_items = extract_result_list(data, "data", "results", "items", "videos")
    items = [normalize_video(item, updated_at, now=now) for item in raw_items]
    return {
        "updatedAt": updated_at,
        "items": [item.to_payload() for item in items],
    }


# ============================================================================
# Trends
# ============================================================================

def trend_severity(ranking: Optional[int]) -> Severity:
    if ranking is None:
        return Severity.TRENDING
    if ranking <= 3:
        return Severity.HOT
    if ranking <= 7:
        return Severity.SPIKE
    if ranking <= 15:
        return Severity.NEW
    return Severity.TRENDING


def normalize_trends(data, keywords: Optional[list[str]] = None) -> dict:
    """Flatten a trends digest and pick out subject-relevant trends.

    Args:
        data: Trends digest response (groups of ranked trends)
        keywords: Relevance keywords (case-insensitive substring match)

    Returns:
        Dict with relevant 'items', top 20 'allTrends' and counts
    """
    keywords = [k.lower() for k in (keywords or TREND_KEYWORDS)]
    groups = extract_result_list(data, "data")

    all_trends: list[Trend] = []
    relevant: list[Trend] = []

    for group in groups:
        group_title = group.get("title") or "Trends"
        for trend_item in group.get("trends") or []:
            trend = trend_item.get("trend") or trend_item
            name = trend.get("name") or trend.get("title") or ""
            description = trend.get("description") or ""
            ranking = int(to_float(trend_item.get("ranking"), 0.0) or 0)

            normalized = Trend(
                id=trend.get("id") or trend_item.get("id"),
                name=name,
                description=description,
                ranking=ranking,
                group_title=group_title,
                type=trend.get("trend_type") or "content",
            )
            all_trends.append(normalized)

            combined_text = f"{name} {description}".lower()
            if any(keyword in combined_text for keyword in keywords):
                raw_ranking = trend_item.get("ranking")
                severity = trend_severity(ranking if raw_ranking is not None else None)
                relevant.append(normalized.model_copy(update={"severity": severity}))

    return {
        "updatedAt": iso_timestamp(),
        "items": [trend.to_payload() for trend in relevant],
        "allTrends": [trend.to_payload() for trend in all_trends[:20]],
        "totalTrends": len(all_trends),
        "mamdaniCount": len(relevant),
    }
