"""Display formatting helpers shared by the feed normalizers.

Dates, currency and counts are rendered here exactly once so every
dashboard panel shows the same style ("3h ago", "$1.25B", "1.2M").
"""

from datetime import datetime, timezone
from typing import Optional, Union
from urllib.parse import urlparse


Number = Union[int, float]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def iso_timestamp(when: Optional[datetime] = None) -> str:
    """ISO-8601 timestamp with millisecond precision and a Z suffix."""
    when = when or utc_now()
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an upstream ISO timestamp into an aware datetime.

    Naive values (Socrata returns these) are treated as UTC.

    Returns:
        Parsed datetime, or None when the value is empty or unparsable.
    """
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def truncate(text: Optional[str], max_length: int) -> str:
    """Cut text to max_length, ending with '...' when shortened."""
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def _month_day(when: datetime) -> str:
    return f"{when:%b} {when.day}"


def format_relative_date(value: Optional[str], now: Optional[datetime] = None) -> str:
    """Render a timestamp relative to now.

    "Just now", "12m ago", "5h ago", "Yesterday", "3d ago", then
    "Jan 5" (or "Jan 5, 2024" outside the current year).
    """
    if not value:
        return ""
    when = parse_timestamp(value)
    if when is None:
        return value

    now = now or utc_now()
    diff_seconds = (now - when).total_seconds()
    diff_days = int(diff_seconds // 86400)

    if diff_days == 0:
        diff_hours = int(diff_seconds // 3600)
        if diff_hours == 0:
            diff_minutes = int(diff_seconds // 60)
            return "Just now" if diff_minutes <= 1 else f"{diff_minutes}m ago"
        return f"{diff_hours}h ago"
    if diff_days == 1:
        return "Yesterday"
    if 1 < diff_days < 7:
        return f"{diff_days}d ago"

    if when.year != now.year:
        return f"{_month_day(when)}, {when.year}"
    return _month_day(when)


def format_calendar_date(value: Optional[str]) -> str:
    """"Jan 5, 2025" style date, or the input when unparsable."""
    if not value:
        return ""
    when = parse_timestamp(value)
    if when is None:
        return value
    return f"{_month_day(when)}, {when.year}"


def format_date_time(value: Optional[str]) -> str:
    """"Jan 5, 3:04 PM" style date-time, or the input when unparsable."""
    if not value:
        return ""
    when = parse_timestamp(value)
    if when is None:
        return value
    hour = when.hour % 12 or 12
    meridiem = "AM" if when.hour < 12 else "PM"
    return f"{_month_day(when)}, {hour}:{when.minute:02d} {meridiem}"


def format_currency(amount: Number) -> str:
    """Compact dollar amount: $1.23B, $45.6M, $12K, $950."""
    if amount >= 1e9:
        return f"${amount / 1e9:.2f}B"
    if amount >= 1e6:
        return f"${amount / 1e6:.1f}M"
    if amount >= 1e3:
        return f"${amount / 1e3:.0f}K"
    return f"${amount:.0f}"


def format_percent_change(base: Number, current: Number) -> str:
    """Signed percentage change from base to current, e.g. '+3.4%'."""
    if not base:
        return "0%"
    change = (current - base) / base * 100
    sign = "+" if change >= 0 else ""
    return f"{sign}{change:.1f}%"


def format_count(value: Number) -> str:
    """Compact count: 1.2M, 3.4K, 950."""
    if not isinstance(value, (int, float)):
        value = to_float(value, 0.0)
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{value / 1_000:.1f}K"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def extract_domain(url: Optional[str]) -> str:
    """Hostname of a URL without the www. prefix ('Web' when unknown)."""
    if not url:
        return "Web"
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return "Web"
    if not hostname:
        return "Web"
    return hostname.replace("www.", "", 1)


def to_float(value, default: Optional[float] = 0.0) -> Optional[float]:
    """Lenient float conversion for loosely-typed upstream fields."""
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
