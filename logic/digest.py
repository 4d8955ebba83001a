"""Weekly digest of notable alerts."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from data.models import AlertType
from logic.formatting import utc_now


DIGEST_CATEGORIES = (
    (AlertType.TREND, "📈", "Trends"),
    (AlertType.OPPORTUNITY, "💡", "Opportunities"),
    (AlertType.RISK, "⚠️", "Risks"),
    (AlertType.MOMENTUM, "🚀", "Momentum"),
)


def digest_week(now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """Monday 00:00 to Friday 23:59:59.999 (UTC) of the week being reported.

    On Sunday the week that just ended is reported (back 6 days);
    on any other day, the previous week's Monday.
    """
    now = (now or utc_now()).astimezone(timezone.utc)
    days_back = 6 if now.weekday() == 6 else now.weekday() + 7
    monday = datetime(now.year, now.month, now.day, tzinfo=timezone.utc) - timedelta(days=days_back)
    friday = monday + timedelta(days=4, hours=23, minutes=59, seconds=59, milliseconds=999)
    return monday, friday


def format_week_range(start: datetime, end: datetime) -> str:
    """'Jan 6 - Jan 10, 2025'."""
    return f"{start:%b} {start.day} - {end:%b} {end.day}, {end.year}"


def group_alerts(alerts: list[dict]) -> dict[str, list[dict]]:
    """Bucket alerts by type, dropping unknown types."""
    grouped = {category.value: [] for category, _, _ in DIGEST_CATEGORIES}
    for alert in alerts:
        bucket = grouped.get(alert.get("type"))
        if bucket is not None:
            bucket.append(alert)
    return grouped


def build_digest(alerts: list[dict], week_range: str) -> tuple[str, str]:
    """Build (subject, markdown body) for the weekly digest email."""
    subject = f"📊 Informed on Zohran - Week of {week_range}"

    lines = [
        "# Informed on Zohran",
        f"**Weekly Digest: {week_range}**",
        "",
        "Here's your bullet-point summary of Notable Alerts from the past week:",
        "",
    ]

    grouped = group_alerts(alerts)
    for category, icon, label in DIGEST_CATEGORIES:
        entries = grouped[category.value]
        if not entries:
            continue
        lines.append(f"## {icon} {label}")
        lines.append("")
        lines.extend(f"- **{a.get('title')}**: {a.get('description')}" for a in entries)
        lines.append("")

    lines.extend([
        "---",
        "",
        "Stay informed on all things Mamdani at [monitormamdani.com](https://monitormamdani.com)",
        "",
        "You're receiving this weekly digest because you subscribed to "
        "\"Informed on Zohran\" on Monitor Mamdani.",
    ])
    return subject, "\n".join(lines)
