"""Breaking-alert detection for large short-term price moves.

Compares each market's current YES price with the latest recorded price
at least one lookback period old, and flags moves past the threshold
that have not already been alerted today (UTC).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol
from loguru import logger
from pydantic import ValidationError

from data.models import BreakingAlert
from logic.formatting import to_float, utc_now


PRICE_SPIKE = "price_spike"


@dataclass
class BreakingAlertConfig:
    """Thresholds for the breaking-alert pass."""

    # Minimum relative price change (0.10 = 10%)
    price_change_threshold: float = 0.10

    # How far back to look for the comparison price
    lookback_hours: float = 1.0

    # Newsletter tag that receives the alert emails
    subscriber_tag: str = "breaking_alerts"


class PriceHistory(Protocol):
    """The part of the history store this pass reads."""

    async def get_price_before(self, market_id: str, before: datetime) -> Optional[float]: ...

    async def alert_sent_since(self, market_id: str, alert_type: str, since: datetime) -> bool: ...


def start_of_utc_day(now: datetime) -> datetime:
    now = now.astimezone(timezone.utc)
    return datetime(now.year, now.month, now.day, tzinfo=timezone.utc)


def percent_change(old_price: float, current_price: float) -> float:
    """Absolute relative change from old_price (0.10 = 10%)."""
    return abs(current_price - old_price) / old_price


async def detect_breaking_alerts(
    markets: list[dict],
    history: PriceHistory,
    config: Optional[BreakingAlertConfig] = None,
    now: Optional[datetime] = None,
) -> list[BreakingAlert]:
    """Find markets whose price moved past the threshold.

    Args:
        markets: Normalized market payloads (need id or slug, yesPrice)
        history: Store holding recorded prices and sent alerts
        config: Thresholds (defaults to 10% over 1 hour)
        now: Reference time (defaults to current UTC time)

    Returns:
        Alerts to send, in input order
    """
    config = config or BreakingAlertConfig()
    now = now or utc_now()
    lookback_cutoff = now - timedelta(hours=config.lookback_hours)
    today = start_of_utc_day(now)

    alerts = []
    for market in markets:
        market_id = market.get("id") or market.get("slug")
        current_price = to_float(market.get("yesPrice"), None)
        if not market_id or current_price is None:
            continue
        market_id = str(market_id)

        try:
            old_price = await history.get_price_before(market_id, lookback_cutoff)
        except Exception as e:
            logger.warning(f"Price history lookup failed for {market_id}: {e}")
            continue

        # A zero baseline has no defined relative change
        if old_price is None or old_price == 0:
            continue

        change = percent_change(old_price, current_price)
        if change < config.price_change_threshold:
            continue

        try:
            if await history.alert_sent_since(market_id, PRICE_SPIKE, today):
                logger.info(f"Already sent alert for {market_id} today")
                continue
        except Exception as e:
            logger.warning(f"Sent-alert lookup failed for {market_id}: {e}")
            continue

        try:
            alerts.append(BreakingAlert(
                market_id=market_id,
                title=market.get("title") or "",
                old_price=old_price,
                current_price=current_price,
                percent_change=change,
                url=market.get("url") or "",
            ))
        except ValidationError as e:
            logger.warning(f"Skipping malformed market {market_id}: {e}")

    return alerts


def format_alert_email(alert: BreakingAlert) -> tuple[str, str]:
    """Build (subject, markdown body) for one breaking alert."""
    arrow = "📈" if alert.direction == "up" else "📉"
    subject = f"🚨 Breaking: {alert.title} {arrow} {alert.change_percent}%"
    body = (
        "**Market Alert**\n"
        "\n"
        f"{alert.title} has moved **{alert.change_percent}%** {alert.direction} in the last hour.\n"
        "\n"
        f"- Previous: {alert.old_price * 100:.1f}%\n"
        f"- Current: {alert.current_price * 100:.1f}%\n"
        "\n"
        f"[View Market]({alert.url})\n"
        "\n"
        "---\n"
        "You're receiving this because you subscribed to Breaking Alerts on Monitor Mamdani."
    )
    return subject, body
