"""Action endpoints: market snapshots, breaking alerts and the newsletter.

Bad input gives 400 and missing credentials 500. Upstream failures give
200 with ``success: false`` so the poller keeps going.
"""

from typing import Any, Optional
from loguru import logger
from pydantic import ValidationError

from data.models import MarketSnapshot
from logic.breaking_alerts import (
    PRICE_SPIKE,
    BreakingAlertConfig,
    detect_breaking_alerts,
    format_alert_email,
)
from logic.digest import build_digest, digest_week, format_week_range
from services.buttondown_client import ButtondownClient
from services.feeds import FeedResult


def bad_request(error: str) -> FeedResult:
    return FeedResult(body={"error": error}, status=400)


def not_configured(error: str) -> FeedResult:
    return FeedResult(body={"error": error}, status=500)


def action_failed(error: str, exc: Exception) -> FeedResult:
    return FeedResult(body={"success": False, "error": error, "message": str(exc)})


def markets_field(body: dict) -> Optional[list]:
    """The non-empty 'markets' list, or None."""
    markets = body.get("markets")
    if not isinstance(markets, list) or not markets:
        return None
    return markets


class NotificationService:
    """Price history, breaking-alert emails, subscriptions and the weekly digest."""

    WEEKLY_DIGEST_TAG = "weekly_digest"

    def __init__(
        self,
        store: Optional[Any] = None,
        newsletter: Optional[ButtondownClient] = None,
        breaking_config: Optional[BreakingAlertConfig] = None,
    ):
        """Initialize the service.

        Args:
            store: History store (Supabase or local SQLite)
            newsletter: Buttondown client (None when no API key is configured)
            breaking_config: Breaking-alert thresholds
        """
        self.store = store
        self.newsletter = newsletter
        self.breaking_config = breaking_config or BreakingAlertConfig()

        logger.info(
            f"NotificationService initialized | Store: {type(store).__name__ if store else None} | "
            f"Newsletter: {newsletter is not None}"
        )

    @property
    def can_email(self) -> bool:
        return self.store is not None and self.newsletter is not None

    # =========================================================================
    # Market Snapshots
    # =========================================================================

    async def save_market_snapshot(self, body: dict) -> FeedResult:
        if self.store is None:
            return not_configured("History store not configured")

        markets = markets_field(body)
        if markets is None:
            return bad_request("markets array is required")

        try:
            snapshots = [MarketSnapshot.from_market(m) for m in markets if isinstance(m, dict)]
        except ValidationError as e:
            logger.warning(f"Invalid market snapshot: {e}")
            return bad_request("markets array contains invalid entries")

        try:
            saved = await self.store.save_snapshots(snapshots)
            return FeedResult(body={"success": True, "saved": saved})
        except Exception as e:
            logger.error(f"Error saving market snapshots: {e}")
            return action_failed("Failed to save snapshots", e)

    # =========================================================================
    # Breaking Alerts
    # =========================================================================

    async def check_breaking_alerts(self, body: dict) -> FeedResult:
        """Email an alert for each market that moved past the threshold."""
        if not self.can_email:
            return not_configured("Required credentials not configured")

        markets = markets_field(body)
        if markets is None:
            return bad_request("markets array is required")

        try:
            alerts = await detect_breaking_alerts(
                [m for m in markets if isinstance(m, dict)], self.store, self.breaking_config
            )
        except Exception as e:
            logger.error(f"Error checking breaking alerts: {e}")
            return action_failed("Failed to check alerts", e)

        if alerts:
            logger.info(f"Sending {len(alerts)} breaking alerts")

        for alert in alerts:
            subject, email_body = format_alert_email(alert)
            try:
                await self.newsletter.send_email(subject, email_body, [self.breaking_config.subscriber_tag])
            except Exception as e:
                logger.error(f"Failed to send alert for {alert.market_id}: {e}")
                continue

            logger.info(f"Sent breaking alert for {alert.market_id}")
            try:
                await self.store.record_alert_sent(alert.market_id, PRICE_SPIKE)
            except Exception as e:
                logger.error(f"Failed to record sent alert for {alert.market_id}: {e}")

        return FeedResult(body={
            "success": True,
            "alertsSent": len(alerts),
            "alerts": [{"title": a.title, "change": a.change_percent} for a in alerts],
        })

    # =========================================================================
    # Newsletter
    # =========================================================================

    async def subscribe(self, body: dict) -> FeedResult:
        if self.newsletter is None:
            return not_configured("Buttondown API key not configured")

        email = body.get("email")
        if not email or not isinstance(email, str):
            return bad_request("Email is required")

        tags = body.get("tags")
        tags = tags if isinstance(tags, list) else []

        try:
            status, data = await self.newsletter.subscribe(email, tags)
        except Exception as e:
            logger.error(f"Subscription request failed: {e}")
            return action_failed("Failed to process subscription", e)

        if 200 <= status < 300:
            return FeedResult(body={"success": True, "message": "Successfully subscribed!"})
        if status == 409:
            return FeedResult(body={"success": True, "message": "You are already subscribed!"})

        details = data if isinstance(data, dict) else {}
        logger.warning(f"Buttondown rejected subscription: {status}")
        return FeedResult(body={
            "error": details.get("detail") or details.get("message") or "Subscription failed",
            "details": data,
        }, status=status)

    async def send_weekly_digest(self) -> FeedResult:
        """Email last week's unsent notable alerts and mark them sent."""
        if not self.can_email:
            return not_configured("Required credentials not configured")

        week_start, week_end = digest_week()
        week_range = format_week_range(week_start, week_end)
        logger.info(f"Fetching alerts from {week_start.isoformat()} to {week_end.isoformat()}")

        try:
            alerts = await self.store.get_unsent_notable_alerts(week_start, week_end)
        except Exception as e:
            logger.error(f"Failed to fetch alerts: {e}")
            return action_failed("Failed to fetch alerts", e)

        if not alerts:
            return FeedResult(body={"success": True, "message": "No new alerts to send", "alertCount": 0})

        subject, email_body = build_digest(alerts, week_range)
        try:
            email = await self.newsletter.send_email(subject, email_body, [self.WEEKLY_DIGEST_TAG])
        except Exception as e:
            logger.error(f"Failed to send digest: {e}")
            return action_failed("Failed to send digest", e)

        try:
            await self.store.mark_alerts_sent([a["id"] for a in alerts if a.get("id") is not None])
        except Exception as e:
            logger.error(f"Failed to mark alerts as sent: {e}")

        return FeedResult(body={
            "success": True,
            "alertCount": len(alerts),
            "weekRange": week_range,
            "emailId": (email or {}).get("id"),
        })
