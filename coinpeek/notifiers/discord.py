"""
Discord webhook notifier.
"""

import time
from typing import Any

import requests

from coinpeek.rules.types import ConditionKind, TriggeredAlert
from .base import Notifier, NotificationResult


class DiscordNotifier(Notifier):
    """Sends notifications via Discord webhook."""

    COLOR_UP = 0x2ECC71  # Green
    COLOR_DOWN = 0xE74C3C  # Red
    COLOR_VOLUME = 0x3498DB  # Blue

    def __init__(self, webhook_url: str, include_chart_link: bool = True):
        """
        Initialize Discord notifier.

        Args:
            webhook_url: Discord webhook URL
            include_chart_link: Whether to include a Binance chart link
        """
        self.webhook_url = webhook_url
        self.include_chart_link = include_chart_link

    def send(self, alert: TriggeredAlert) -> NotificationResult:
        """Send alert to Discord."""
        try:
            payload = {"embeds": [self._create_embed(alert)]}
            response = self._send_webhook(payload)

            if response.ok:
                return NotificationResult(success=True, channel="discord")
            else:
                return NotificationResult(
                    success=False,
                    channel="discord",
                    error=f"HTTP {response.status_code}: {response.text}",
                )

        except requests.exceptions.RequestException as e:
            return NotificationResult(
                success=False,
                channel="discord",
                error=f"Connection error: {str(e)}",
            )

    def _send_webhook(self, payload: dict[str, Any]) -> requests.Response:
        """Send webhook with rate limit handling."""
        response = requests.post(
            self.webhook_url,
            json=payload,
            timeout=10,
        )

        # Handle rate limiting
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After", "1")
            time.sleep(float(retry_after))
            response = requests.post(
                self.webhook_url,
                json=payload,
                timeout=10,
            )

        return response

    def _create_embed(self, alert: TriggeredAlert) -> dict[str, Any]:
        """Create Discord embed for alert."""
        embed: dict[str, Any] = {
            "title": f"🔔 {alert.symbol} Alert",
            "description": alert.message,
            "color": self._get_color(alert.condition.kind),
            "fields": [
                {
                    "name": "Current Price",
                    "value": f"${alert.current_price:.2f}",
                    "inline": True,
                },
                {
                    "name": "Rule",
                    "value": alert.condition.describe(),
                    "inline": True,
                },
            ],
            "timestamp": alert.triggered_at.isoformat(),
        }

        if self.include_chart_link:
            chart_url = f"https://www.binance.com/en/trade/{alert.symbol}"
            embed["fields"].append({
                "name": "Chart",
                "value": f"[Binance]({chart_url})",
                "inline": True,
            })

        return embed

    def _get_color(self, kind: ConditionKind) -> int:
        if kind in (ConditionKind.PRICE_ABOVE, ConditionKind.PERCENT_CHANGE_ABOVE):
            return self.COLOR_UP
        elif kind in (ConditionKind.PRICE_BELOW, ConditionKind.PERCENT_CHANGE_BELOW):
            return self.COLOR_DOWN
        else:
            return self.COLOR_VOLUME
