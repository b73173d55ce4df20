"""
Base notifier classes.
"""

import os
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from coinpeek.rules.types import TriggeredAlert


@dataclass
class NotificationResult:
    """Result of a notification attempt."""

    success: bool
    channel: str
    error: Optional[str] = None


class Notifier(ABC):
    """Abstract base class for notifiers."""

    @abstractmethod
    def send(self, alert: TriggeredAlert) -> NotificationResult:
        """
        Send a single alert notification.

        Args:
            alert: Alert to send

        Returns:
            NotificationResult indicating success or failure
        """
        pass

    def send_batch(self, alerts: list[TriggeredAlert]) -> list[NotificationResult]:
        """
        Send multiple alerts.

        Args:
            alerts: List of alerts to send

        Returns:
            List of NotificationResult for each alert
        """
        return [self.send(alert) for alert in alerts]


class NotifierFactory:
    """Factory for creating notifier instances."""

    @staticmethod
    def from_env(bell: bool = True) -> list[Notifier]:
        """
        Build the notifier list.

        The terminal bell is on unless disabled; Discord is added when
        DISCORD_WEBHOOK_URL is set.
        """
        notifiers: list[Notifier] = []

        if bell:
            from .bell import BellNotifier

            notifiers.append(BellNotifier(stream=sys.stdout))

        webhook_url = os.getenv("DISCORD_WEBHOOK_URL")
        if webhook_url:
            from .discord import DiscordNotifier

            notifiers.append(DiscordNotifier(webhook_url=webhook_url))

        return notifiers
