"""
Alert evaluation engine.
"""

import logging
from collections import deque
from datetime import datetime, timedelta
from typing import Optional

from coinpeek.data.fetcher import PriceRecord
from .types import AlertCondition, PriceAlert, TriggeredAlert

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN = timedelta(hours=1)
RECENT_ALERT_LIMIT = 10


class AlertEngine:
    """Holds alert rules and evaluates them against price snapshots."""

    def __init__(self, cooldown: timedelta = DEFAULT_COOLDOWN):
        """
        Initialize the engine.

        Args:
            cooldown: Minimum time between two triggers of the same alert
        """
        self.cooldown = cooldown
        self.alerts: list[PriceAlert] = []
        self.recent: deque[tuple[str, datetime]] = deque(maxlen=RECENT_ALERT_LIMIT)

    def create(
        self,
        symbol: str,
        condition: AlertCondition,
        now: datetime,
        message: Optional[str] = None,
    ) -> int:
        """
        Create an enabled alert.

        IDs are one past the highest live ID, so they never collide with an
        existing alert. Deleting the highest ID frees it for reuse.

        Returns:
            ID of the new alert
        """
        alert_id = max((a.id for a in self.alerts), default=0) + 1
        self.alerts.append(
            PriceAlert(
                id=alert_id,
                symbol=symbol,
                condition=condition,
                created_at=now,
                custom_message=message or None,
            )
        )
        logger.info(f"Created alert {alert_id}: {symbol} {condition.describe()}")
        return alert_id

    def get(self, alert_id: int) -> Optional[PriceAlert]:
        for alert in self.alerts:
            if alert.id == alert_id:
                return alert
        return None

    def delete(self, alert_id: int) -> bool:
        alert = self.get(alert_id)
        if alert is None:
            return False
        self.alerts.remove(alert)
        return True

    def toggle(self, alert_id: int) -> bool:
        alert = self.get(alert_id)
        if alert is None:
            return False
        alert.enabled = not alert.enabled
        return True

    def enabled_count(self) -> int:
        return sum(1 for a in self.alerts if a.enabled)

    def _in_cooldown(self, alert: PriceAlert, now: datetime) -> bool:
        if alert.last_triggered is None:
            return False
        return now - alert.last_triggered < self.cooldown

    def evaluate(
        self, records: list[PriceRecord], now: datetime
    ) -> list[TriggeredAlert]:
        """
        Evaluate every enabled alert against a snapshot.

        Alerts whose symbol is missing from the snapshot are skipped. Each
        alert has its own cooldown, so two alerts on one symbol fire
        independently.

        Args:
            records: Snapshot that was just applied
            now: Evaluation time

        Returns:
            Alerts that fired in this pass
        """
        by_symbol = {record.symbol: record for record in records}
        triggered = []

        for alert in self.alerts:
            if not alert.enabled:
                continue

            record = by_symbol.get(alert.symbol)
            if record is None:
                continue

            if not alert.condition.is_met(record):
                continue

            if self._in_cooldown(alert, now):
                continue

            alert.last_triggered = now
            alert.trigger_count += 1
            message = alert.custom_message or alert.condition.format_message(record)
            self.recent.append((message, now))

            triggered.append(
                TriggeredAlert(
                    alert_id=alert.id,
                    symbol=alert.symbol,
                    message=message,
                    condition=alert.condition,
                    current_price=record.price,
                    triggered_at=now,
                )
            )

        return triggered
