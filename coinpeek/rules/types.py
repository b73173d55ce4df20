"""
Price alert types.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from coinpeek.data.fetcher import PriceRecord


class ConditionKind(Enum):
    PRICE_ABOVE = "price_above"
    PRICE_BELOW = "price_below"
    PERCENT_CHANGE_ABOVE = "percent_change_above"
    PERCENT_CHANGE_BELOW = "percent_change_below"
    VOLUME_SPIKE = "volume_spike"


@dataclass(frozen=True)
class AlertCondition:
    """Threshold rule for one field of a price record."""

    kind: ConditionKind
    threshold: float

    @classmethod
    def price_above(cls, threshold: float) -> "AlertCondition":
        return cls(ConditionKind.PRICE_ABOVE, threshold)

    @classmethod
    def price_below(cls, threshold: float) -> "AlertCondition":
        return cls(ConditionKind.PRICE_BELOW, threshold)

    @classmethod
    def percent_change_above(cls, threshold: float) -> "AlertCondition":
        return cls(ConditionKind.PERCENT_CHANGE_ABOVE, threshold)

    @classmethod
    def percent_change_below(cls, threshold: float) -> "AlertCondition":
        return cls(ConditionKind.PERCENT_CHANGE_BELOW, threshold)

    @classmethod
    def volume_spike(cls, threshold: float) -> "AlertCondition":
        return cls(ConditionKind.VOLUME_SPIKE, threshold)

    def is_met(self, record: PriceRecord) -> bool:
        if self.kind is ConditionKind.PRICE_ABOVE:
            return record.price > self.threshold
        if self.kind is ConditionKind.PRICE_BELOW:
            return record.price < self.threshold
        if self.kind is ConditionKind.PERCENT_CHANGE_ABOVE:
            return record.price_change_percent > self.threshold
        if self.kind is ConditionKind.PERCENT_CHANGE_BELOW:
            return record.price_change_percent < self.threshold
        if self.kind is ConditionKind.VOLUME_SPIKE:
            return record.volume > self.threshold
        raise ValueError(f"Unknown condition kind: {self.kind}")

    def describe(self) -> str:
        """Short label, e.g. "Price > $100.00"."""
        if self.kind is ConditionKind.PRICE_ABOVE:
            return f"Price > ${self.threshold:.2f}"
        if self.kind is ConditionKind.PRICE_BELOW:
            return f"Price < ${self.threshold:.2f}"
        if self.kind is ConditionKind.PERCENT_CHANGE_ABOVE:
            return f"Change > {self.threshold:.1f}%"
        if self.kind is ConditionKind.PERCENT_CHANGE_BELOW:
            return f"Change < {self.threshold:.1f}%"
        return f"Volume > {self.threshold:.0f}"

    def format_message(self, record: PriceRecord) -> str:
        """Default notification text for a triggered condition."""
        symbol = record.symbol
        if self.kind is ConditionKind.PRICE_ABOVE:
            return f"{symbol} price ${record.price:.2f} is above ${self.threshold:.2f}"
        if self.kind is ConditionKind.PRICE_BELOW:
            return f"{symbol} price ${record.price:.2f} is below ${self.threshold:.2f}"
        if self.kind is ConditionKind.PERCENT_CHANGE_ABOVE:
            return (
                f"{symbol} 24h change {record.price_change_percent:.1f}% "
                f"is above {self.threshold:.1f}%"
            )
        if self.kind is ConditionKind.PERCENT_CHANGE_BELOW:
            return (
                f"{symbol} 24h change {record.price_change_percent:.1f}% "
                f"is below {self.threshold:.1f}%"
            )
        return f"{symbol} volume {record.volume:.0f} spiked above {self.threshold:.0f}"


@dataclass
class PriceAlert:
    """User-defined alert rule and its trigger bookkeeping."""

    id: int
    symbol: str
    condition: AlertCondition
    created_at: datetime
    enabled: bool = True
    last_triggered: Optional[datetime] = None
    trigger_count: int = 0
    custom_message: Optional[str] = None


@dataclass
class TriggeredAlert:
    """Notification produced when an alert fires."""

    alert_id: int
    symbol: str
    message: str
    condition: AlertCondition
    current_price: float
    triggered_at: datetime
