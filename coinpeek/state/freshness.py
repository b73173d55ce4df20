"""
Sync health tracking.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

OFFLINE_FAILURE_THRESHOLD = 3
STALE_AFTER = timedelta(minutes=30)


def format_age(since: Optional[datetime], now: datetime) -> str:
    """Human readable age: "just now", "5m ago", "2h ago", "3d ago" or "never"."""
    if since is None:
        return "never"

    elapsed = now - since
    minutes = int(elapsed.total_seconds() // 60)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


@dataclass
class DataStatus:
    """Freshness of the price data and the sticky offline flag."""

    last_update: Optional[datetime] = None
    last_success: Optional[datetime] = None
    offline: bool = False
    consecutive_failures: int = 0

    def record_success(self, now: datetime) -> None:
        # Offline mode is only ever left through toggle_offline().
        self.last_success = now
        self.last_update = now
        self.consecutive_failures = 0

    def record_failure(self) -> None:
        self.consecutive_failures += 1
        if self.consecutive_failures >= OFFLINE_FAILURE_THRESHOLD:
            self.offline = True

    def toggle_offline(self) -> None:
        self.offline = not self.offline
        self.consecutive_failures = 0

    def age_string(self, now: datetime) -> str:
        return format_age(self.last_success, now)

    def is_stale(self, now: datetime) -> bool:
        if self.last_success is None:
            return True
        return now - self.last_success > STALE_AFTER

    def indicator(self, now: datetime) -> str:
        """One-line sync status for headers and title bars."""
        if self.offline:
            return f"🔴 OFFLINE | last sync {self.age_string(now)}"
        if self.consecutive_failures > 0:
            return f"🟡 {self.consecutive_failures} failures"
        return f"🟢 synced {self.age_string(now)}"
