"""
Terminal bell notifier.
"""

from typing import TextIO

from coinpeek.rules.types import TriggeredAlert
from .base import Notifier, NotificationResult


class BellNotifier(Notifier):
    """Rings the terminal bell once per triggered alert."""

    def __init__(self, stream: TextIO):
        self.stream = stream

    def send(self, alert: TriggeredAlert) -> NotificationResult:
        try:
            self.stream.write("\a")
            self.stream.flush()
        except (OSError, ValueError) as e:
            return NotificationResult(success=False, channel="bell", error=str(e))
        return NotificationResult(success=True, channel="bell")
