"""
User-visible error log.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    NETWORK = "network"
    API = "api"
    DATABASE = "database"
    CONFIG = "config"
    VALIDATION = "validation"


class ErrorSeverity(Enum):
    """Severity levels, ordered by value."""

    INFO = 1
    WARNING = 2
    CRITICAL = 3


@dataclass
class ErrorEntry:
    id: int
    kind: ErrorKind
    severity: ErrorSeverity
    message: str
    timestamp: datetime
    resolved: bool = False


class ErrorLog:
    """
    Accumulates errors until they are explicitly resolved and cleared.

    Nothing is evicted automatically.
    """

    def __init__(self):
        self._entries: list[ErrorEntry] = []
        self._next_id = 1

    def report(
        self,
        kind: ErrorKind,
        severity: ErrorSeverity,
        message: str,
        now: datetime,
    ) -> int:
        entry = ErrorEntry(
            id=self._next_id,
            kind=kind,
            severity=severity,
            message=message,
            timestamp=now,
        )
        self._next_id += 1
        self._entries.append(entry)
        return entry.id

    def resolve(self, error_id: int) -> bool:
        for entry in self._entries:
            if entry.id == error_id:
                entry.resolved = True
                return True
        return False

    def clear_resolved(self) -> int:
        """Drop resolved entries and return how many were removed."""
        before = len(self._entries)
        self._entries = [e for e in self._entries if not e.resolved]
        return before - len(self._entries)

    def active(self) -> list[ErrorEntry]:
        return [e for e in self._entries if not e.resolved]

    def summary(self) -> Optional[str]:
        """Short status for title bars, None when nothing is unresolved."""
        active = self.active()
        if not active:
            return None

        worst = max(active, key=lambda e: e.severity.value)
        if worst.severity is ErrorSeverity.CRITICAL:
            icon = "🚨"
        elif worst.severity is ErrorSeverity.WARNING:
            icon = "⚠️"
        else:
            icon = "ℹ️"

        if len(active) == 1:
            return f"{icon} {worst.message}"
        return f"{icon} {len(active)} errors ({worst.severity.name.lower()}: {worst.message})"
