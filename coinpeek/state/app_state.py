"""
Dashboard view-model.

AppState owns the latest snapshot, the derived visible list, the selection
and its candle cache, sync health, the alert engine and the error log. All
methods are synchronous and do no I/O; the host loop fetches data and hands
the results in.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from coinpeek.data.fetcher import Candle, PriceRecord
from coinpeek.rules.engine import DEFAULT_COOLDOWN, AlertEngine
from coinpeek.rules.types import AlertCondition, PriceAlert, TriggeredAlert
from .errors import ErrorEntry, ErrorKind, ErrorLog, ErrorSeverity
from .filters import (
    FilterKind,
    FilterPreset,
    FilterType,
    SortConfig,
    SymbolSearch,
    build_view,
)
from .freshness import DataStatus

logger = logging.getLogger(__name__)


def dedupe_by_symbol(records: list[PriceRecord]) -> list[PriceRecord]:
    """
    Collapse duplicate symbols.

    The last record for a symbol wins and takes the position of the first
    occurrence.
    """
    by_symbol: dict[str, PriceRecord] = {}
    for record in records:
        by_symbol[record.symbol] = record
    return list(by_symbol.values())


class AppState:
    """In-memory state behind the terminal and browser dashboards."""

    def __init__(
        self,
        alert_cooldown: timedelta = DEFAULT_COOLDOWN,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.clock = clock

        self.all_records: list[PriceRecord] = []
        self.visible_records: list[PriceRecord] = []

        self.sort_config = SortConfig()
        self.active_preset = FilterPreset.ALL
        self.active_filters: list[FilterType] = []

        self.selected_index = 0
        self.candle_symbol = ""
        self.candles: list[Candle] = []

        self.data_status = DataStatus()
        self.alert_engine = AlertEngine(cooldown=alert_cooldown)
        self.error_log = ErrorLog()

        self.paused = False
        self.show_help = False
        self.show_alert_management = False
        self.search_mode = False
        self.search_query = ""

    # Snapshot store

    def replace_all(
        self, records: list[PriceRecord], evaluate_alerts: bool = True
    ) -> list[TriggeredAlert]:
        """
        Replace the snapshot wholesale.

        Evaluates alerts against the new snapshot, rebuilds the visible list
        and clamps the selection.

        Args:
            records: Full fetch result
            evaluate_alerts: False for cache warm-up, where old data must
                not fire notifications

        Returns:
            Alerts that fired
        """
        self.all_records = dedupe_by_symbol(records)

        triggered = []
        if evaluate_alerts:
            triggered = self.alert_engine.evaluate(self.all_records, self.clock())

        self.apply_filters_and_sorting()
        self.clamp_selection()
        return triggered

    # Filter/sort pipeline

    def apply_filters_and_sorting(self) -> None:
        self.visible_records = build_view(
            self.all_records,
            self.active_preset,
            self.active_filters,
            self.sort_config,
        )

    def _refilter(self) -> None:
        self.apply_filters_and_sorting()
        self.selected_index = 0

    def set_filter_preset(self, preset: FilterPreset) -> None:
        self.active_preset = preset
        self._refilter()

    def next_filter_preset(self) -> None:
        self.set_filter_preset(self.active_preset.next())

    def add_filter(self, new_filter: FilterType) -> None:
        """Add a custom filter, replacing any active filter of the same kind."""
        if isinstance(new_filter, SymbolSearch) and not new_filter.query:
            self.remove_filter(FilterKind.SYMBOL_SEARCH)
            return

        for i, active in enumerate(self.active_filters):
            if active.kind is new_filter.kind:
                self.active_filters[i] = new_filter
                break
        else:
            self.active_filters.append(new_filter)
        self._refilter()

    def remove_filter(self, kind: FilterKind) -> bool:
        remaining = [f for f in self.active_filters if f.kind is not kind]
        removed = len(remaining) != len(self.active_filters)
        if removed:
            self.active_filters = remaining
            self._refilter()
        return removed

    def clear_all_filters(self) -> None:
        """Drop every custom filter and go back to the All preset."""
        self.active_filters = []
        self.active_preset = FilterPreset.ALL
        self.search_query = ""
        self._refilter()

    def next_sort_mode(self) -> None:
        self.sort_config.mode = self.sort_config.mode.next()
        self.apply_filters_and_sorting()
        self.clamp_selection()

    def toggle_sort_direction(self) -> None:
        self.sort_config.direction = self.sort_config.direction.toggle()
        self.apply_filters_and_sorting()
        self.clamp_selection()

    # Search

    def enter_search_mode(self) -> None:
        self.search_mode = True

    def exit_search_mode(self) -> None:
        self.search_mode = False
        self.update_search_query("")

    def update_search_query(self, query: str) -> None:
        """Set the symbol search; an empty query removes the filter."""
        self.search_query = query
        self.add_filter(SymbolSearch(query))

    # Selection & candle cache

    def clamp_selection(self) -> None:
        if self.visible_records and self.selected_index >= len(self.visible_records):
            self.selected_index = len(self.visible_records) - 1

    def select_next(self) -> None:
        if self.visible_records:
            self.selected_index = (self.selected_index + 1) % len(self.visible_records)

    def select_previous(self) -> None:
        if self.visible_records:
            if self.selected_index == 0:
                self.selected_index = len(self.visible_records) - 1
            else:
                self.selected_index -= 1

    def select_index(self, index: int) -> bool:
        """Select a row directly (mouse click, web UI). Out of range is ignored."""
        if 0 <= index < len(self.visible_records):
            self.selected_index = index
            return True
        return False

    def selected_record(self) -> Optional[PriceRecord]:
        if 0 <= self.selected_index < len(self.visible_records):
            return self.visible_records[self.selected_index]
        return None

    def needs_candle_fetch(self) -> Optional[str]:
        """Symbol whose candles must be loaded, or None when the cache is valid."""
        selected = self.selected_record()
        if selected is None:
            return None
        if self.candle_symbol != selected.symbol or not self.candles:
            return selected.symbol
        return None

    def set_candles(self, candles: list[Candle], symbol: Optional[str] = None) -> bool:
        """
        Store candles for the selected row.

        When ``symbol`` is given and the selection has moved to another
        symbol since the fetch started, the candles are discarded.
        """
        selected = self.selected_record()
        if selected is None:
            return False
        if symbol is not None and symbol != selected.symbol:
            logger.debug(f"Discarding candles for {symbol}, selection is {selected.symbol}")
            return False
        self.candles = list(candles)
        self.candle_symbol = selected.symbol
        return True

    # Freshness

    def record_success(self) -> None:
        self.data_status.record_success(self.clock())

    def record_failure(self) -> None:
        was_offline = self.data_status.offline
        self.data_status.record_failure()
        if self.data_status.offline and not was_offline:
            logger.warning(
                f"Switching to offline mode after "
                f"{self.data_status.consecutive_failures} failed syncs"
            )

    def toggle_offline_mode(self) -> None:
        self.data_status.toggle_offline()

    def data_age_string(self) -> str:
        return self.data_status.age_string(self.clock())

    def is_data_stale(self) -> bool:
        return self.data_status.is_stale(self.clock())

    def offline_indicator(self) -> str:
        return self.data_status.indicator(self.clock())

    # Alerts

    def create_alert(
        self, symbol: str, condition: AlertCondition, message: Optional[str] = None
    ) -> int:
        return self.alert_engine.create(symbol, condition, self.clock(), message)

    def delete_alert(self, alert_id: int) -> bool:
        return self.alert_engine.delete(alert_id)

    def toggle_alert(self, alert_id: int) -> bool:
        return self.alert_engine.toggle(alert_id)

    @property
    def alerts(self) -> list[PriceAlert]:
        return self.alert_engine.alerts

    def enabled_alert_count(self) -> int:
        return self.alert_engine.enabled_count()

    def recent_alerts(self) -> list[tuple[str, datetime]]:
        """Most recent notifications, oldest first."""
        return list(self.alert_engine.recent)

    # Error log

    def report_error(
        self, kind: ErrorKind, severity: ErrorSeverity, message: str
    ) -> int:
        return self.error_log.report(kind, severity, message, self.clock())

    def resolve_error(self, error_id: int) -> bool:
        return self.error_log.resolve(error_id)

    def clear_resolved_errors(self) -> int:
        return self.error_log.clear_resolved()

    def active_errors(self) -> list[ErrorEntry]:
        return self.error_log.active()

    def error_summary(self) -> Optional[str]:
        return self.error_log.summary()

    # Modes and display helpers

    def toggle_pause(self) -> None:
        self.paused = not self.paused

    def toggle_help(self) -> None:
        self.show_help = not self.show_help

    def toggle_alert_management(self) -> None:
        self.show_alert_management = not self.show_alert_management

    def visible_count(self) -> tuple[int, int]:
        return len(self.visible_records), len(self.all_records)

    def sort_display(self) -> str:
        return self.sort_config.display_name()

    def filter_status(self) -> str:
        status = self.active_preset.as_str()
        if self.active_filters:
            count = len(self.active_filters)
            status += f" +{count} filter" + ("s" if count != 1 else "")
        return status
