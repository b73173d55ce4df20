"""
Filter and sort pipeline for the price view.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from coinpeek.data.fetcher import PriceRecord

TOP_MOVER_THRESHOLD = 5.0
VOLATILE_THRESHOLD = 3.0
STABLE_THRESHOLD = 1.0
HIGH_VOLUME_FRACTION = 0.2


class SortMode(Enum):
    """Column the view is sorted by."""

    SYMBOL = "symbol"
    PRICE = "price"
    CHANGE_PERCENT = "change_percent"
    VOLUME = "volume"

    def next(self) -> "SortMode":
        """Cycle Symbol -> Price -> 24h Change -> Volume -> Symbol."""
        modes = list(SortMode)
        return modes[(modes.index(self) + 1) % len(modes)]

    def as_str(self) -> str:
        return _SORT_MODE_LABELS[self]


_SORT_MODE_LABELS = {
    SortMode.SYMBOL: "Symbol",
    SortMode.PRICE: "Price",
    SortMode.CHANGE_PERCENT: "24h Change",
    SortMode.VOLUME: "Volume",
}


class SortDirection(Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"

    def toggle(self) -> "SortDirection":
        if self is SortDirection.ASCENDING:
            return SortDirection.DESCENDING
        return SortDirection.ASCENDING

    @property
    def arrow(self) -> str:
        return "↑" if self is SortDirection.ASCENDING else "↓"


@dataclass
class SortConfig:
    """Active sort mode and direction."""

    mode: SortMode = SortMode.SYMBOL
    direction: SortDirection = SortDirection.ASCENDING

    def display_name(self) -> str:
        return f"{self.mode.as_str()} {self.direction.arrow}"


class FilterPreset(Enum):
    """Canned, mutually exclusive filters."""

    ALL = "all"
    TOP_GAINERS = "top_gainers"
    TOP_LOSERS = "top_losers"
    HIGH_VOLUME = "high_volume"
    VOLATILE = "volatile"
    STABLE = "stable"

    def next(self) -> "FilterPreset":
        presets = list(FilterPreset)
        return presets[(presets.index(self) + 1) % len(presets)]

    def as_str(self) -> str:
        return _PRESET_LABELS[self]


_PRESET_LABELS = {
    FilterPreset.ALL: "All",
    FilterPreset.TOP_GAINERS: "Top Gainers",
    FilterPreset.TOP_LOSERS: "Top Losers",
    FilterPreset.HIGH_VOLUME: "High Volume",
    FilterPreset.VOLATILE: "Volatile",
    FilterPreset.STABLE: "Stable",
}


class FilterKind(Enum):
    PRICE_RANGE = "price_range"
    CHANGE_PERCENT_RANGE = "change_percent_range"
    VOLUME_RANGE = "volume_range"
    SYMBOL_SEARCH = "symbol_search"


def _in_range(value: float, min_value: Optional[float], max_value: Optional[float]) -> bool:
    if min_value is not None and not value >= min_value:
        return False
    if max_value is not None and not value <= max_value:
        return False
    return True


@dataclass(frozen=True)
class PriceRange:
    min: Optional[float] = None
    max: Optional[float] = None

    kind = FilterKind.PRICE_RANGE

    def matches(self, record: PriceRecord) -> bool:
        return _in_range(record.price, self.min, self.max)


@dataclass(frozen=True)
class ChangePercentRange:
    min: Optional[float] = None
    max: Optional[float] = None

    kind = FilterKind.CHANGE_PERCENT_RANGE

    def matches(self, record: PriceRecord) -> bool:
        return _in_range(record.price_change_percent, self.min, self.max)


@dataclass(frozen=True)
class VolumeRange:
    min: Optional[float] = None
    max: Optional[float] = None

    kind = FilterKind.VOLUME_RANGE

    def matches(self, record: PriceRecord) -> bool:
        return _in_range(record.volume, self.min, self.max)


@dataclass(frozen=True)
class SymbolSearch:
    query: str

    kind = FilterKind.SYMBOL_SEARCH

    def matches(self, record: PriceRecord) -> bool:
        return self.query.lower() in record.symbol.lower()


FilterType = Union[PriceRange, ChangePercentRange, VolumeRange, SymbolSearch]


def apply_preset(records: list[PriceRecord], preset: FilterPreset) -> list[PriceRecord]:
    """Keep the records selected by a preset."""
    if preset is FilterPreset.ALL:
        return list(records)

    if preset is FilterPreset.TOP_GAINERS:
        return [r for r in records if r.price_change_percent > TOP_MOVER_THRESHOLD]

    if preset is FilterPreset.TOP_LOSERS:
        return [r for r in records if r.price_change_percent < -TOP_MOVER_THRESHOLD]

    if preset is FilterPreset.HIGH_VOLUME:
        if not records:
            return []
        # Threshold cut: everything tied with the k-th largest volume survives.
        ranked = sorted((r.volume for r in records), key=_numeric_key, reverse=True)
        k = math.ceil(HIGH_VOLUME_FRACTION * len(ranked))
        threshold = ranked[max(k - 1, 0)]
        return [r for r in records if r.volume >= threshold]

    if preset is FilterPreset.VOLATILE:
        return [r for r in records if abs(r.price_change_percent) > VOLATILE_THRESHOLD]

    if preset is FilterPreset.STABLE:
        return [r for r in records if abs(r.price_change_percent) < STABLE_THRESHOLD]

    raise ValueError(f"Unknown filter preset: {preset}")


def _numeric_key(value: float) -> tuple[bool, float]:
    # NaN sorts after every number.
    if math.isnan(value):
        return (True, 0.0)
    return (False, value)


def _sort_key(mode: SortMode):
    if mode is SortMode.SYMBOL:
        return lambda r: r.symbol
    if mode is SortMode.PRICE:
        return lambda r: _numeric_key(r.price)
    if mode is SortMode.CHANGE_PERCENT:
        return lambda r: _numeric_key(r.price_change_percent)
    if mode is SortMode.VOLUME:
        return lambda r: _numeric_key(r.volume)
    raise ValueError(f"Unknown sort mode: {mode}")


def sort_records(records: list[PriceRecord], config: SortConfig) -> list[PriceRecord]:
    """Stable sort; equal keys keep their incoming order in both directions."""
    return sorted(
        records,
        key=_sort_key(config.mode),
        reverse=config.direction is SortDirection.DESCENDING,
    )


def build_view(
    records: list[PriceRecord],
    preset: FilterPreset,
    filters: list[FilterType],
    sort_config: SortConfig,
) -> list[PriceRecord]:
    """
    Derive the visible list from the full snapshot.

    Pure: preset first, then every custom filter (ANDed), then the sort.

    Args:
        records: Full snapshot in fetch order
        preset: Active preset
        filters: Active custom filters
        sort_config: Active sort

    Returns:
        New list of visible records
    """
    view = apply_preset(records, preset)
    for active_filter in filters:
        view = [r for r in view if active_filter.matches(r)]
    return sort_records(view, sort_config)
