"""
Text sparklines for candle closes.
"""

from coinpeek.data.fetcher import Candle

BARS = "▁▂▃▄▅▆▇█"


def sparkline(values: list[float], width: int = 0) -> str:
    """
    Render values as a row of block characters.

    Args:
        values: Series to draw, oldest first
        width: Keep only the newest ``width`` points when positive

    Returns:
        One character per value; a flat series draws the lowest bar
    """
    if width > 0:
        values = values[-width:]
    if not values:
        return ""

    low, high = min(values), max(values)
    span = high - low
    if span <= 0:
        return BARS[0] * len(values)

    top = len(BARS) - 1
    return "".join(BARS[round((v - low) / span * top)] for v in values)


def candle_sparkline(candles: list[Candle], width: int = 0) -> str:
    return sparkline([c.close for c in candles], width)
