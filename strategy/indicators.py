"""Small numeric helpers for trend scoring."""
from typing import Optional


def ema(values: list[float], period: int) -> Optional[float]:
    """Exponential moving average seeded with the SMA of the first ``period`` values.

    Returns None when there are fewer than ``period`` values.
    """
    if period <= 0 or len(values) < period:
        return None
    multiplier = 2 / (period + 1)
    current = sum(values[:period]) / period
    for value in values[period:]:
        current = (value - current) * multiplier + current
    return current


def percent_change(current: float, reference: float) -> float:
    """(current - reference) / reference, as a fraction."""
    if reference == 0:
        return 0.0
    return (current - reference) / reference


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))
