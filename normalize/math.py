import math
from typing import Sequence


def mean(samples: Sequence[float]) -> float:
    if not samples:
        return 0.0
    return sum(samples) / len(samples)


def percentile(samples: Sequence[float], percent: float) -> float:
    """Percentile with linear interpolation between order statistics.

    rank = percent/100 * (n-1); empty input yields 0.
    """
    if not (0 <= percent <= 100):
        raise ValueError("percent must be between 0 and 100")
    if not samples:
        return 0.0
    s = sorted(samples)
    n = len(s)
    rank = (percent / 100.0) * (n - 1)
    lower = math.floor(rank)
    upper = math.ceil(rank)
    if lower == upper:
        return float(s[lower])
    weight = rank - lower
    return float(s[lower] * (1 - weight) + s[upper] * weight)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))
