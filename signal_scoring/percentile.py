"""
Signal Scoring - Percentile Engine.

Empirical percentile ranking of a value within a history.
No distribution fitting; the rank is the share of baseline
values strictly below the value.
"""

from typing import Iterable


DEFAULT_PERCENTILE = 50.0


def percentile_rank(value: float, values: Iterable[float]) -> float:
    """
    Rank a value within a set of historical values.

    Args:
        value: Value to rank
        values: Baseline values, in any order

    Returns:
        Percentage (0-100) of values strictly below `value`;
        50.0 when the baseline is empty
    """
    ordered = sorted(float(v) for v in values)
    if not ordered:
        return DEFAULT_PERCENTILE

    below = 0
    for v in ordered:
        if v >= value:
            break
        below += 1

    return below / len(ordered) * 100.0


def has_sufficient_history(count: int, minimum: int) -> bool:
    """Whether a baseline is large enough for percentile mode."""
    return count >= minimum


def ordinal(percentile: float) -> str:
    """Format a percentile as '85th', '21st', ..."""
    n = int(round(percentile))
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"
