"""
Summary statistics helpers.

Small pure functions shared by all analyzers. Every function accepts an
empty input and returns 0 (or an empty container) rather than raising.
"""

import statistics
from collections import Counter
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar


T = TypeVar('T')


def mean(values: Sequence[float], digits: int = 2) -> float:
    """Arithmetic mean rounded to `digits`, 0 for no values."""
    if not values:
        return 0
    return round(statistics.mean(values), digits)


def median(values: Sequence[float], digits: int = 2) -> float:
    """Median rounded to `digits`, 0 for no values."""
    if not values:
        return 0
    return round(statistics.median(values), digits)


def percentage(part: float, total: float, digits: int = 1) -> float:
    """Share of `part` in `total` as a percentage, 0 when total is 0."""
    if not total:
        return 0
    return round(part / total * 100, digits)


def distribution(values: Iterable[int]) -> Dict[int, int]:
    """
    Histogram of integer values.

    Example:
        distribution([0, 1, 2]) == {0: 1, 1: 1, 2: 1}
    """
    counts = Counter(values)
    return {value: counts[value] for value in sorted(counts)}


def top_n(items: Iterable[T], key: Callable[[T], Any], n: Optional[int]) -> List[T]:
    """
    Rank items by a metric in descending order and keep the first n.

    The sort is stable, so ties keep their input order. A falsy n keeps
    every item.
    """
    ranked = sorted(items, key=key, reverse=True)
    return ranked[:n] if n else ranked


def highlight_threshold(values: Sequence[int], top_fraction: float = 0.2, fallback: int = 2) -> int:
    """
    Value at the top `top_fraction` boundary of a descending sort.

    Used to highlight the PRs with the most changes requested; falls back
    to `fallback` when that boundary value is 0 or there is no data.
    """
    ranked = sorted(values, reverse=True)
    index = int(len(ranked) * top_fraction)
    if index < len(ranked) and ranked[index]:
        return ranked[index]
    return fallback


def days_between(start, end) -> Optional[float]:
    """
    Fractional calendar days from start to end, 2 decimals.

    Returns None when either endpoint is missing; a negative span (clock
    skew between GitHub services) is clamped to 0.
    """
    if start is None or end is None:
        return None
    days = (end - start).total_seconds() / 86400
    return round(max(days, 0.0), 2)
