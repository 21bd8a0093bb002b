"""Forgetting curve for stored memories."""
import math
from datetime import datetime

_MIN_IMPORTANCE = 0.01


def retention_factor(hours_elapsed: float, importance: float, access_count: int) -> float:
    """How much of a memory is retained after ``hours_elapsed``.

    exp(-h / (10 * importance * ln(access_count + 1.5))), clamped to [0, 1].
    Strictly decreasing in elapsed time; higher importance and more accesses
    slow the decay.
    """
    hours = max(0.0, hours_elapsed)
    strength = 10.0 * max(importance, _MIN_IMPORTANCE) * math.log(max(access_count, 1) + 1.5)
    return max(0.0, min(1.0, math.exp(-hours / strength)))


def hours_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 3600.0
