"""
Small numeric helpers shared by the readiness scorers.
"""

import math


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp value into [lower, upper]."""
    return max(lower, min(upper, value))


def round_half_away(value: float) -> int:
    """
    Round to the nearest integer, halves away from zero.

    Python's round() uses banker's rounding (round(82.5) == 82); scores
    use the conventional rule so 82.5 becomes 83.
    """
    if value >= 0:
        return int(math.floor(value + 0.5))
    return -int(math.floor(-value + 0.5))


def clamp_score(value: float, lower: int = 0, upper: int = 100) -> int:
    """Round a raw score and clamp it into its documented integer range."""
    return int(clamp(round_half_away(value), lower, upper))
