"""
Delta-based strike selection over a normalized strike table.

Pure functions with no I/O and no external packages.  Rows are
``strategies.chain.StrikeRecord`` instances (anything exposing ``strike`` and
``delta(option_type)`` works).
"""

import math
from typing import Optional, Sequence


def norm_cdf(x: float) -> float:
    """Standard normal CDF via math.erf."""
    return (1.0 + math.erf(x / math.sqrt(2))) / 2.0


def find_by_delta(rows: Sequence, target_delta: float, option_type: str):
    """Return the row whose signed delta on ``option_type`` is closest to target.

    Args:
        rows: Strike rows in scan order.
        target_delta: Signed target, e.g. -0.16 for a 16-delta put.
        option_type: 'call' or 'put'.

    Returns:
        The best row, or None when no row carries a delta for that side.
        Ties keep the first row found.
    """
    best = None
    best_diff = math.inf
    for row in rows:
        delta = row.delta(option_type)
        if delta is None:
            continue
        diff = abs(delta - target_delta)
        if diff < best_diff:
            best_diff = diff
            best = row
    return best


def next_strike_below(rows: Sequence, ref_strike: float) -> Optional[object]:
    """Row with the highest strike strictly below ``ref_strike``."""
    below = [r for r in rows if r.strike < ref_strike]
    if not below:
        return None
    return max(below, key=lambda r: r.strike)


def next_strike_above(rows: Sequence, ref_strike: float) -> Optional[object]:
    """Row with the lowest strike strictly above ``ref_strike``."""
    above = [r for r in rows if r.strike > ref_strike]
    if not above:
        return None
    return min(above, key=lambda r: r.strike)
