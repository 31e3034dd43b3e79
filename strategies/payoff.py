"""
Payoff engine: expiration P&L, max gain/loss, breakevens and net Greeks.

The payoff of any set of vanilla legs is piecewise-linear in the underlying
price with kinks only at the strikes, so the worst case is always found at
one of {0, each strike, a far-upside point}.  Max loss is evaluated there
analytically; the sampled curve is used for display, max profit and
breakevens.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from shared import constants as C
from strategies.base import Leg, PayoffPoint, StrategyCard, StrategyName
from strategies.probability import delta_pop

logger = logging.getLogger(__name__)


def payoff_at(legs: Sequence[Leg], underlying: float) -> float:
    """Total expiration P&L in dollars per 1-lot at ``underlying``."""
    return sum(leg.pnl_at_expiry(underlying) for leg in legs)


def payoff_domain(legs: Sequence[Leg], current_price: float) -> tuple:
    """Price range wide enough to show both tails of the payoff.

    Spans below the lowest and above the highest strike by the strike spread,
    never less than 10% of spot, and never narrower than ±15% of spot.
    """
    strikes = [leg.strike for leg in legs]
    min_strike, max_strike = min(strikes), max(strikes)
    margin = max(max_strike - min_strike, current_price * C.PAYOFF_MIN_MARGIN_PCT)
    lo = max(0.0, min(current_price * C.PAYOFF_LOWER_BOUND_PCT, min_strike - margin))
    hi = max(current_price * C.PAYOFF_UPPER_BOUND_PCT, max_strike + margin)
    return lo, hi


def sample_payoff(
    legs: Sequence[Leg],
    current_price: float,
    points: int = C.PAYOFF_SAMPLE_POINTS,
) -> List[PayoffPoint]:
    """Sampled P&L curve, rounded to cents."""
    lo, hi = payoff_domain(legs, current_price)
    return [
        PayoffPoint(round(float(p), 2), round(payoff_at(legs, float(p)), 2))
        for p in np.linspace(lo, hi, points)
    ]


def critical_prices(legs: Sequence[Leg]) -> List[float]:
    strikes = [leg.strike for leg in legs]
    return [0.0, *strikes, max(strikes) * 2]


def analytic_max_loss(legs: Sequence[Leg]) -> float:
    """Worst expiration loss (as a positive number) over the critical prices."""
    worst = min([0.0] + [payoff_at(legs, p) for p in critical_prices(legs)])
    return round(abs(worst), 2)


def find_breakevens(points: Sequence[PayoffPoint]) -> List[float]:
    """Linearly interpolated sign changes between consecutive samples.

    Zero-valued samples carry the sign of the last non-zero one, so a curve
    that touches zero and turns back has no breakeven there.
    """
    breakevens: List[float] = []
    last_sign = 0
    for prev, curr in zip(points, points[1:]):
        if prev.pnl != 0:
            last_sign = 1 if prev.pnl > 0 else -1
        if curr.pnl == 0 or last_sign == 0 or (curr.pnl > 0) == (last_sign > 0):
            continue
        ratio = abs(prev.pnl) / (abs(prev.pnl) + abs(curr.pnl))
        breakevens.append(round(prev.price + ratio * (curr.price - prev.price), 2))
    return breakevens


def build_card(
    name: StrategyName,
    label: str,
    legs: Sequence[Leg],
    expiration: str,
    dte: int,
    current_price: float,
    is_unlimited: bool,
) -> StrategyCard:
    """Price a set of legs into a ``StrategyCard``.

    Args:
        name: Strategy family.
        label: Display label; reassigned by ranking.
        legs: At least one leg.
        expiration: Expiration date string (passed through).
        dte: Days to expiration.
        current_price: Underlying price.
        is_unlimited: True when risk is structurally unbounded; max loss is
            then left undefined.
    """
    if not legs:
        raise ValueError("A strategy needs at least one leg")
    legs = tuple(legs)

    cash_flow = sum(leg.cash_flow for leg in legs)
    net_credit: Optional[float] = None
    net_debit: Optional[float] = None
    if cash_flow >= 0:
        net_credit = round(cash_flow, 2)
    else:
        net_debit = round(abs(cash_flow), 2)

    pnl_points = sample_payoff(legs, current_price)
    max_profit = round(max(p.pnl for p in pnl_points), 2)
    max_loss = None if is_unlimited else analytic_max_loss(legs)

    pop = delta_pop(legs, is_credit=cash_flow >= 0)
    risk_reward = round(max_profit / max_loss, 2) if max_loss else None

    net_delta = sum(leg.delta for leg in legs)
    net_gamma = sum(leg.gamma for leg in legs)
    net_theta = sum(leg.theta for leg in legs)
    net_vega = sum(leg.vega for leg in legs)

    return StrategyCard(
        name=name,
        label=label,
        legs=legs,
        expiration=expiration,
        dte=dte,
        net_credit=net_credit,
        net_debit=net_debit,
        max_profit=max_profit if max_profit > 0 else None,
        max_loss=max_loss,
        breakevens=find_breakevens(pnl_points),
        pop=round(pop, 2) if pop is not None else None,
        risk_reward=risk_reward,
        net_delta=round(net_delta, 3),
        net_gamma=round(net_gamma, 4),
        net_theta=round(net_theta, 3),
        net_vega=round(net_vega, 3),
        theta_per_day=round(net_theta * C.CONTRACT_MULTIPLIER, 2),
        is_unlimited=is_unlimited,
        pnl_points=pnl_points,
        has_wide_spread=any(leg.wide_spread for leg in legs),
    )
