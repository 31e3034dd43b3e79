"""
Probability-of-profit and expected-value model.

Two PoP estimates are kept side by side:

* delta PoP: always available, conservative; used by the PoP floor gate.
* volatility-adjusted PoP: premium-selling families only; models the
  terminal price as normal with sigma = price × HV × sqrt(dte / 365) and
  measures the mass between the breakevens.  Used for EV.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

from shared import constants as C
from shared.strike_selector import norm_cdf
from strategies.base import EngineSettings, GenerateParams, Leg, OptionType, StrategyCard

logger = logging.getLogger(__name__)


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def raw_credit_pop(legs: Sequence[Leg]) -> float:
    """1 − Σ|short deltas| before clamping (may be negative for deep ITM shorts)."""
    return 1.0 - sum(abs(leg.delta) for leg in legs if leg.is_short)


def delta_pop(legs: Sequence[Leg], is_credit: bool) -> Optional[float]:
    """Delta-implied probability of profit.

    Credit: 1 − Σ|short put deltas| − Σ|short call deltas|, clamped to [0, 1].
    Debit: |delta| of the first long leg; None if there is no long leg.
    """
    if is_credit:
        return _clamp01(raw_credit_pop(legs))
    longs = [leg for leg in legs if not leg.is_short]
    if not longs:
        return None
    return _clamp01(abs(longs[0].delta))


def one_sigma_move(price: float, vol: float, dte: int) -> float:
    """Expected 1-sigma dollar move of the underlying over ``dte`` days."""
    return price * vol * math.sqrt(max(dte, 0) / C.DAYS_PER_YEAR)


def cap_realized_vol(iv: Optional[float], hv: float, cap: float) -> float:
    """Limit IV/HV to ``cap`` so a tiny HV cannot inflate PoP pathologically."""
    if iv is not None and iv > 0 and hv > 0 and iv / hv > cap:
        return iv / cap
    return hv


@dataclass(frozen=True)
class VolatilityContext:
    """Volatility inputs resolved once per generation run."""
    iv: Optional[float]
    hv: Optional[float]
    model_vol: float              # capped HV, falling back to IV, then default
    pop_vol: Optional[float]      # capped HV; None when HV was not supplied
    unlimited_loss_proxy: float   # stand-in max loss for naked structures
    edge_ratio: float             # max(0, IV − HV) / IV

    @classmethod
    def from_params(cls, params: GenerateParams, settings: EngineSettings) -> "VolatilityContext":
        iv = params.iv30 if params.iv30 is not None else settings.default_iv
        hv = params.hv30 if params.hv30 is not None else iv
        model_vol = cap_realized_vol(iv, hv, settings.iv_hv_cap)
        pop_vol = model_vol if params.hv30 is not None else None

        proxy = (
            one_sigma_move(params.current_price, model_vol, params.dte)
            * settings.unlimited_loss_sigmas
            * C.CONTRACT_MULTIPLIER
        )

        edge = 0.0
        if params.iv30 is not None and params.iv30 > 0:
            edge = max(0.0, params.iv30 - hv) / params.iv30

        return cls(
            iv=params.iv30,
            hv=params.hv30,
            model_vol=model_vol,
            pop_vol=pop_vol,
            unlimited_loss_proxy=proxy,
            edge_ratio=edge,
        )


def hv_adjusted_pop(
    card: StrategyCard,
    price: float,
    hv: Optional[float],
    dte: int,
) -> float:
    """Volatility-adjusted PoP; falls back to the delta PoP unchanged.

    Fallback applies to non-credit families, missing or non-positive HV, a
    zero sigma, or a card without short legs.
    """
    fallback = card.pop if card.pop is not None else 0.0
    if not card.name.is_credit_family:
        return fallback
    if hv is None or hv <= 0:
        return fallback

    sigma = one_sigma_move(price, hv, dte)
    if sigma <= 0:
        return fallback

    short_puts = card.short_legs(OptionType.PUT)
    short_calls = card.short_legs(OptionType.CALL)
    credit = card.net_credit or 0.0

    if short_puts and short_calls:
        lower = min(l.strike for l in short_puts) - credit
        upper = max(l.strike for l in short_calls) + credit
        z_down = (price - lower) / sigma
        z_up = (upper - price) / sigma
        return _clamp01(norm_cdf(z_down) + norm_cdf(z_up) - 1)
    if short_puts:
        lower = min(l.strike for l in short_puts) - credit
        return _clamp01(norm_cdf((price - lower) / sigma))
    if short_calls:
        upper = max(l.strike for l in short_calls) + credit
        return _clamp01(norm_cdf((upper - price) / sigma))
    return fallback


def enrich_expected_value(
    card: StrategyCard,
    price: float,
    dte: int,
    vol: VolatilityContext,
) -> None:
    """Populate ``hv_pop``, ``ev`` and ``ev_per_risk`` on ``card`` in place.

    EV = PoP × max profit − (1 − PoP) × effective max loss, with the
    volatility-adjusted PoP for credit families and delta PoP otherwise.
    Cards without a delta PoP, a positive max profit, or a positive effective
    max loss keep EV at 0.
    """
    if card.pop is None:
        return

    is_credit_family = card.name.is_credit_family
    pop_used = hv_adjusted_pop(card, price, vol.pop_vol, dte) if is_credit_family else card.pop
    card.hv_pop = round(pop_used, 3) if is_credit_family else None

    max_profit = card.max_profit or 0.0
    effective_loss = card.effective_max_loss(vol.unlimited_loss_proxy)
    if max_profit > 0 and effective_loss > 0:
        card.ev = round(pop_used * max_profit - (1 - pop_used) * effective_loss, 2)
        card.ev_per_risk = round(card.ev / effective_loss, 4)
