"""
User-assembled strategies.

``build_custom_card`` prices arbitrary legs chosen by the user and
``detect_strategy_name`` maps their shape onto a known family.
"""

import logging
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence

from strategies.base import Leg, OptionType, Side, StrategyCard, StrategyName
from strategies.chain import _num, is_wide_spread
from strategies.payoff import build_card

logger = logging.getLogger(__name__)

CUSTOM_LABEL = "Custom"


@dataclass(frozen=True)
class CustomLeg:
    option_type: OptionType
    side: Side
    strike: float
    streamer_symbol: str

    @classmethod
    def from_dict(cls, data: Mapping) -> "CustomLeg":
        """Accept ``type``/``option_type`` and ``streamerSymbol``/``streamer_symbol``."""
        return cls(
            option_type=OptionType(data.get('option_type') or data.get('type')),
            side=Side(data['side']),
            strike=float(data['strike']),
            streamer_symbol=data.get('streamer_symbol') or data.get('streamerSymbol') or '',
        )


def detect_strategy_name(legs: Sequence[CustomLeg]) -> StrategyName:
    """Recognize common structures from leg shape alone."""
    ordered = sorted(legs, key=lambda l: l.strike)
    n = len(ordered)

    if n == 2:
        lo, hi = ordered
        if lo.option_type == OptionType.CALL and hi.option_type == OptionType.CALL:
            if lo.side == Side.BUY and hi.side == Side.SELL:
                return StrategyName.BULL_CALL_SPREAD
            if lo.side == Side.SELL and hi.side == Side.BUY:
                return StrategyName.CALL_CREDIT_SPREAD
        if lo.option_type == OptionType.PUT and hi.option_type == OptionType.PUT:
            if lo.side == Side.BUY and hi.side == Side.SELL:
                return StrategyName.PUT_CREDIT_SPREAD
            if lo.side == Side.SELL and hi.side == Side.BUY:
                return StrategyName.BEAR_PUT_SPREAD
        both_long = lo.side == Side.BUY and hi.side == Side.BUY
        if lo.strike == hi.strike and lo.option_type != hi.option_type:
            return StrategyName.LONG_STRADDLE if both_long else StrategyName.SHORT_STRADDLE
        if lo.option_type == OptionType.PUT and hi.option_type == OptionType.CALL:
            return StrategyName.LONG_STRANGLE if both_long else StrategyName.SHORT_STRANGLE

    if n == 4:
        puts = [l for l in ordered if l.option_type == OptionType.PUT]
        calls = [l for l in ordered if l.option_type == OptionType.CALL]
        if len(puts) == 2 and len(calls) == 2:
            sides_ok = all(
                {l.side for l in group} == {Side.BUY, Side.SELL}
                for group in (puts, calls)
            )
            if sides_ok:
                return StrategyName.IRON_CONDOR

    if n == 3:
        short_puts = [l for l in ordered if l.option_type == OptionType.PUT and l.side == Side.SELL]
        short_calls = [l for l in ordered if l.option_type == OptionType.CALL and l.side == Side.SELL]
        long_calls = [l for l in ordered if l.option_type == OptionType.CALL and l.side == Side.BUY]
        if len(short_puts) == 1 and len(short_calls) == 1 and len(long_calls) == 1:
            return StrategyName.JADE_LIZARD

    return StrategyName.CUSTOM


def has_naked_short(legs: Sequence[Leg]) -> bool:
    """True when some short leg has no long leg of the same option type."""
    long_types = {l.option_type for l in legs if not l.is_short}
    return any(l.is_short and l.option_type not in long_types for l in legs)


def _price_custom_leg(leg: CustomLeg, quote: Mapping) -> Optional[Leg]:
    bid = _num(quote.get('bid'))
    ask = _num(quote.get('ask'))
    price = bid if leg.side == Side.SELL else ask
    if price is None or price <= 0:
        return None

    sign = -1.0 if leg.side == Side.SELL else 1.0
    greeks = {
        name: sign * (_num(quote.get(name)) or 0.0)
        for name in ('delta', 'gamma', 'theta', 'vega')
    }
    return Leg(
        option_type=leg.option_type,
        side=leg.side,
        strike=leg.strike,
        price=price,
        wide_spread=is_wide_spread(bid, ask),
        **greeks,
    )


def build_custom_card(
    custom_legs: Sequence[CustomLeg],
    quotes: Mapping[str, Mapping],
    expiration: str,
    dte: int,
    current_price: float,
) -> Optional[StrategyCard]:
    """Price user-chosen legs into a card labelled "Custom".

    Legs without a usable price are skipped.  Returns None when none of
    them can be priced.
    """
    legs: List[Leg] = []
    for custom in custom_legs:
        leg = _price_custom_leg(custom, quotes.get(custom.streamer_symbol) or {})
        if leg is None:
            logger.info(
                f"Skipping unpriced {custom.side.value} {custom.option_type.value} "
                f"{custom.strike} ({custom.streamer_symbol})"
            )
            continue
        legs.append(leg)

    if not legs:
        return None

    name = detect_strategy_name(custom_legs)
    return build_card(
        name, CUSTOM_LABEL, legs, expiration, dte, current_price,
        is_unlimited=has_naked_short(legs),
    )
