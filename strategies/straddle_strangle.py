"""
Straddles and strangles.

* Short strangle: high-IV premium sale, undefined risk; scanned over deltas.
* Long straddle / long strangle: low-IV volatility purchases at fixed deltas.
"""

import logging
from typing import Optional, Sequence

from shared import constants as C
from shared.strike_selector import find_by_delta
from strategies.base import OptionType, Side, StrategyCard, StrategyName, StrikeRecord
from strategies.scanner import DeltaScanGenerator, FixedStructureGenerator

logger = logging.getLogger(__name__)


class ShortStrangleGenerator(DeltaScanGenerator):
    """Naked OTM put + naked OTM call.  Max loss stays undefined."""

    strategy = StrategyName.SHORT_STRANGLE
    deltas = C.SHORT_STRANGLE_DELTAS
    is_unlimited = True

    def select_strikes(self, strikes: Sequence[StrikeRecord], target: float):
        short_put = find_by_delta(strikes, -target, OptionType.PUT)
        short_call = find_by_delta(strikes, target, OptionType.CALL)
        if short_put is None or short_call is None:
            return None, "short_strike_not_found"
        return [
            (short_put, OptionType.PUT, Side.SELL),
            (short_call, OptionType.CALL, Side.SELL),
        ], ""

    def validate(self, card: StrategyCard) -> Optional[str]:
        if card.net_credit is None or card.net_credit <= 0:
            return "non_positive_credit"
        if card.pop is None:
            return "no_pop"
        return None

    def score(self, card: StrategyCard) -> float:
        return card.pop * card.net_credit * C.CONTRACT_MULTIPLIER


class LongStraddleGenerator(FixedStructureGenerator):
    """Buy the ATM call and the put at the same strike."""

    strategy = StrategyName.LONG_STRADDLE

    def select_strikes(self, strikes: Sequence[StrikeRecord]):
        atm = find_by_delta(strikes, C.ATM_DELTA, OptionType.CALL)
        if atm is None:
            return None, "atm_strike_not_found"
        return [
            (atm, OptionType.CALL, Side.BUY),
            (atm, OptionType.PUT, Side.BUY),
        ], ""


class LongStrangleGenerator(FixedStructureGenerator):
    """Buy an OTM call and an OTM put at distinct strikes."""

    strategy = StrategyName.LONG_STRANGLE

    def select_strikes(self, strikes: Sequence[StrikeRecord]):
        call = find_by_delta(strikes, C.OTM_DELTA, OptionType.CALL)
        put = find_by_delta(strikes, -C.OTM_DELTA, OptionType.PUT)
        if call is None or put is None:
            return None, "strike_not_found"
        if call.strike == put.strike:
            return None, "strikes_coincide"
        return [
            (call, OptionType.CALL, Side.BUY),
            (put, OptionType.PUT, Side.BUY),
        ], ""
