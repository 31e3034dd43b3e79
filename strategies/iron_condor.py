"""
Iron condor: neutral, defined-risk premium selling.

Sells a put and a call at the same |delta| target and buys the adjacent
strike beyond each short as protection.
"""

import logging
from typing import Sequence

from shared import constants as C
from shared.strike_selector import find_by_delta, next_strike_above, next_strike_below
from strategies.base import OptionType, Side, StrategyCard, StrategyName, StrikeRecord
from strategies.scanner import DeltaScanGenerator, risk_reward_score

logger = logging.getLogger(__name__)


class IronCondorGenerator(DeltaScanGenerator):
    """Short put spread + short call spread on one expiration."""

    strategy = StrategyName.IRON_CONDOR
    deltas = C.IRON_CONDOR_DELTAS

    def select_strikes(self, strikes: Sequence[StrikeRecord], target: float):
        short_put = find_by_delta(strikes, -target, OptionType.PUT)
        short_call = find_by_delta(strikes, target, OptionType.CALL)
        if short_put is None or short_call is None:
            return None, "short_strike_not_found"

        long_put = next_strike_below(strikes, short_put.strike)
        long_call = next_strike_above(strikes, short_call.strike)
        if long_put is None or long_call is None:
            return None, "no_adjacent_strike"

        return [
            (short_put, OptionType.PUT, Side.SELL),
            (long_put, OptionType.PUT, Side.BUY),
            (short_call, OptionType.CALL, Side.SELL),
            (long_call, OptionType.CALL, Side.BUY),
        ], ""

    def score(self, card: StrategyCard) -> float:
        return risk_reward_score(card)
