"""
Vertical credit spreads: directional premium selling with defined risk.

Put credit spread (bullish): sell the target-delta put, buy the next strike
below.  Call credit spread (bearish): sell the target-delta call, buy the
next strike above.
"""

import logging
from typing import Sequence

from shared import constants as C
from shared.strike_selector import find_by_delta, next_strike_above, next_strike_below
from strategies.base import OptionType, Side, StrategyCard, StrategyName, StrikeRecord
from strategies.scanner import DeltaScanGenerator, risk_reward_score

logger = logging.getLogger(__name__)


class CreditSpreadGenerator(DeltaScanGenerator):
    """Short vertical on one side of the chain."""

    deltas = C.CREDIT_SPREAD_DELTAS
    option_type: OptionType = OptionType.PUT

    def select_strikes(self, strikes: Sequence[StrikeRecord], target: float):
        if self.option_type == OptionType.PUT:
            short = find_by_delta(strikes, -target, OptionType.PUT)
            if short is None:
                return None, "short_strike_not_found"
            protective = next_strike_below(strikes, short.strike)
        else:
            short = find_by_delta(strikes, target, OptionType.CALL)
            if short is None:
                return None, "short_strike_not_found"
            protective = next_strike_above(strikes, short.strike)

        if protective is None:
            return None, "no_adjacent_strike"
        return [
            (short, self.option_type, Side.SELL),
            (protective, self.option_type, Side.BUY),
        ], ""

    def score(self, card: StrategyCard) -> float:
        return risk_reward_score(card)


class PutCreditSpreadGenerator(CreditSpreadGenerator):
    strategy = StrategyName.PUT_CREDIT_SPREAD
    option_type = OptionType.PUT


class CallCreditSpreadGenerator(CreditSpreadGenerator):
    strategy = StrategyName.CALL_CREDIT_SPREAD
    option_type = OptionType.CALL
