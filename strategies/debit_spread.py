"""
Bull call debit spread: buy the ATM call, sell the OTM call.

Offered as "Bull Call Spread" in normal IV and as "Debit Spread" in low IV;
the structure is identical.
"""

import logging
from typing import Optional, Sequence

from shared import constants as C
from shared.strike_selector import find_by_delta
from strategies.base import EngineSettings, OptionType, Side, StrategyName, StrikeRecord
from strategies.scanner import FixedStructureGenerator

logger = logging.getLogger(__name__)


class BullCallSpreadGenerator(FixedStructureGenerator):

    strategy = StrategyName.BULL_CALL_SPREAD

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        strategy: StrategyName = StrategyName.BULL_CALL_SPREAD,
    ):
        super().__init__(settings)
        if strategy not in (StrategyName.BULL_CALL_SPREAD, StrategyName.DEBIT_SPREAD):
            raise ValueError(f"Bull call structure cannot be labelled {strategy.value}")
        self.strategy = strategy

    def select_strikes(self, strikes: Sequence[StrikeRecord]):
        long_call = find_by_delta(strikes, C.ATM_DELTA, OptionType.CALL)
        short_call = find_by_delta(strikes, C.OTM_DELTA, OptionType.CALL)
        if long_call is None or short_call is None:
            return None, "strike_not_found"
        if long_call.strike == short_call.strike:
            return None, "strikes_coincide"
        return [
            (long_call, OptionType.CALL, Side.BUY),
            (short_call, OptionType.CALL, Side.SELL),
        ], ""
