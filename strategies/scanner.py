"""
Delta-bucket scan shared by the premium-selling generators.

For each target delta in ascending order a subclass picks strikes, the legs
are priced, the card is built and validated, and the best-scoring survivor
is kept.  Every target produces exactly one event: ``construction_failed``
with a reason, or ``candidate`` with its score.
"""

import logging
import math
from abc import abstractmethod
from typing import List, Optional, Sequence, Tuple

from shared.events import Emitter, Stage, Verdict
from strategies.base import (
    BaseGenerator, GenerateParams, OptionType, Side, StrategyCard, StrikeRecord,
)
from strategies.chain import make_leg
from strategies.payoff import build_card

logger = logging.getLogger(__name__)

LegSpec = Tuple[StrikeRecord, OptionType, Side]


class DeltaScanGenerator(BaseGenerator):
    """Scan ``deltas`` and keep the best-scoring card."""

    deltas: Tuple[float, ...] = ()
    is_unlimited: bool = False

    @abstractmethod
    def select_strikes(
        self, strikes: Sequence[StrikeRecord], target: float,
    ) -> Tuple[Optional[List[LegSpec]], str]:
        """Return (leg specs, "") or (None, reason)."""
        ...

    @abstractmethod
    def score(self, card: StrategyCard) -> float:
        ...

    def validate(self, card: StrategyCard) -> Optional[str]:
        """Return a rejection reason, or None when the card is viable."""
        if card.net_credit is None or card.net_credit <= 0:
            return "non_positive_credit"
        if card.pop is None or card.max_loss is None or card.max_loss <= 0:
            return "undefined_risk"
        if (card.max_profit or 0) <= 0:
            return "no_profit"
        return None

    def generate(
        self, params: GenerateParams, emit: Emitter,
    ) -> Optional[StrategyCard]:
        best: Optional[StrategyCard] = None
        best_score = -math.inf
        best_delta = None

        for target in self.deltas:
            specs, reason = self.select_strikes(params.strikes, target)
            if specs is None:
                emit(Stage.SCAN, Verdict.CONSTRUCTION_FAILED, self.name,
                     delta=target, reason=reason)
                continue

            legs = [make_leg(record, option_type, side) for record, option_type, side in specs]
            priced = [leg for leg in legs if leg is not None]
            if len(priced) != len(specs):
                emit(Stage.SCAN, Verdict.CONSTRUCTION_FAILED, self.name,
                     delta=target, reason="leg_unpriced",
                     legs_built=len(priced), legs_needed=len(specs))
                continue

            card = build_card(
                self.strategy, "", priced, params.expiration, params.dte,
                params.current_price, self.is_unlimited,
            )
            reason = self.validate(card)
            if reason:
                emit(Stage.SCAN, Verdict.CONSTRUCTION_FAILED, self.name,
                     delta=target, reason=reason, net_credit=card.net_credit,
                     pop=card.pop, max_loss=card.max_loss)
                continue

            score = self.score(card)
            emit(Stage.SCAN, Verdict.CANDIDATE, self.name,
                 delta=target, score=round(score, 3),
                 strikes=[leg.strike for leg in card.legs],
                 pop=card.pop, net_credit=card.net_credit, max_loss=card.max_loss)
            if score > best_score:
                best_score = score
                best = card
                best_delta = target

        if best is None:
            emit(Stage.SCAN, Verdict.CONSTRUCTION_FAILED, self.name,
                 reason="no_viable_candidate")
        else:
            emit(Stage.SCAN, Verdict.SELECTED, self.name,
                 delta=best_delta, score=round(best_score, 3))
        return best


def risk_reward_score(card: StrategyCard) -> float:
    """PoP × (max profit / max loss) for defined-risk credit structures."""
    return card.pop * (card.max_profit / card.max_loss)


class FixedStructureGenerator(BaseGenerator):
    """One structure at fixed deltas; no scan, no score."""

    is_unlimited: bool = False

    @abstractmethod
    def select_strikes(
        self, strikes: Sequence[StrikeRecord],
    ) -> Tuple[Optional[List[LegSpec]], str]:
        """Return (leg specs, "") or (None, reason)."""
        ...

    def generate(
        self, params: GenerateParams, emit: Emitter,
    ) -> Optional[StrategyCard]:
        specs, reason = self.select_strikes(params.strikes)
        if specs is None:
            emit(Stage.SCAN, Verdict.CONSTRUCTION_FAILED, self.name, reason=reason)
            return None

        legs = [make_leg(record, option_type, side) for record, option_type, side in specs]
        priced = [leg for leg in legs if leg is not None]
        if len(priced) != len(specs):
            emit(Stage.SCAN, Verdict.CONSTRUCTION_FAILED, self.name,
                 reason="leg_unpriced", legs_built=len(priced), legs_needed=len(specs))
            return None

        card = build_card(
            self.strategy, "", priced, params.expiration, params.dte,
            params.current_price, self.is_unlimited,
        )
        emit(Stage.SCAN, Verdict.SELECTED, self.name,
             strikes=[leg.strike for leg in card.legs],
             net_debit=card.net_debit, pop=card.pop)
        return card
