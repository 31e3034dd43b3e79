"""
Options strategy candidates: data model, pricing, generators and ranking.

Each candidate generator implements BaseGenerator with:
- generate(params, emit) -> Optional[StrategyCard]

``generate_strategies`` runs the IV-tier dispatch, EV enrichment, gates and
ranking for one expiration.
"""

from strategies.base import (
    BaseGenerator, EngineSettings, GenerateParams, Leg, OptionType,
    PayoffPoint, Side, StrategyCard, StrategyName, StrikeRecord,
)
from strategies.chain import make_leg, normalize_chain, usable_strikes
from strategies.credit_spread import CallCreditSpreadGenerator, PutCreditSpreadGenerator
from strategies.custom import CustomLeg, build_custom_card, detect_strategy_name
from strategies.debit_spread import BullCallSpreadGenerator
from strategies.iron_condor import IronCondorGenerator
from strategies.payoff import build_card
from strategies.pipeline import generate_strategies, strategy_labels
from strategies.straddle_strangle import (
    LongStraddleGenerator, LongStrangleGenerator, ShortStrangleGenerator,
)

__all__ = [
    "BaseGenerator", "EngineSettings", "GenerateParams", "Leg", "OptionType",
    "PayoffPoint", "Side", "StrategyCard", "StrategyName", "StrikeRecord",
    "make_leg", "normalize_chain", "usable_strikes", "build_card",
    "IronCondorGenerator",
    "PutCreditSpreadGenerator",
    "CallCreditSpreadGenerator",
    "ShortStrangleGenerator",
    "BullCallSpreadGenerator",
    "LongStraddleGenerator",
    "LongStrangleGenerator",
    "CustomLeg", "build_custom_card", "detect_strategy_name",
    "generate_strategies", "strategy_labels",
]
