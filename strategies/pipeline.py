"""
Candidate generation, EV enrichment, gating and ranking for one expiration.

    generate_strategies(params) -> ranked List[StrategyCard]

The IV-rank tier decides which three families are generated.  Each surviving
card must then clear, in order:

    Gate A  EV > 0 (volatility-adjusted PoP for premium-selling families)
    Gate B  delta PoP >= per-family floor
    Gate C  net credit, when defined, >= min_credit

Survivors are sorted by composite score (stable) and relabelled A, B, C...
An empty list is a valid outcome.
"""

import logging
from typing import Callable, List, NamedTuple, Optional, Sequence, Tuple

from shared import constants as C
from shared.events import Emitter, EventSink, Stage, Verdict
from strategies.base import (
    BaseGenerator, EngineSettings, GenerateParams, StrategyCard, StrategyName,
)
from strategies.chain import usable_strikes
from strategies.credit_spread import PutCreditSpreadGenerator
from strategies.debit_spread import BullCallSpreadGenerator
from strategies.iron_condor import IronCondorGenerator
from strategies.probability import VolatilityContext, enrich_expected_value, raw_credit_pop
from strategies.straddle_strangle import (
    LongStraddleGenerator, LongStrangleGenerator, ShortStrangleGenerator,
)

logger = logging.getLogger(__name__)

GateResult = Tuple[bool, str]


# ---------------------------------------------------------------------------
# IV tiers
# ---------------------------------------------------------------------------

class StrategyLabel(NamedTuple):
    name: str
    kind: str       # credit | debit | neutral


def strategy_labels(iv_rank: float) -> List[StrategyLabel]:
    """Quick three-item suggestion list shown before a chain is loaded."""
    pct = iv_rank * 100
    if pct > 70:
        return [
            StrategyLabel(StrategyName.IRON_CONDOR.value, "credit"),
            StrategyLabel(StrategyName.PUT_CREDIT_SPREAD.value, "credit"),
            StrategyLabel(StrategyName.SHORT_STRANGLE.value, "credit"),
        ]
    if pct > 50:
        return [
            StrategyLabel(StrategyName.IRON_CONDOR.value, "credit"),
            StrategyLabel(StrategyName.PUT_CREDIT_SPREAD.value, "credit"),
            StrategyLabel(StrategyName.CALL_CREDIT_SPREAD.value, "credit"),
        ]
    if pct > 30:
        return [
            StrategyLabel(StrategyName.BULL_CALL_SPREAD.value, "debit"),
            StrategyLabel(StrategyName.IRON_CONDOR.value, "neutral"),
            StrategyLabel(StrategyName.JADE_LIZARD.value, "credit"),
        ]
    if pct > 20:
        return [
            StrategyLabel(StrategyName.BULL_CALL_SPREAD.value, "debit"),
            StrategyLabel("Calendar Spread", "neutral"),
            StrategyLabel("Diagonal Spread", "neutral"),
        ]
    return [
        StrategyLabel(StrategyName.LONG_STRADDLE.value, "debit"),
        StrategyLabel(StrategyName.LONG_STRANGLE.value, "debit"),
        StrategyLabel(StrategyName.DEBIT_SPREAD.value, "debit"),
    ]


def iv_tier(iv_rank_pct: float) -> str:
    if iv_rank_pct > C.HIGH_IV_RANK_PCT:
        return "high"
    if iv_rank_pct >= C.LOW_IV_RANK_PCT:
        return "normal"
    return "low"


def generators_for(iv_rank_pct: float, settings: EngineSettings) -> List[BaseGenerator]:
    """The three generators for an IV-rank percentile, in generation order."""
    tier = iv_tier(iv_rank_pct)
    if tier == "high":
        return [
            IronCondorGenerator(settings),
            PutCreditSpreadGenerator(settings),
            ShortStrangleGenerator(settings),
        ]
    if tier == "normal":
        return [
            BullCallSpreadGenerator(settings, StrategyName.BULL_CALL_SPREAD),
            IronCondorGenerator(settings),
            PutCreditSpreadGenerator(settings),
        ]
    return [
        LongStraddleGenerator(settings),
        LongStrangleGenerator(settings),
        BullCallSpreadGenerator(settings, StrategyName.DEBIT_SPREAD),
    ]


# ---------------------------------------------------------------------------
# Gates
# ---------------------------------------------------------------------------

def gate_ev(card: StrategyCard) -> GateResult:
    if card.ev <= 0:
        return False, f"EV ${card.ev:.2f} is not positive"
    return True, ""


def gate_pop_floor(card: StrategyCard) -> GateResult:
    floor = card.name.pop_floor
    if card.pop is None or card.pop < floor:
        shown = "n/a" if card.pop is None else f"{card.pop:.0%}"
        return False, f"PoP {shown} below {floor:.0%} floor"
    return True, ""


def gate_min_credit(card: StrategyCard, min_credit: float = C.MIN_NET_CREDIT) -> GateResult:
    if card.net_credit is not None and card.net_credit < min_credit:
        return False, f"credit ${card.net_credit:.2f} below ${min_credit:.2f}"
    return True, ""


def apply_gates(
    cards: Sequence[StrategyCard],
    settings: EngineSettings,
    emit: Emitter,
) -> List[StrategyCard]:
    gates: List[Tuple[Stage, Callable[[StrategyCard], GateResult]]] = [
        (Stage.GATE_EV, gate_ev),
        (Stage.GATE_POP, gate_pop_floor),
        (Stage.GATE_CREDIT, lambda c: gate_min_credit(c, settings.min_credit)),
    ]
    survivors = []
    for card in cards:
        for stage, gate in gates:
            passed, reason = gate(card)
            if not passed:
                emit(stage, Verdict.REJECTED, card.name.value, reason=reason,
                     ev=card.ev, pop=card.pop, hv_pop=card.hv_pop,
                     net_credit=card.net_credit)
                break
        else:
            emit(Stage.GATE_CREDIT, Verdict.PASSED, card.name.value, ev=card.ev, pop=card.pop)
            survivors.append(card)
    return survivors


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

def composite_score(
    card: StrategyCard,
    vol: VolatilityContext,
    settings: Optional[EngineSettings] = None,
) -> float:
    """EV efficiency + theta efficiency + IV-over-HV edge."""
    settings = settings or EngineSettings()
    effective_loss = card.effective_max_loss(vol.unlimited_loss_proxy)
    theta_efficiency = (
        abs(card.theta_per_day) / effective_loss * 100 if effective_loss > 0 else 0.0
    )
    return (
        settings.ev_weight * card.ev_per_risk
        + settings.theta_weight * theta_efficiency
        + settings.edge_weight * vol.edge_ratio
    )


def rank_candidates(
    cards: Sequence[StrategyCard],
    score: Callable[[StrategyCard], float],
) -> List[StrategyCard]:
    """Descending by score; equal scores keep their input order."""
    return sorted(cards, key=score, reverse=True)


def relabel(cards: Sequence[StrategyCard]) -> List[StrategyCard]:
    for i, card in enumerate(cards):
        card.label = chr(ord('A') + i)
    return list(cards)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def generate_strategies(
    params: GenerateParams,
    settings: Optional[EngineSettings] = None,
    sink: Optional[EventSink] = None,
) -> List[StrategyCard]:
    """Generate, gate and rank candidates for one expiration."""
    settings = settings or EngineSettings()
    emit = Emitter(sink, symbol=params.symbol)
    pct = params.iv_rank_pct

    valid = usable_strikes(params.strikes)
    no_greeks = sum(1 for s in params.strikes if not s.has_delta)
    emit(Stage.CHAIN, Verdict.INFO, total=len(params.strikes), valid=len(valid),
         no_greeks=no_greeks, price=params.current_price, iv_rank_pct=round(pct, 1),
         dte=params.dte)

    if len(valid) < settings.min_valid_strikes:
        emit(Stage.CHAIN, Verdict.ABORT, valid=len(valid), required=settings.min_valid_strikes)
        return []

    scan_params = GenerateParams(
        strikes=valid,
        current_price=params.current_price,
        iv_rank=params.iv_rank,
        expiration=params.expiration,
        dte=params.dte,
        symbol=params.symbol,
        iv30=params.iv30,
        hv30=params.hv30,
    )

    cards: List[StrategyCard] = []
    for generator in generators_for(pct, settings):
        card = generator.generate(scan_params, emit)
        if card is not None:
            cards.append(card)
    relabel(cards)

    vol = VolatilityContext.from_params(params, settings)
    for card in cards:
        enrich_expected_value(card, params.current_price, params.dte, vol)
        emit(Stage.ENRICH, Verdict.INFO, card.name.value,
             ev=card.ev, ev_per_risk=card.ev_per_risk, pop=card.pop,
             hv_pop=card.hv_pop, raw_credit_pop=round(raw_credit_pop(card.legs), 4) if card.is_credit else None,
             effective_max_loss=round(card.effective_max_loss(vol.unlimited_loss_proxy), 2))

    survivors = apply_gates(cards, settings, emit)
    ranked = relabel(rank_candidates(survivors, lambda c: composite_score(c, vol, settings)))
    for card in ranked:
        emit(Stage.RANK, Verdict.INFO, card.name.value, label=card.label,
             score=round(composite_score(card, vol, settings), 4))

    emit(Stage.RESULT, Verdict.INFO, count=len(ranked),
         labels=[f"{c.label}) {c.name.value}" for c in ranked])
    logger.info(
        f"{params.symbol or '??'}: {len(ranked)} strategies from {len(cards)} candidates "
        f"(IV rank {pct:.0f}%, {iv_tier(pct)} tier)"
    )
    return ranked
