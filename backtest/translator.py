"""
StrategyCard -> backtest service request.

The service only understands integer deltas in multiples of 5 and a fixed
set of strategy identifiers, so the card is quantized on the way out.
"""

import logging
import math
from datetime import date
from typing import Any, Dict, Mapping, Optional

from shared import constants as C
from shared.types import BacktestRequest
from strategies.base import OptionType, Side, StrategyCard, StrategyName
from backtest.models import BacktestConfig, BacktestLeg, BacktestManagement

logger = logging.getLogger(__name__)

BACKTEST_STRATEGY_TYPES: Dict[StrategyName, str] = {
    StrategyName.IRON_CONDOR: "iron_condor",
    StrategyName.PUT_CREDIT_SPREAD: "short_put_vertical",
    StrategyName.CALL_CREDIT_SPREAD: "short_call_vertical",
    StrategyName.SHORT_STRANGLE: "short_strangle",
    StrategyName.SHORT_STRADDLE: "short_straddle",
    StrategyName.BULL_CALL_SPREAD: "long_call_vertical",
    StrategyName.BEAR_PUT_SPREAD: "long_put_vertical",
    StrategyName.DEBIT_SPREAD: "long_call_vertical",
    StrategyName.LONG_STRADDLE: "long_straddle",
    StrategyName.LONG_STRANGLE: "long_strangle",
    StrategyName.JADE_LIZARD: "jade_lizard",
    StrategyName.CUSTOM: "custom",
}


def round_delta(delta: float) -> int:
    """0.16 -> 15, 0.18 -> 20; always a multiple of 5 in [5, 50]."""
    # half-up, so 12.5 -> 15
    steps = math.floor(abs(delta) * 100 / C.BACKTEST_DELTA_STEP + 0.5)
    rounded = int(steps) * C.BACKTEST_DELTA_STEP
    return max(C.MIN_BACKTEST_DELTA, min(C.MAX_BACKTEST_DELTA, rounded))


def default_management(strategy: StrategyName) -> BacktestManagement:
    """Credit: 50% target, 200% stop, exit at 21 DTE.  Debit: 100% / 50% / 7."""
    defaults = (
        C.CREDIT_MANAGEMENT_DEFAULTS if strategy.is_credit_family
        else C.DEBIT_MANAGEMENT_DEFAULTS
    )
    profit_target, stop_loss, exit_dte = defaults
    return BacktestManagement(
        profit_target_percent=profit_target,
        stop_loss_percent=stop_loss,
        exit_dte=exit_dte,
    )


def _years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # Feb 29 -> Feb 28
        return day.replace(year=day.year - years, day=28)


def translate_to_backtest(
    card: StrategyCard,
    symbol: str,
    dte: Optional[int] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    management: Optional[BacktestManagement] = None,
    today: Optional[date] = None,
    history_years: int = C.BACKTEST_HISTORY_YEARS,
) -> BacktestConfig:
    """Quantize a card into a ``BacktestConfig``.

    Args:
        card: Candidate to test.
        symbol: Underlying; upper-cased.
        dte: Target DTE; defaults to the card's.
        start_date / end_date: YYYY-MM-DD; default to ``history_years`` back
            from ``today`` through ``today``.
        management: Exit rules; default depends on credit vs debit family.
        today: Reference date, defaults to ``date.today()``.
    """
    today = today or date.today()
    legs = [
        BacktestLeg(side=leg.side, option_type=leg.option_type, delta=round_delta(leg.delta))
        for leg in card.legs
    ]
    return BacktestConfig(
        symbol=symbol.upper(),
        strategy_type=BACKTEST_STRATEGY_TYPES[card.name],
        legs=legs,
        dte=dte if dte is not None else card.dte,
        management=management or default_management(card.name),
        start_date=start_date or _years_before(today, history_years).isoformat(),
        end_date=end_date or today.isoformat(),
    )


def management_request(management: BacktestManagement) -> Dict[str, Any]:
    return {
        'profit-target-percent': management.profit_target_percent,
        'stop-loss-percent': management.stop_loss_percent,
        'exit-dte': management.exit_dte,
    }


def build_backtest_request(config: BacktestConfig) -> BacktestRequest:
    """Wire body for ``POST /backtests``."""
    return {
        'symbol': config.symbol,
        'strategy-type': config.strategy_type,
        'legs': [
            {'side': leg.side.value, 'option-type': leg.option_type.value, 'delta': leg.delta}
            for leg in config.legs
        ],
        'target-dte': config.dte,
        'start-date': config.start_date,
        'end-date': config.end_date,
        'management': management_request(config.management),
    }


def config_from_request(request: Mapping[str, Any]) -> BacktestConfig:
    """Inverse of ``build_backtest_request``."""
    management = request['management']
    return BacktestConfig(
        symbol=request['symbol'],
        strategy_type=request['strategy-type'],
        legs=[
            BacktestLeg(
                side=Side(leg['side']),
                option_type=OptionType(leg['option-type']),
                delta=int(leg['delta']),
            )
            for leg in request['legs']
        ],
        dte=int(request['target-dte']),
        management=BacktestManagement(
            profit_target_percent=management['profit-target-percent'],
            stop_loss_percent=management['stop-loss-percent'],
            exit_dte=int(management['exit-dte']),
        ),
        start_date=request['start-date'],
        end_date=request['end-date'],
    )
