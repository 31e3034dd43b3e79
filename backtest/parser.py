"""
Backtest service response -> ``BacktestResult``.

The service is inconsistent about key names, so every field is read from a
list of alternatives; the first truthy value wins.  Missing or non-numeric
numbers become 0.  A server-supplied ``summary`` overrides the locally
computed value field by field.
"""

import logging
import math
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional

from backtest.models import (
    BacktestConfig, BacktestResult, BacktestSummary, BacktestTrade, DailyPnl,
    ExitReason, SimulatedTrade,
)
from backtest.performance_metrics import compute_summary

logger = logging.getLogger(__name__)

_COMPLETED_STATUSES = ('completed', 'complete')

# summary wire key -> BacktestSummary field
_SUMMARY_FIELDS = {
    'total-trades': 'total_trades',
    'win-rate': 'win_rate',
    'avg-pnl': 'avg_pnl',
    'total-pnl': 'total_pnl',
    'max-drawdown': 'max_drawdown',
    'sharpe-ratio': 'sharpe_ratio',
    'profit-factor': 'profit_factor',
    'avg-holding-days': 'avg_holding_days',
    'avg-win': 'avg_win',
    'avg-loss': 'avg_loss',
    'max-win': 'max_win',
    'max-loss': 'max_loss',
}


def _pick(raw: Mapping, *keys: str) -> Any:
    """First truthy value among ``keys``, else None."""
    for key in keys:
        value = raw.get(key)
        if value:
            return value
    return None


def _to_number(value: Any) -> Optional[float]:
    """Float value, or None when the service sent something unusable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if math.isnan(number):
        return None
    return number


def _to_float(value: Any) -> float:
    number = _to_number(value)
    return 0.0 if number is None else number


def _to_int(value: Any) -> int:
    number = _to_float(value)
    if math.isinf(number):
        return 0
    return int(number)


def map_exit_reason(reason: Optional[str]) -> ExitReason:
    """Case-insensitive keyword match; anything unrecognized is expiration."""
    r = (reason or '').lower()
    if 'profit' in r:
        return ExitReason.PROFIT_TARGET
    if 'stop' in r or 'loss' in r:
        return ExitReason.STOP_LOSS
    if 'dte' in r or 'exit' in r:
        return ExitReason.DTE_EXIT
    return ExitReason.EXPIRATION


def parse_trade(raw: Mapping) -> BacktestTrade:
    return BacktestTrade(
        entry_date=str(_pick(raw, 'entry-date', 'open-date') or ''),
        exit_date=str(_pick(raw, 'exit-date', 'close-date') or ''),
        entry_price=_to_float(_pick(raw, 'entry-price', 'open-price')),
        exit_price=_to_float(_pick(raw, 'exit-price', 'close-price')),
        pnl=_to_float(_pick(raw, 'pnl', 'profit-loss')),
        pnl_percent=_to_float(_pick(raw, 'pnl-percent', 'return-percent')),
        holding_days=_to_int(_pick(raw, 'holding-days', 'days-held')),
        exit_reason=map_exit_reason(_pick(raw, 'exit-reason', 'close-reason')),
        max_drawdown=_to_float(_pick(raw, 'max-drawdown')),
    )


def _apply_server_summary(local: BacktestSummary, server: Mapping) -> BacktestSummary:
    overrides = {}
    for key, attr in _SUMMARY_FIELDS.items():
        number = _to_number(server.get(key))
        if number is None:
            continue
        if attr == 'total_trades':
            if math.isinf(number):
                continue
            overrides[attr] = int(number)
        else:
            overrides[attr] = number
    if overrides:
        logger.debug(f"Server summary overrides: {sorted(overrides)}")
    return replace(local, **overrides)


def _normalize_status(status: Any) -> str:
    if not status or status in _COMPLETED_STATUSES:
        return 'completed'
    return str(status)


def parse_backtest_response(raw: Mapping, config: BacktestConfig) -> BacktestResult:
    """Coerce a raw service payload into a ``BacktestResult``.

    Trades come from ``trades`` or ``results``.
    """
    raw_trades: List[Mapping] = _pick(raw, 'trades', 'results') or []
    trades = [parse_trade(t) for t in raw_trades if isinstance(t, Mapping)]
    skipped = len(raw_trades) - len(trades)
    if skipped:
        logger.warning(f"Ignored {skipped} malformed trade entries")

    summary, curve, months = compute_summary(trades)
    server_summary = raw.get('summary')
    if isinstance(server_summary, Mapping):
        summary = _apply_server_summary(summary, server_summary)

    return BacktestResult(
        id=str(_pick(raw, 'id', 'backtest-id') or ''),
        status=_normalize_status(raw.get('status')),
        config=config,
        trades=trades,
        summary=summary,
        equity_curve=curve,
        monthly_returns=months,
        error=raw.get('error'),
    )


def parse_simulated_trade(raw: Mapping, entry_date: str) -> SimulatedTrade:
    """Single-trade simulation payload; exit reason is kept verbatim."""
    daily: List[Dict] = raw.get('daily-pnl') or []
    return SimulatedTrade(
        entry_date=str(_pick(raw, 'entry-date') or entry_date),
        exit_date=str(_pick(raw, 'exit-date') or ''),
        entry_price=_to_float(_pick(raw, 'entry-price')),
        exit_price=_to_float(_pick(raw, 'exit-price')),
        pnl=_to_float(_pick(raw, 'pnl', 'profit-loss')),
        pnl_percent=_to_float(_pick(raw, 'pnl-percent', 'return-percent')),
        holding_days=_to_int(_pick(raw, 'holding-days', 'days-held')),
        exit_reason=str(_pick(raw, 'exit-reason', 'close-reason') or ExitReason.EXPIRATION.value),
        daily_pnl=[
            DailyPnl(
                date=str(d.get('date') or ''),
                pnl=_to_float(_pick(d, 'pnl')),
                underlying_price=_to_float(_pick(d, 'underlying-price')),
            )
            for d in daily
            if isinstance(d, Mapping)
        ],
    )
