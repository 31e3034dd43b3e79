"""
Backtest service integration: translate strategy cards, run jobs, parse results.
"""

from .client import BacktestClient
from .models import (
    BacktestConfig, BacktestLeg, BacktestManagement, BacktestResult, BacktestRun,
    BacktestSummary, BacktestTrade, ExitReason, RunStatus, SimulatedTrade,
    SymbolAvailability,
)
from .parser import map_exit_reason, parse_backtest_response
from .performance_metrics import PerformanceMetrics, compute_summary
from .translator import (
    BACKTEST_STRATEGY_TYPES, build_backtest_request, config_from_request,
    default_management, round_delta, translate_to_backtest,
)

__all__ = [
    'BacktestClient',
    'BacktestConfig', 'BacktestLeg', 'BacktestManagement', 'BacktestResult',
    'BacktestRun', 'BacktestSummary', 'BacktestTrade', 'ExitReason', 'RunStatus',
    'SimulatedTrade', 'SymbolAvailability',
    'map_exit_reason', 'parse_backtest_response',
    'PerformanceMetrics', 'compute_summary',
    'BACKTEST_STRATEGY_TYPES', 'build_backtest_request', 'config_from_request',
    'default_management', 'round_delta', 'translate_to_backtest',
]
