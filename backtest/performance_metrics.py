"""
Performance Metrics
Summary statistics for a list of backtest trades, and a text report.
"""

import json
import logging
import math
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from backtest.models import (
    BacktestResult, BacktestSummary, BacktestTrade, EquityPoint, MonthlyReturn,
)

logger = logging.getLogger(__name__)

_MONTH_KEY = r'^\d{4}-\d{2}$'


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def equity_curve(trades: Sequence[BacktestTrade]) -> Tuple[List[EquityPoint], float]:
    """Running P&L per exit, and the max peak-to-trough drop (peak starts at 0)."""
    if not trades:
        return [], 0.0
    pnl = pd.Series([t.pnl for t in trades], dtype=float)
    equity = pnl.cumsum()
    peak = equity.cummax().clip(lower=0)
    max_drawdown = float(max(0.0, (peak - equity).max()))
    points = [
        EquityPoint(date=t.exit_date, equity=float(e))
        for t, e in zip(trades, equity)
    ]
    return points, max_drawdown


def monthly_returns(trades: Sequence[BacktestTrade]) -> List[MonthlyReturn]:
    """P&L bucketed by exit month, in order of first appearance.

    Trades whose exit date does not start with YYYY-MM are left out.
    """
    if not trades:
        return []
    df = pd.DataFrame({
        'month': [t.exit_date[:7] for t in trades],
        'pnl': [t.pnl for t in trades],
    })
    df = df[df['month'].str.match(_MONTH_KEY)]
    if df.empty:
        return []
    grouped = df.groupby('month', sort=False).agg(pnl=('pnl', 'sum'), trades=('pnl', 'count'))
    return [
        MonthlyReturn(
            year=int(key[:4]),
            month=int(key[5:7]),
            pnl=round(float(row['pnl']), 2),
            trades=int(row['trades']),
        )
        for key, row in grouped.iterrows()
    ]


def sharpe_ratio(months: Sequence[MonthlyReturn]) -> float:
    """Annualized from monthly P&L: mean / sample stdev × sqrt(12)."""
    if len(months) < 2:
        return 0.0
    pnl = pd.Series([m.pnl for m in months], dtype=float)
    std = pnl.std(ddof=1)
    if not std > 0:
        return 0.0
    return round(float(pnl.mean() / std * np.sqrt(12)), 2)


def _streaks(wins: Sequence[bool]) -> Tuple[int, int]:
    max_win_streak = max_loss_streak = cur_win = cur_loss = 0
    for is_win in wins:
        if is_win:
            cur_win += 1
            cur_loss = 0
            max_win_streak = max(max_win_streak, cur_win)
        else:
            cur_loss += 1
            cur_win = 0
            max_loss_streak = max(max_loss_streak, cur_loss)
    return max_win_streak, max_loss_streak


def compute_summary(
    trades: Sequence[BacktestTrade],
) -> Tuple[BacktestSummary, List[EquityPoint], List[MonthlyReturn]]:
    """Locally computed summary, equity curve and monthly buckets.

    Wins are trades with pnl > 0; everything else counts as a loss.
    """
    curve, max_drawdown = equity_curve(trades)
    months = monthly_returns(trades)
    if not trades:
        return BacktestSummary(), curve, months

    trades_df = pd.DataFrame([asdict(t) for t in trades])
    winners = trades_df[trades_df['pnl'] > 0]
    losers = trades_df[trades_df['pnl'] <= 0]
    total_trades = len(trades_df)

    total_pnl = float(trades_df['pnl'].sum())
    gross_wins = float(winners['pnl'].sum()) if len(winners) > 0 else 0.0
    gross_losses = abs(float(losers['pnl'].sum())) if len(losers) > 0 else 0.0

    if gross_losses > 0:
        profit_factor = round(gross_wins / gross_losses, 2)
    elif gross_wins > 0:
        profit_factor = math.inf
    else:
        profit_factor = 0.0

    max_win_streak, max_loss_streak = _streaks(trades_df['pnl'] > 0)

    summary = BacktestSummary(
        total_trades=total_trades,
        win_rate=len(winners) / total_trades,
        avg_pnl=round(total_pnl / total_trades, 2),
        total_pnl=round(total_pnl, 2),
        max_drawdown=round(max_drawdown, 2),
        sharpe_ratio=sharpe_ratio(months),
        profit_factor=profit_factor,
        avg_holding_days=_round_half_up(trades_df['holding_days'].sum() / total_trades),
        avg_win=round(float(winners['pnl'].mean()), 2) if len(winners) > 0 else 0.0,
        avg_loss=round(float(losers['pnl'].mean()), 2) if len(losers) > 0 else 0.0,
        max_win=float(winners['pnl'].max()) if len(winners) > 0 else 0.0,
        max_loss=float(losers['pnl'].min()) if len(losers) > 0 else 0.0,
        consecutive_wins=max_win_streak,
        consecutive_losses=max_loss_streak,
    )
    return summary, curve, months


class PerformanceMetrics:
    """
    Report on backtest results.
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Args:
            config: Configuration dictionary; ``backtest.report_dir`` is used
                by ``save_report``.
        """
        self.config = config or {}

    def generate_report(self, result: BacktestResult) -> str:
        """
        Generate a formatted text report for one backtest result.
        """
        s = result.summary
        cfg = result.config
        lines = []
        lines.append("=" * 80)
        lines.append(f"{cfg.symbol} {cfg.strategy_type.upper()} - BACKTEST REPORT")
        lines.append("=" * 80)
        lines.append(f"Period: {cfg.start_date} to {cfg.end_date}  |  Target DTE: {cfg.dte}")
        legs = ", ".join(f"{l.side.value} {l.delta}d {l.option_type.value}" for l in cfg.legs)
        lines.append(f"Legs: {legs}")
        lines.append(
            f"Management: {cfg.management.profit_target_percent}% target, "
            f"{cfg.management.stop_loss_percent}% stop, exit at {cfg.management.exit_dte} DTE"
        )
        lines.append("")

        lines.append("SUMMARY")
        lines.append("-" * 80)
        lines.append(f"Total Trades: {s.total_trades}")
        lines.append(f"Win Rate: {s.win_rate * 100:.2f}%")
        lines.append(f"Avg Holding Days: {s.avg_holding_days}")
        lines.append("")

        lines.append("RETURNS")
        lines.append("-" * 80)
        lines.append(f"Total P&L: ${s.total_pnl:,.2f}")
        lines.append(f"Average P&L: ${s.avg_pnl:,.2f}")
        lines.append("")

        lines.append("TRADE STATISTICS")
        lines.append("-" * 80)
        lines.append(f"Average Win: ${s.avg_win:,.2f}")
        lines.append(f"Average Loss: ${s.avg_loss:,.2f}")
        lines.append(f"Max Win: ${s.max_win:,.2f}")
        lines.append(f"Max Loss: ${s.max_loss:,.2f}")
        pf = "inf" if math.isinf(s.profit_factor) else f"{s.profit_factor:.2f}"
        lines.append(f"Profit Factor: {pf}")
        lines.append(f"Longest Win Streak: {s.consecutive_wins}")
        lines.append(f"Longest Loss Streak: {s.consecutive_losses}")
        lines.append("")

        lines.append("RISK METRICS")
        lines.append("-" * 80)
        lines.append(f"Max Drawdown: ${s.max_drawdown:,.2f}")
        lines.append(f"Sharpe Ratio: {s.sharpe_ratio:.2f}")
        lines.append("")

        if result.monthly_returns:
            lines.append("MONTHLY P&L")
            lines.append("-" * 80)
            for m in result.monthly_returns:
                lines.append(f"{m.year}-{m.month:02d}: ${m.pnl:>10,.2f}  ({m.trades} trades)")
            lines.append("")

        if s.total_pnl > 0:
            lines.append("PROFITABLE OVER THE PERIOD")
        else:
            lines.append("NOT PROFITABLE OVER THE PERIOD")
        lines.append("=" * 80)

        return "\n".join(lines)

    def save_report(self, result: BacktestResult) -> str:
        """
        Write the text report and the JSON result to ``backtest.report_dir``.

        Returns:
            Path to the text report.
        """
        report_dir = Path(self.config.get('backtest', {}).get('report_dir', 'output'))
        report_dir.mkdir(parents=True, exist_ok=True)
        stamp = self._timestamp()

        report_file = report_dir / f"backtest_report_{result.config.symbol}_{stamp}.txt"
        try:
            with open(report_file, 'w') as f:
                f.write(self.generate_report(result))
            logger.info(f"Report generated: {report_file}")
        except OSError as e:
            logger.warning(f"Failed to write text report to {report_file}: {e}")

        json_file = report_dir / f"backtest_results_{result.config.symbol}_{stamp}.json"
        try:
            with open(json_file, 'w') as f:
                json.dump(result.to_dict(), f, indent=2, default=str)
        except OSError as e:
            logger.warning(f"Failed to write JSON results to {json_file}: {e}")

        return str(report_file)

    def _timestamp(self) -> str:
        return datetime.now().strftime("%Y%m%d_%H%M%S")
