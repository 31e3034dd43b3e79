"""
Typed records for the external backtest service boundary.

Everything the service returns is coerced into these types by
``backtest.parser`` before it reaches the rest of the code.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from strategies.base import OptionType, Side


class ExitReason(str, Enum):
    PROFIT_TARGET = "profit_target"
    STOP_LOSS = "stop_loss"
    DTE_EXIT = "dte_exit"
    EXPIRATION = "expiration"


class RunStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    STILL_RUNNING = "still_running"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class BacktestLeg:
    side: Side
    option_type: OptionType
    delta: int                      # multiple of 5 in [5, 50]


@dataclass(frozen=True)
class BacktestManagement:
    profit_target_percent: float    # 50 = close at 50% of max profit
    stop_loss_percent: float        # 200 = close at 200% of credit received
    exit_dte: int                   # close with N days remaining


@dataclass
class BacktestConfig:
    symbol: str
    strategy_type: str
    legs: List[BacktestLeg]
    dte: int
    management: BacktestManagement
    start_date: str                 # YYYY-MM-DD
    end_date: str


@dataclass
class BacktestTrade:
    entry_date: str
    exit_date: str
    entry_price: float
    exit_price: float
    pnl: float
    pnl_percent: float
    holding_days: int
    exit_reason: ExitReason
    max_drawdown: float

    @property
    def is_win(self) -> bool:
        return self.pnl > 0


@dataclass
class BacktestSummary:
    total_trades: int = 0
    win_rate: float = 0.0           # 0-1
    avg_pnl: float = 0.0
    total_pnl: float = 0.0
    max_drawdown: float = 0.0
    sharpe_ratio: float = 0.0
    profit_factor: float = 0.0      # math.inf when there are wins and no losses
    avg_holding_days: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0           # negative or zero
    max_win: float = 0.0
    max_loss: float = 0.0           # negative or zero
    consecutive_wins: int = 0
    consecutive_losses: int = 0


@dataclass(frozen=True)
class EquityPoint:
    date: str
    equity: float


@dataclass(frozen=True)
class MonthlyReturn:
    year: int
    month: int
    pnl: float
    trades: int


@dataclass
class BacktestResult:
    id: str
    status: str
    config: BacktestConfig
    trades: List[BacktestTrade]
    summary: BacktestSummary
    equity_curve: List[EquityPoint] = field(default_factory=list)
    monthly_returns: List[MonthlyReturn] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BacktestRun:
    """Outcome of submitting and polling one backtest job.

    ``message`` is always human-readable; ``result`` is set only when
    ``status`` is COMPLETED.
    """
    status: RunStatus
    backtest_id: Optional[str] = None
    result: Optional[BacktestResult] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.COMPLETED


@dataclass(frozen=True)
class DailyPnl:
    date: str
    pnl: float
    underlying_price: float


@dataclass
class SimulatedTrade:
    entry_date: str
    exit_date: str
    entry_price: float
    exit_price: float
    pnl: float
    pnl_percent: float
    holding_days: int
    exit_reason: str                # raw service string
    daily_pnl: List[DailyPnl] = field(default_factory=list)


@dataclass
class SymbolAvailability:
    symbol: str
    available: bool
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    strategies: List[str] = field(default_factory=list)
    message: str = ""
