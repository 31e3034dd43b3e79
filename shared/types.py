"""TypedDict definitions for the external payload shapes crossing the engine.

These describe the *untyped* side of each boundary.  The chain normalizer and
the backtest parser coerce them into the strict dataclasses in
``strategies.base`` and ``backtest.models``; nothing past those boundaries
should touch these dicts.
"""

from typing import Dict, List, TypedDict


class RawOptionQuote(TypedDict, total=False):
    """Per-contract quote + Greeks record keyed by market data symbol."""
    bid: float
    ask: float
    delta: float
    gamma: float
    theta: float
    vega: float
    iv: float
    volume: int
    open_interest: int


class RawExpirationStrike(TypedDict, total=False):
    """One strike row of an expiration, pointing at its call/put symbols."""
    strike: float
    call_symbol: str
    put_symbol: str


class ChainSnapshot(TypedDict, total=False):
    """Market-data collaborator output consumed by the CLI."""
    symbol: str
    current_price: float
    iv_rank: float
    expiration: str
    dte: int
    iv30: float
    hv30: float
    strikes: List[RawExpirationStrike]
    quotes: Dict[str, RawOptionQuote]


BacktestLegRequest = TypedDict('BacktestLegRequest', {
    'side': str,
    'option-type': str,
    'delta': int,
})


BacktestManagementRequest = TypedDict('BacktestManagementRequest', {
    'profit-target-percent': float,
    'stop-loss-percent': float,
    'exit-dte': int,
})

BacktestRequest = TypedDict('BacktestRequest', {
    'symbol': str,
    'strategy-type': str,
    'legs': List[BacktestLegRequest],
    'target-dte': int,
    'start-date': str,
    'end-date': str,
    'management': BacktestManagementRequest,
})


class EngineConfig(TypedDict, total=False):
    """``engine`` section of config.yaml."""
    min_credit: float
    iv_hv_cap: float
    unlimited_loss_sigmas: float
    default_iv: float
    min_valid_strikes: int
    composite_weights: Dict[str, float]


class BacktestServiceConfig(TypedDict, total=False):
    """``backtest`` section of config.yaml."""
    base_url: str
    poll_interval_seconds: float
    max_poll_attempts: int
    request_timeout: float
    user_agent: str
    history_years: int
    report_dir: str
    access_token: str


class LoggingConfig(TypedDict, total=False):
    level: str
    file: str
    console: bool


class AppConfig(TypedDict, total=False):
    """Top-level application configuration."""
    engine: EngineConfig
    backtest: BacktestServiceConfig
    logging: LoggingConfig
