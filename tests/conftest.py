"""Shared test fixtures."""
from typing import Dict, List, Optional

import pytest

from strategies.base import GenerateParams
from strategies.chain import normalize_chain

# strike: (put delta, put bid, put ask, call bid, call ask); call delta = 1 + put delta
LADDER = {
    75: (-0.01, 0.05, 0.10, 25.00, 25.50),
    80: (-0.03, 0.15, 0.20, 20.10, 20.50),
    85: (-0.16, 0.60, 0.70, 15.40, 15.80),
    90: (-0.30, 1.40, 1.50, 11.20, 11.50),
    95: (-0.42, 2.40, 2.50, 7.30, 7.50),
    100: (-0.50, 3.50, 3.60, 3.50, 3.60),
    105: (-0.58, 7.30, 7.50, 2.40, 2.50),
    110: (-0.70, 11.20, 11.50, 1.40, 1.50),
    115: (-0.84, 15.40, 15.80, 0.60, 0.70),
    120: (-0.97, 20.10, 20.50, 0.15, 0.20),
    125: (-0.99, 25.00, 25.50, 0.05, 0.10),
}


def make_raw_chain(ladder: Optional[Dict] = None, symbol: str = 'SPY'):
    """(expiration strikes, quotes) in the market-data collaborator's shape."""
    ladder = ladder or LADDER
    strikes: List[Dict] = []
    quotes: Dict[str, Dict] = {}
    for strike, (put_delta, put_bid, put_ask, call_bid, call_ask) in ladder.items():
        call_sym = f".{symbol}C{strike}"
        put_sym = f".{symbol}P{strike}"
        strikes.append({'strike': strike, 'call_symbol': call_sym, 'put_symbol': put_sym})
        quotes[call_sym] = {
            'bid': call_bid, 'ask': call_ask, 'delta': round(1 + put_delta, 2),
            'iv': 0.40, 'volume': 100, 'open_interest': 1000,
        }
        quotes[put_sym] = {
            'bid': put_bid, 'ask': put_ask, 'delta': put_delta,
            'iv': 0.40, 'volume': 100, 'open_interest': 1000,
        }
    return strikes, quotes


def make_params(
    iv_rank: float = 0.80,
    iv30: Optional[float] = None,
    hv30: Optional[float] = None,
    ladder: Optional[Dict] = None,
    dte: int = 45,
) -> GenerateParams:
    strikes, quotes = make_raw_chain(ladder)
    return GenerateParams(
        strikes=normalize_chain(strikes, quotes),
        current_price=100.0,
        iv_rank=iv_rank,
        expiration='2026-12-04',
        dte=dte,
        symbol='SPY',
        iv30=iv30,
        hv30=hv30,
    )


@pytest.fixture
def raw_chain():
    return make_raw_chain()


@pytest.fixture
def ladder():
    strikes, quotes = make_raw_chain()
    return normalize_chain(strikes, quotes)


@pytest.fixture
def high_iv_params():
    return make_params(iv_rank=0.80, iv30=0.40, hv30=0.20)


@pytest.fixture
def sample_config():
    return {
        'engine': {
            'min_credit': 0.10,
            'iv_hv_cap': 4.0,
            'unlimited_loss_sigmas': 2.5,
            'default_iv': 0.30,
            'min_valid_strikes': 3,
            'composite_weights': {'ev': 50, 'theta': 30, 'edge': 20},
        },
        'backtest': {
            'base_url': 'https://backtester.example.com',
            'poll_interval_seconds': 1.0,
            'max_poll_attempts': 5,
            'request_timeout': 5,
            'user_agent': 'StrategyEngineTest/1.0',
            'history_years': 5,
            'report_dir': '/tmp/backtest_reports',
        },
        'logging': {'level': 'WARNING', 'file': '/tmp/test_strategy_engine.log', 'console': False},
    }
