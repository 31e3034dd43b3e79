"""Shared constants used across the strategy engine.

This is the single canonical location for all named constants.  Values that
an operator may want to tune at runtime are read through ``EngineSettings``
(see ``strategies.base``) whose defaults come from here.
"""

import os

# ---------------------------------------------------------------------------
# Standardized project paths
# ---------------------------------------------------------------------------
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
LOGS_DIR = os.environ.get('STRATEGY_ENGINE_LOGS_DIR', os.path.join(PROJECT_ROOT, 'logs'))
CONFIG_PATH = os.path.join(PROJECT_ROOT, 'config.yaml')

# ---------------------------------------------------------------------------
# Contract conventions
# ---------------------------------------------------------------------------
CONTRACT_MULTIPLIER = 100
DAYS_PER_YEAR = 365

# ---------------------------------------------------------------------------
# Chain normalization
# ---------------------------------------------------------------------------
SYNTHETIC_BID_FACTOR = 0.4       # bid = ask * 0.4 when the bid is exactly zero
SYNTHETIC_ASK_FACTOR = 2.5       # ask = bid * 2.5 when the ask is exactly zero
WIDE_SPREAD_THRESHOLD = 0.50     # (ask - bid) / mid above this is "wide"

# ---------------------------------------------------------------------------
# Payoff sampling
# ---------------------------------------------------------------------------
PAYOFF_SAMPLE_POINTS = 51
PAYOFF_MIN_MARGIN_PCT = 0.10     # tails extend at least 10% of spot
PAYOFF_LOWER_BOUND_PCT = 0.85
PAYOFF_UPPER_BOUND_PCT = 1.15

# ---------------------------------------------------------------------------
# Candidate search
# ---------------------------------------------------------------------------
IRON_CONDOR_DELTAS = (0.10, 0.12, 0.14, 0.16, 0.18, 0.20, 0.22, 0.25)
CREDIT_SPREAD_DELTAS = (0.15, 0.18, 0.20, 0.22, 0.25, 0.28, 0.30)
SHORT_STRANGLE_DELTAS = (0.10, 0.12, 0.14, 0.16, 0.18, 0.20, 0.25)

ATM_DELTA = 0.50
OTM_DELTA = 0.30

HIGH_IV_RANK_PCT = 50            # > 50  -> sell premium
LOW_IV_RANK_PCT = 20             # < 20  -> buy premium
MIN_VALID_STRIKES = 3

# ---------------------------------------------------------------------------
# Probability / EV model
# ---------------------------------------------------------------------------
DEFAULT_IV = 0.30
IV_HV_RATIO_CAP = 4.0
UNLIMITED_LOSS_SIGMAS = 2.5

# ---------------------------------------------------------------------------
# Gates and ranking
# ---------------------------------------------------------------------------
MIN_NET_CREDIT = 0.10            # $0.10/share = $10/contract
DEFAULT_POP_FLOOR = 0.40

COMPOSITE_EV_WEIGHT = 50
COMPOSITE_THETA_WEIGHT = 30
COMPOSITE_EDGE_WEIGHT = 20

# ---------------------------------------------------------------------------
# Backtest service
# ---------------------------------------------------------------------------
BACKTESTER_BASE_URL = os.environ.get(
    'STRATEGY_ENGINE_BACKTESTER_URL', 'https://backtester.vast.tastyworks.com'
)
BACKTEST_POLL_INTERVAL_SECONDS = 1.0
BACKTEST_MAX_POLL_ATTEMPTS = 60
BACKTEST_REQUEST_TIMEOUT = 15
BACKTEST_HISTORY_YEARS = 5
BACKTEST_USER_AGENT = 'StrategyEngine/1.0'

MIN_BACKTEST_DELTA = 5
MAX_BACKTEST_DELTA = 50
BACKTEST_DELTA_STEP = 5

# Management defaults: (profit target %, stop loss %, exit DTE)
CREDIT_MANAGEMENT_DEFAULTS = (50, 200, 21)
DEBIT_MANAGEMENT_DEFAULTS = (100, 50, 7)

DEFAULT_BACKTEST_STRATEGIES = [
    'iron_condor', 'short_put_vertical', 'short_call_vertical',
    'short_strangle', 'short_straddle', 'long_call_vertical',
    'long_put_vertical', 'long_straddle', 'long_strangle',
]

DEFAULT_SIMULATION_DTE = 45
DEFAULT_HISTORY_START = '2010-01-01'
