"""
Universal data types and the abstract generator base for all strategy modules.

Every candidate generator implements ``generate(params, emit)`` and returns at
most one ``StrategyCard`` for its family.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from shared import constants as C
from shared.events import Emitter


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class OptionType(str, Enum):
    CALL = "call"
    PUT = "put"


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"


class StrategyName(str, Enum):
    """Closed set of strategy families the engine knows how to reason about."""
    IRON_CONDOR = "Iron Condor"
    PUT_CREDIT_SPREAD = "Put Credit Spread"
    CALL_CREDIT_SPREAD = "Call Credit Spread"
    SHORT_STRANGLE = "Short Strangle"
    SHORT_STRADDLE = "Short Straddle"
    BULL_CALL_SPREAD = "Bull Call Spread"
    BEAR_PUT_SPREAD = "Bear Put Spread"
    DEBIT_SPREAD = "Debit Spread"
    LONG_STRADDLE = "Long Straddle"
    LONG_STRANGLE = "Long Strangle"
    JADE_LIZARD = "Jade Lizard"
    CUSTOM = "Custom"

    @property
    def is_credit_family(self) -> bool:
        return CREDIT_FAMILY[self]

    @property
    def pop_floor(self) -> float:
        return POP_FLOORS[self]


# Premium-selling families: these get the volatility-adjusted PoP.
CREDIT_FAMILY: Dict[StrategyName, bool] = {
    StrategyName.IRON_CONDOR: True,
    StrategyName.PUT_CREDIT_SPREAD: True,
    StrategyName.CALL_CREDIT_SPREAD: True,
    StrategyName.SHORT_STRANGLE: True,
    StrategyName.SHORT_STRADDLE: True,
    StrategyName.JADE_LIZARD: True,
    StrategyName.BULL_CALL_SPREAD: False,
    StrategyName.BEAR_PUT_SPREAD: False,
    StrategyName.DEBIT_SPREAD: False,
    StrategyName.LONG_STRADDLE: False,
    StrategyName.LONG_STRANGLE: False,
    StrategyName.CUSTOM: False,
}

# Delta-PoP floor for gate B.
POP_FLOORS: Dict[StrategyName, float] = {
    StrategyName.PUT_CREDIT_SPREAD: 0.55,
    StrategyName.CALL_CREDIT_SPREAD: 0.55,
    StrategyName.IRON_CONDOR: 0.50,
    StrategyName.SHORT_STRANGLE: 0.60,
    StrategyName.JADE_LIZARD: 0.55,
    StrategyName.BULL_CALL_SPREAD: 0.30,
    StrategyName.BEAR_PUT_SPREAD: 0.30,
    StrategyName.DEBIT_SPREAD: 0.30,
    StrategyName.LONG_STRADDLE: 0.25,
    StrategyName.LONG_STRANGLE: 0.25,
    StrategyName.SHORT_STRADDLE: C.DEFAULT_POP_FLOOR,
    StrategyName.CUSTOM: C.DEFAULT_POP_FLOOR,
}


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StrikeRecord:
    """One strike of a normalized chain.  ``None`` means missing/untrusted."""
    strike: float
    call_bid: Optional[float] = None
    call_ask: Optional[float] = None
    put_bid: Optional[float] = None
    put_ask: Optional[float] = None
    call_delta: Optional[float] = None
    put_delta: Optional[float] = None
    call_gamma: Optional[float] = None
    put_gamma: Optional[float] = None
    call_theta: Optional[float] = None
    put_theta: Optional[float] = None
    call_vega: Optional[float] = None
    put_vega: Optional[float] = None
    call_iv: Optional[float] = None
    put_iv: Optional[float] = None
    call_volume: Optional[float] = None
    put_volume: Optional[float] = None
    call_open_interest: Optional[float] = None
    put_open_interest: Optional[float] = None
    call_wide_spread: bool = False
    put_wide_spread: bool = False

    def _side(self, option_type: OptionType, field_name: str):
        return getattr(self, f"{OptionType(option_type).value}_{field_name}")

    def bid(self, option_type: OptionType) -> Optional[float]:
        return self._side(option_type, "bid")

    def ask(self, option_type: OptionType) -> Optional[float]:
        return self._side(option_type, "ask")

    def delta(self, option_type: OptionType) -> Optional[float]:
        return self._side(option_type, "delta")

    def greek(self, option_type: OptionType, name: str) -> Optional[float]:
        return self._side(option_type, name)

    def wide_spread(self, option_type: OptionType) -> bool:
        return self._side(option_type, "wide_spread")

    @property
    def has_delta(self) -> bool:
        return self.call_delta is not None or self.put_delta is not None

    @property
    def has_price(self) -> bool:
        return any(v is not None for v in (self.call_bid, self.call_ask, self.put_bid, self.put_ask))


@dataclass(frozen=True)
class Leg:
    """One option position.  Greeks are signed from the holder's view."""
    option_type: OptionType
    side: Side
    strike: float
    price: float                # entry price per share, always positive
    delta: float = 0.0
    gamma: float = 0.0
    theta: float = 0.0
    vega: float = 0.0
    wide_spread: bool = False

    @property
    def is_short(self) -> bool:
        return self.side == Side.SELL

    @property
    def cash_flow(self) -> float:
        """Premium received (+) or paid (-) per share at entry."""
        return self.price if self.is_short else -self.price

    def intrinsic(self, underlying: float) -> float:
        if self.option_type == OptionType.CALL:
            return max(0.0, underlying - self.strike)
        return max(0.0, self.strike - underlying)

    def pnl_at_expiry(self, underlying: float) -> float:
        """Dollar P&L per contract if held to expiration at ``underlying``."""
        intrinsic = self.intrinsic(underlying)
        per_share = self.price - intrinsic if self.is_short else intrinsic - self.price
        return per_share * C.CONTRACT_MULTIPLIER


class PayoffPoint(NamedTuple):
    price: float
    pnl: float


@dataclass
class StrategyCard:
    """A fully priced candidate strategy.

    Built once by a generator or the custom builder.  Afterwards only the EV
    fields (``ev``, ``ev_per_risk``, ``hv_pop``) and ``label`` are written.
    """
    name: StrategyName
    label: str
    legs: Tuple[Leg, ...]
    expiration: str
    dte: int
    net_credit: Optional[float]
    net_debit: Optional[float]
    max_profit: Optional[float]
    max_loss: Optional[float]          # None only when risk is unbounded
    breakevens: List[float]
    pop: Optional[float]               # delta-based, 0-1
    risk_reward: Optional[float]
    net_delta: float
    net_gamma: float
    net_theta: float
    net_vega: float
    theta_per_day: float               # dollars/day for one contract
    is_unlimited: bool
    pnl_points: List[PayoffPoint]
    has_wide_spread: bool
    ev: float = 0.0
    ev_per_risk: float = 0.0
    hv_pop: Optional[float] = None

    @property
    def is_credit(self) -> bool:
        return self.net_credit is not None

    def short_legs(self, option_type: Optional[OptionType] = None) -> List[Leg]:
        return [
            l for l in self.legs
            if l.is_short and (option_type is None or l.option_type == option_type)
        ]

    def long_legs(self, option_type: Optional[OptionType] = None) -> List[Leg]:
        return [
            l for l in self.legs
            if not l.is_short and (option_type is None or l.option_type == option_type)
        ]

    def effective_max_loss(self, unlimited_loss_proxy: float) -> float:
        """Max loss used for EV and ranking; naked risk uses the HV proxy."""
        if self.is_unlimited:
            return unlimited_loss_proxy
        return self.max_loss or 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a plain dict for JSON output."""
        d = asdict(self)
        d["name"] = self.name.value
        d["legs"] = [
            {**asdict(l), "option_type": l.option_type.value, "side": l.side.value}
            for l in self.legs
        ]
        d["pnl_points"] = [{"price": p.price, "pnl": p.pnl} for p in self.pnl_points]
        return d


@dataclass
class GenerateParams:
    """Everything the market-data collaborator supplies for one expiration."""
    strikes: List[StrikeRecord]
    current_price: float
    iv_rank: float                     # 0-1 scale
    expiration: str
    dte: int
    symbol: str = ""
    iv30: Optional[float] = None       # decimal, e.g. 0.42
    hv30: Optional[float] = None

    @property
    def iv_rank_pct(self) -> float:
        return self.iv_rank * 100


@dataclass
class EngineSettings:
    """Tunable model parameters; defaults mirror shared.constants."""
    min_credit: float = C.MIN_NET_CREDIT
    iv_hv_cap: float = C.IV_HV_RATIO_CAP
    unlimited_loss_sigmas: float = C.UNLIMITED_LOSS_SIGMAS
    default_iv: float = C.DEFAULT_IV
    min_valid_strikes: int = C.MIN_VALID_STRIKES
    ev_weight: float = C.COMPOSITE_EV_WEIGHT
    theta_weight: float = C.COMPOSITE_THETA_WEIGHT
    edge_weight: float = C.COMPOSITE_EDGE_WEIGHT

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "EngineSettings":
        engine = (config or {}).get('engine', {}) or {}
        weights = engine.get('composite_weights', {}) or {}
        defaults = cls()
        return cls(
            min_credit=engine.get('min_credit', defaults.min_credit),
            iv_hv_cap=engine.get('iv_hv_cap', defaults.iv_hv_cap),
            unlimited_loss_sigmas=engine.get('unlimited_loss_sigmas', defaults.unlimited_loss_sigmas),
            default_iv=engine.get('default_iv', defaults.default_iv),
            min_valid_strikes=engine.get('min_valid_strikes', defaults.min_valid_strikes),
            ev_weight=weights.get('ev', defaults.ev_weight),
            theta_weight=weights.get('theta', defaults.theta_weight),
            edge_weight=weights.get('edge', defaults.edge_weight),
        )


# ---------------------------------------------------------------------------
# Abstract Base Class
# ---------------------------------------------------------------------------

class BaseGenerator(ABC):
    """Abstract base class for candidate generators.

    One generator owns one strategy family.  ``generate`` never raises for
    data-quality problems: it reports them through ``emit`` and returns None.
    """

    strategy: StrategyName = StrategyName.CUSTOM

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()

    @property
    def name(self) -> str:
        return self.strategy.value

    @abstractmethod
    def generate(
        self, params: GenerateParams, emit: Emitter,
    ) -> Optional[StrategyCard]:
        """Return the best card for this family, or None."""
        ...
