"""
Chain normalization and leg construction.

``normalize_chain`` is the parsing boundary for raw market data: it turns
per-symbol quote/Greeks dicts into ``StrikeRecord`` rows, repairing or nulling
degenerate quotes.  ``make_leg`` prices one position off a normalized row.
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from shared import constants as C
from strategies.base import Leg, OptionType, Side, StrikeRecord

logger = logging.getLogger(__name__)

# Alternate key spellings accepted from market-data collaborators.
_SYMBOL_KEYS = {
    OptionType.CALL: ('call_symbol', 'callStreamerSymbol', 'call-streamer-symbol'),
    OptionType.PUT: ('put_symbol', 'putStreamerSymbol', 'put-streamer-symbol'),
}
_OPEN_INTEREST_KEYS = ('open_interest', 'openInterest', 'open-interest')


def _num(value: Any) -> Optional[float]:
    """Coerce a raw field to float; None for missing, blank or non-numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result


def _first(record: Mapping, keys: Iterable[str]) -> Any:
    for key in keys:
        if record.get(key) is not None:
            return record[key]
    return None


def repair_quote(bid: Optional[float], ask: Optional[float]) -> Tuple[Optional[float], Optional[float]]:
    """Synthesize a missing side of a one-sided quote, null inverted quotes.

    A zero bid with a live ask becomes ask × 0.4; a zero ask with a live bid
    becomes bid × 2.5.  If the result is still inverted both sides are nulled.
    """
    if bid == 0 and ask is not None and ask > 0:
        bid = ask * C.SYNTHETIC_BID_FACTOR
    if ask == 0 and bid is not None and bid > 0:
        ask = bid * C.SYNTHETIC_ASK_FACTOR
    if bid is not None and ask is not None and bid > ask:
        return None, None
    return bid, ask


def is_wide_spread(bid: Optional[float], ask: Optional[float]) -> bool:
    """(ask - bid) / mid above the wide-spread threshold."""
    if bid is None or ask is None:
        return False
    mid = (bid + ask) / 2
    if mid <= 0:
        return False
    return (ask - bid) / mid > C.WIDE_SPREAD_THRESHOLD


def _side_fields(quote: Mapping, option_type: OptionType) -> Dict[str, Any]:
    prefix = option_type.value
    bid, ask = repair_quote(_num(quote.get('bid')), _num(quote.get('ask')))
    return {
        f'{prefix}_bid': bid,
        f'{prefix}_ask': ask,
        f'{prefix}_delta': _num(quote.get('delta')),
        f'{prefix}_gamma': _num(quote.get('gamma')),
        f'{prefix}_theta': _num(quote.get('theta')),
        f'{prefix}_vega': _num(quote.get('vega')),
        f'{prefix}_iv': _num(quote.get('iv')),
        f'{prefix}_volume': _num(quote.get('volume')),
        f'{prefix}_open_interest': _num(_first(quote, _OPEN_INTEREST_KEYS)),
        f'{prefix}_wide_spread': is_wide_spread(bid, ask),
    }


def normalize_chain(
    expiration_strikes: Iterable[Mapping],
    quotes: Mapping[str, Mapping],
) -> List[StrikeRecord]:
    """Build the strike table for one expiration.

    Args:
        expiration_strikes: Rows with ``strike`` and the call/put market data
            symbols (``call_symbol``/``put_symbol``; camelCase accepted).
        quotes: Market data symbol -> quote/Greeks dict.

    Returns:
        One ``StrikeRecord`` per row with a numeric strike, in input order.
    """
    records: List[StrikeRecord] = []
    skipped = 0
    for row in expiration_strikes:
        strike = _num(row.get('strike'))
        if strike is None:
            skipped += 1
            continue
        fields: Dict[str, Any] = {}
        for option_type in (OptionType.CALL, OptionType.PUT):
            symbol = _first(row, _SYMBOL_KEYS[option_type])
            quote = (quotes.get(symbol) or {}) if symbol is not None else {}
            fields.update(_side_fields(quote, option_type))
        records.append(StrikeRecord(strike=strike, **fields))

    if skipped:
        logger.warning(f"Skipped {skipped} strike rows without a numeric strike")
    return records


def usable_strikes(strikes: Iterable[StrikeRecord]) -> List[StrikeRecord]:
    """Strikes carrying at least one delta and at least one price."""
    return [s for s in strikes if s.has_delta and s.has_price]


def make_leg(
    record: StrikeRecord,
    option_type: OptionType,
    side: Side,
) -> Optional[Leg]:
    """Price one position off a strike row.

    Sells fill at the bid, buys at the ask.  Returns None when that price is
    missing or not positive.  Missing Greeks default to 0; a sell negates them.
    """
    option_type = OptionType(option_type)
    side = Side(side)
    price = record.bid(option_type) if side == Side.SELL else record.ask(option_type)
    if price is None or price <= 0:
        return None

    sign = -1.0 if side == Side.SELL else 1.0
    greeks = {
        name: sign * (record.greek(option_type, name) or 0.0)
        for name in ('delta', 'gamma', 'theta', 'vega')
    }
    return Leg(
        option_type=option_type,
        side=side,
        strike=record.strike,
        price=price,
        wide_spread=record.wide_spread(option_type),
        **greeks,
    )
