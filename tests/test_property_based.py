"""Property-based tests using Hypothesis for bounded pricing calculations.

These tests verify invariants that must hold for any valid input, rather than
checking specific examples.
"""

import math
from dataclasses import replace

import pytest
from hypothesis import given, strategies as st

from backtest.parser import _to_float, map_exit_reason
from backtest.models import ExitReason
from backtest.translator import round_delta
from strategies.base import Leg, OptionType, Side, StrategyName
from strategies.payoff import analytic_max_loss, build_card, payoff_domain
from strategies.pipeline import rank_candidates, relabel
from strategies.probability import delta_pop, hv_adjusted_pop


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

prices = st.floats(min_value=0.01, max_value=50.0)
strikes = st.integers(min_value=10, max_value=400)
deltas = st.floats(min_value=0.0, max_value=1.0)


@st.composite
def verticals(draw):
    """Two legs of one option type at distinct strikes, one bought, one sold."""
    option_type = draw(st.sampled_from([OptionType.CALL, OptionType.PUT]))
    lo = draw(strikes)
    hi = draw(st.integers(min_value=lo + 1, max_value=lo + 50))
    short_low = draw(st.booleans())
    sides = (Side.SELL, Side.BUY) if short_low else (Side.BUY, Side.SELL)
    return [
        Leg(option_type, sides[0], float(lo), draw(prices), delta=draw(deltas)),
        Leg(option_type, sides[1], float(hi), draw(prices), delta=draw(deltas)),
    ]


# ---------------------------------------------------------------------------
# 1. round_delta: always a multiple of 5 within [5, 50]
# ---------------------------------------------------------------------------

class TestRoundDeltaBounded:

    @given(delta=st.floats(min_value=-1.0, max_value=1.0))
    def test_multiple_of_five_in_range(self, delta):
        result = round_delta(delta)
        assert result % 5 == 0
        assert 5 <= result <= 50

    @given(delta=st.floats(min_value=-1.0, max_value=1.0))
    def test_sign_does_not_matter(self, delta):
        assert round_delta(delta) == round_delta(-delta)


# ---------------------------------------------------------------------------
# 2. delta PoP: always in [0, 1]
# ---------------------------------------------------------------------------

class TestDeltaPopBounded:

    @given(legs=verticals(), is_credit=st.booleans())
    def test_pop_in_unit_interval(self, legs, is_credit):
        pop = delta_pop(legs, is_credit)
        assert pop is not None
        assert 0.0 <= pop <= 1.0

    @given(short_deltas=st.lists(deltas, min_size=1, max_size=4))
    def test_credit_pop_clamped_for_deep_shorts(self, short_deltas):
        legs = [Leg(OptionType.PUT, Side.SELL, 100.0, 1.0, delta=d) for d in short_deltas]
        pop = delta_pop(legs, is_credit=True)
        assert pop == pytest.approx(max(0.0, 1.0 - sum(short_deltas)))


# ---------------------------------------------------------------------------
# 3. Max loss of a vertical is never smaller than any sampled loss
# ---------------------------------------------------------------------------

class TestMaxLossDominatesCurve:

    @given(legs=verticals(), spot=st.floats(min_value=5.0, max_value=500.0))
    def test_analytic_covers_sampled_curve(self, legs, spot):
        card = build_card(StrategyName.CUSTOM, "", legs, '2026-12-04', 30, spot, False)
        worst_sampled = min(p.pnl for p in card.pnl_points)
        assert card.max_loss >= -worst_sampled - 0.01

    @given(legs=verticals())
    def test_vertical_loss_bounded_by_width(self, legs):
        width = abs(legs[1].strike - legs[0].strike)
        premium = legs[0].price + legs[1].price
        assert analytic_max_loss(legs) <= (width + premium) * 100 + 0.01

    @given(legs=verticals(), spot=st.floats(min_value=5.0, max_value=500.0))
    def test_breakevens_inside_domain(self, legs, spot):
        card = build_card(StrategyName.CUSTOM, "", legs, '2026-12-04', 30, spot, False)
        lo, hi = payoff_domain(legs, spot)
        for be in card.breakevens:
            assert lo - 0.01 <= be <= hi + 0.01


# ---------------------------------------------------------------------------
# 4. Volatility-adjusted PoP: always in [0, 1]
# ---------------------------------------------------------------------------

class TestHvPopBounded:

    @given(
        put_strike=st.integers(min_value=50, max_value=99),
        call_strike=st.integers(min_value=101, max_value=150),
        hv=st.floats(min_value=0.01, max_value=3.0),
        dte=st.integers(min_value=0, max_value=730),
    )
    def test_strangle_pop_bounded(self, put_strike, call_strike, hv, dte):
        legs = [
            Leg(OptionType.PUT, Side.SELL, float(put_strike), 1.0, delta=0.2),
            Leg(OptionType.CALL, Side.SELL, float(call_strike), 1.0, delta=-0.2),
        ]
        card = build_card(StrategyName.SHORT_STRANGLE, "", legs, '2026-12-04', dte, 100.0, True)
        pop = hv_adjusted_pop(card, 100.0, hv, dte)
        assert 0.0 <= pop <= 1.0


# ---------------------------------------------------------------------------
# 5. Ranking: a stable permutation, descending by score
# ---------------------------------------------------------------------------

class TestRankingProperties:

    @given(scores=st.lists(st.integers(min_value=-5, max_value=5), min_size=0, max_size=12))
    def test_descending_permutation(self, scores):
        items = list(enumerate(scores))
        ranked = rank_candidates(items, lambda item: item[1])
        assert sorted(ranked) == sorted(items)
        assert all(a[1] >= b[1] for a, b in zip(ranked, ranked[1:]))
        # equal scores keep input order
        for a, b in zip(ranked, ranked[1:]):
            if a[1] == b[1]:
                assert a[0] < b[0]

    @given(n=st.integers(min_value=0, max_value=26))
    def test_relabel_sequence(self, n):
        legs = [Leg(OptionType.CALL, Side.BUY, 100.0, 1.0, delta=0.5)]
        card = build_card(StrategyName.CUSTOM, "?", legs, "2026-12-04", 30, 100.0, False)
        cards = [replace(card) for _ in range(n)]
        labels = [c.label for c in relabel(cards)]
        assert labels == [chr(ord('A') + i) for i in range(n)]


# ---------------------------------------------------------------------------
# 6. Response coercion never raises
# ---------------------------------------------------------------------------

class TestCoercionTotal:

    @given(value=st.one_of(
        st.none(), st.booleans(), st.integers(), st.floats(allow_nan=True),
        st.text(max_size=12), st.lists(st.integers(), max_size=3),
    ))
    def test_to_float_never_nan(self, value):
        result = _to_float(value)
        assert isinstance(result, float)
        assert not math.isnan(result)

    @given(reason=st.one_of(st.none(), st.text(max_size=30)))
    def test_exit_reason_total(self, reason):
        assert map_exit_reason(reason) in set(ExitReason)

    @given(reason=st.text(max_size=20))
    def test_profit_wins_over_other_keywords(self, reason):
        assert map_exit_reason('profit ' + reason) == ExitReason.PROFIT_TARGET


# ---------------------------------------------------------------------------
# 7. Exactly one of net credit / net debit, consistent with leg cash flows
# ---------------------------------------------------------------------------

class TestCreditDebitExclusive:

    @given(legs=verticals(), spot=st.floats(min_value=5.0, max_value=500.0))
    def test_exactly_one_premium_field(self, legs, spot):
        card = build_card(StrategyName.CUSTOM, "", legs, '2026-12-04', 30, spot, False)
        assert (card.net_credit is None) != (card.net_debit is None)
        cash_flow = sum(leg.cash_flow for leg in legs)
        if card.net_credit is not None:
            assert card.net_credit == pytest.approx(round(cash_flow, 2))
        else:
            assert card.net_debit == pytest.approx(round(-cash_flow, 2))
