"""
test_distribution.py - Unit tests for the distribution router

Tests:
- split_amount() exact base-unit splitting
- Floored reserve and timekeeper shares, remainder to treasury
- calculate_distribution() split selection by timekeeper status
- distribution_moves() issuance legs
"""

import pytest
from datetime import datetime
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from timetick import (
    STAKER_SPLIT, NO_STAKER_SPLIT, SYSTEM_WALLET,
    DistributionSplit, Distribution,
    split_amount, calculate_distribution, create_time_token_unit, load_time_token,
)
from timetick.units.distribution import distribution_moves
from tests.fake_view import FakeView


T0 = datetime(2025, 1, 1)


@pytest.fixture
def terms():
    unit = create_time_token_unit(
        "TIME", "Time Token", T0,
        treasury_wallet="treasury", reserve_wallet="reserve",
        custody_wallet="custody", owner_wallet="owner",
    )
    view = FakeView(balances={}, states={"TIME": unit.state}, time=T0)
    terms, _ = load_time_token(view, "TIME")
    return terms


# ============================================================================
# SPLIT AMOUNT
# ============================================================================

class TestSplitAmount:

    def test_no_staker_split(self):
        assert split_amount(Decimal("7200"), NO_STAKER_SPLIT, 18) == (
            Decimal("5040"), Decimal("2160"), Decimal("0")
        )

    def test_staker_split(self):
        assert split_amount(Decimal("3600"), STAKER_SPLIT, 18) == (
            Decimal("720"), Decimal("360"), Decimal("2520")
        )

    def test_floored_shares_remainder_to_treasury(self):
        # 7 * 0.10 = 0.7 -> 0, 7 * 0.70 = 4.9 -> 4, treasury gets 3
        assert split_amount(Decimal("7"), STAKER_SPLIT, 0) == (
            Decimal("3"), Decimal("0"), Decimal("4")
        )

    def test_no_staker_split_integer_token(self):
        # 7 * 0.30 = 2.1 -> 2, treasury gets 5
        assert split_amount(Decimal("7"), NO_STAKER_SPLIT, 0) == (
            Decimal("5"), Decimal("2"), Decimal("0")
        )

    def test_smallest_unit(self):
        assert split_amount(Decimal("1e-18"), STAKER_SPLIT, 18) == (
            Decimal("1e-18"), Decimal("0"), Decimal("0")
        )

    def test_zero(self):
        assert split_amount(Decimal("0"), STAKER_SPLIT, 18) == (
            Decimal("0"), Decimal("0"), Decimal("0")
        )

    def test_custom_split(self):
        split = DistributionSplit(Decimal("0.5"), Decimal("0.25"), Decimal("0.25"))
        assert split_amount(Decimal("100"), split, 2) == (
            Decimal("50"), Decimal("25"), Decimal("25")
        )

    @given(
        base=st.integers(min_value=0, max_value=10 ** 30),
        use_staker_split=st.booleans(),
    )
    @settings(max_examples=200)
    def test_shares_always_sum_to_amount(self, base, use_staker_split):
        amount = Decimal(base).scaleb(-18)
        split = STAKER_SPLIT if use_staker_split else NO_STAKER_SPLIT
        treasury, reserve, timekeepers = split_amount(amount, split, 18)

        assert treasury + reserve + timekeepers == amount
        assert reserve <= amount * split.reserve
        assert timekeepers <= amount * split.timekeepers
        assert treasury >= amount * split.treasury
        assert min(treasury, reserve, timekeepers) >= 0


# ============================================================================
# CALCULATE DISTRIBUTION
# ============================================================================

class TestCalculateDistribution:

    def test_without_timekeepers(self, terms):
        d = calculate_distribution(Decimal("7200"), terms, timekeepers_active=False)
        assert d == Distribution(Decimal("5040"), Decimal("2160"), Decimal("0"), False)
        assert d.total == Decimal("7200")
        assert d.dev_share == Decimal("7200")

    def test_with_timekeepers(self, terms):
        d = calculate_distribution(Decimal("3600"), terms, timekeepers_active=True)
        assert d == Distribution(Decimal("720"), Decimal("360"), Decimal("2520"), True)
        assert d.dev_share == Decimal("1080")

    def test_negative_amount_rejected(self, terms):
        with pytest.raises(ValueError, match="negative"):
            calculate_distribution(Decimal("-1"), terms, timekeepers_active=False)


# ============================================================================
# DISTRIBUTION MOVES
# ============================================================================

class TestDistributionMoves:

    def test_moves_for_each_fund(self, terms):
        d = calculate_distribution(Decimal("3600"), terms, timekeepers_active=True)
        moves = distribution_moves("TIME", terms, d, "mint_batch_TIME")

        assert [(m.source, m.dest, m.quantity) for m in moves] == [
            (SYSTEM_WALLET, "treasury", Decimal("720")),
            (SYSTEM_WALLET, "reserve", Decimal("360")),
            (SYSTEM_WALLET, "custody", Decimal("2520")),
        ]
        assert all(m.contract_id == "mint_batch_TIME" for m in moves)

    def test_zero_timekeeper_share_skipped(self, terms):
        d = calculate_distribution(Decimal("7200"), terms, timekeepers_active=False)
        moves = distribution_moves("TIME", terms, d, "mint_batch_TIME")
        assert [m.dest for m in moves] == ["treasury", "reserve"]

    def test_zero_amount_has_no_moves(self, terms):
        d = calculate_distribution(Decimal("0"), terms, timekeepers_active=True)
        assert distribution_moves("TIME", terms, d, "mint_batch_TIME") == []
