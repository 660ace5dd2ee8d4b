"""
test_time_token.py - Unit tests for the time token unit

Tests:
- create_time_token_unit() defaults and parameter validation
- load_time_token() / to_state_dict() adapters
- TimeTokenState record helpers
- TimeTickEngine.deploy() and plain transfers
"""

import pytest
from decimal import Decimal

from timetick import (
    DistributionSplit, StakerRecord, TimeTokenState, TimeTickEngine,
    InsufficientBalance, SYSTEM_WALLET, UNIT_TYPE_TIME_TOKEN, TOKEN_DECIMALS,
    STAKER_SPLIT, NO_STAKER_SPLIT,
    DEFAULT_BATCH_INTERVAL, DEFAULT_STAKE_UNIT, DEFAULT_UNSTAKE_DELAY, DEFAULT_RENEWAL_PERIOD,
    create_time_token_unit, load_time_token, to_state_dict, emission_transfer_rule,
)
from tests.fake_view import FakeView
from tests.conftest import GENESIS, SYMBOL, at, fund_account


WALLETS = dict(
    treasury_wallet="treasury",
    reserve_wallet="reserve",
    custody_wallet="custody",
    owner_wallet="owner",
)


# ============================================================================
# CREATE TIME TOKEN UNIT
# ============================================================================

class TestCreateTimeTokenUnit:

    def test_defaults(self):
        unit = create_time_token_unit("TIME", "Time Token", GENESIS, **WALLETS)

        assert unit.symbol == "TIME"
        assert unit.unit_type == UNIT_TYPE_TIME_TOKEN
        assert unit.min_balance == Decimal("0")
        assert unit.decimal_places == TOKEN_DECIMALS
        assert unit.transfer_rule is emission_transfer_rule

        state = unit.state
        assert state['genesis_time'] == GENESIS
        assert state['last_batch_time'] == GENESIS
        assert state['batch_interval'] == DEFAULT_BATCH_INTERVAL
        assert state['emission_rate'] == Decimal("1")
        assert state['stake_unit'] == DEFAULT_STAKE_UNIT
        assert state['unstake_delay'] == DEFAULT_UNSTAKE_DELAY
        assert state['renewal_period'] == DEFAULT_RENEWAL_PERIOD
        assert state['minimum_stake_units'] == 1
        assert state['minting_enabled'] is True
        assert state['staking_enabled'] is True
        assert state['stakers'] == {}
        assert state['total_staked'] == Decimal("0")
        assert state['staker_count'] == 0

    @pytest.mark.parametrize("kwargs", [
        {'batch_interval': 0},
        {'batch_interval': 1.5},
        {'unstake_delay': -1},
        {'renewal_period': 0},
        {'minimum_stake_units': 0},
        {'emission_rate': Decimal("0")},
        {'emission_rate': Decimal("1e-19")},
        {'stake_unit': Decimal("-3600")},
        {'decimals': -1},
    ])
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ValueError):
            create_time_token_unit("TIME", "Time Token", GENESIS, **WALLETS, **kwargs)

    def test_empty_symbol(self):
        with pytest.raises(ValueError):
            create_time_token_unit(" ", "Time Token", GENESIS, **WALLETS)

    def test_no_staker_split_cannot_pay_timekeepers(self):
        with pytest.raises(ValueError, match="timekeepers"):
            create_time_token_unit(
                "TIME", "Time Token", GENESIS, **WALLETS, no_staker_split=STAKER_SPLIT,
            )

    def test_fund_wallets_must_differ(self):
        with pytest.raises(ValueError, match="different"):
            create_time_token_unit(
                "TIME", "Time Token", GENESIS, **{**WALLETS, 'reserve_wallet': "treasury"},
            )

    def test_system_wallet_not_a_fund(self):
        with pytest.raises(ValueError):
            create_time_token_unit(
                "TIME", "Time Token", GENESIS, **{**WALLETS, 'treasury_wallet': SYSTEM_WALLET},
            )

    def test_owner_cannot_be_custody(self):
        with pytest.raises(ValueError):
            create_time_token_unit(
                "TIME", "Time Token", GENESIS, **{**WALLETS, 'owner_wallet': "custody"},
            )

    def test_custom_split(self):
        split = DistributionSplit(Decimal("0.5"), Decimal("0.1"), Decimal("0.4"))
        unit = create_time_token_unit("TIME", "Time Token", GENESIS, **WALLETS, staker_split=split)
        assert DistributionSplit.from_dict(unit.state['staker_split']) == split


# ============================================================================
# ADAPTERS
# ============================================================================

class TestAdapters:

    def test_load_and_dump_roundtrip(self):
        unit = create_time_token_unit("TIME", "Time Token", GENESIS, **WALLETS)
        view = FakeView(balances={}, states={"TIME": unit.state}, time=GENESIS)
        terms, state = load_time_token(view, "TIME")

        assert terms.treasury_wallet == "treasury"
        assert terms.staker_split == STAKER_SPLIT
        assert terms.no_staker_split == NO_STAKER_SPLIT
        assert to_state_dict(terms, state) == unit.state

    def test_records_roundtrip(self):
        unit = create_time_token_unit("TIME", "Time Token", GENESIS, **WALLETS)
        view = FakeView(balances={}, states={"TIME": unit.state}, time=GENESIS)
        terms, state = load_time_token(view, "TIME")
        record = StakerRecord(
            staked_amount=Decimal("7200"), staked_units=2,
            last_stake_time=GENESIS, last_renewal_time=GENESIS,
            unclaimed_rewards=Decimal("1.5"),
        )
        state = state.with_record("alice", record)

        reloaded_view = FakeView(balances={}, states={"TIME": to_state_dict(terms, state)}, time=GENESIS)
        _, reloaded = load_time_token(reloaded_view, "TIME")
        assert reloaded.stakers == {"alice": record}


class TestTimeTokenState:

    def test_with_record_drops_empty_records(self):
        state = TimeTokenState(
            last_batch_time=GENESIS, minimum_stake_units=1,
            minting_enabled=True, staking_enabled=True,
        )
        state = state.with_record("alice", StakerRecord(unclaimed_rewards=Decimal("1")))
        assert "alice" in state.stakers
        state = state.with_record("alice", StakerRecord())
        assert "alice" not in state.stakers

    def test_record_defaults_for_unknown_account(self):
        state = TimeTokenState(
            last_batch_time=GENESIS, minimum_stake_units=1,
            minting_enabled=True, staking_enabled=True,
        )
        assert state.record("nobody") == StakerRecord()
        assert state.record("nobody").is_empty

    def test_totals(self):
        state = TimeTokenState(
            last_batch_time=GENESIS, minimum_stake_units=1,
            minting_enabled=True, staking_enabled=True,
            stakers={
                "a": StakerRecord(staked_amount=Decimal("3600"), staked_units=1, unclaimed_rewards=Decimal("2")),
                "b": StakerRecord(unclaimed_rewards=Decimal("3")),
            },
        )
        assert set(state.active_stakers) == {"a"}
        assert state.total_unclaimed == Decimal("5")


# ============================================================================
# DEPLOY AND TRANSFER
# ============================================================================

class TestDeployAndTransfer:

    def test_deploy_uses_ledger_clock_as_genesis(self, ledger):
        ledger.advance_time(at(42))
        engine = TimeTickEngine.deploy(ledger, "TICK")
        assert engine.get_network_stats().genesis_time == at(42)

    def test_deploy_reuses_registered_wallets(self, ledger):
        ledger.register_wallet("treasury")
        TimeTickEngine.deploy(ledger, SYMBOL)
        assert ledger.is_registered("custody")

    def test_transfer(self, funded_engine):
        funded_engine.transfer("alice", "bob", Decimal("100"))
        assert funded_engine.balance_of("alice") == Decimal("35900")
        assert funded_engine.balance_of("bob") == Decimal("36100")

    def test_identical_transfers_both_apply(self, funded_engine):
        funded_engine.transfer("alice", "bob", Decimal("100"))
        funded_engine.transfer("alice", "bob", Decimal("100"))
        assert funded_engine.balance_of("bob") == Decimal("36200")

    def test_transfer_insufficient(self, funded_engine):
        with pytest.raises(InsufficientBalance):
            funded_engine.transfer("alice", "bob", Decimal("36001"))

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1")])
    def test_transfer_non_positive(self, funded_engine, amount):
        with pytest.raises(ValueError):
            funded_engine.transfer("alice", "bob", amount)

    def test_transfer_from_system_or_custody(self, funded_engine):
        funded_engine.stake("alice", Decimal("3600"))
        with pytest.raises(ValueError):
            funded_engine.transfer(SYSTEM_WALLET, "bob", Decimal("1"))
        with pytest.raises(ValueError):
            funded_engine.transfer("custody", "bob", Decimal("1"))

    def test_fund_account_helper(self, funded_engine):
        fund_account(funded_engine, "dave", Decimal("10"))
        assert funded_engine.balance_of("dave") == Decimal("10")
