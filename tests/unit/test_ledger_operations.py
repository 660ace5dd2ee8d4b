"""
test_ledger_operations.py - Unit tests for Ledger registration, clock and execution

Tests:
- Wallet and unit registration
- Logical clock moves forward only
- set_balance() restricted to test mode
- execute(): validation, rejection reasons, idempotency, event log
- Read-only queries (balances, positions, supply)
- clone() independence
"""

import pytest
from decimal import Decimal

from timetick import (
    Ledger, Move, Unit, ExecuteResult, LedgerError,
    WalletNotRegistered, UnitNotRegistered,
    TransactionOrigin, OriginType, UnitStateChange, PendingTransaction,
    TokensMinted, SYSTEM_WALLET,
    build_transaction, empty_pending_transaction, compute_mint_batch,
)
from tests.conftest import GENESIS, SYMBOL, at


# ============================================================================
# REGISTRATION
# ============================================================================

class TestRegistration:

    def test_system_wallet_preregistered(self, ledger):
        assert ledger.is_registered(SYSTEM_WALLET)

    def test_register_wallet(self, ledger):
        ledger.register_wallet("alice")
        assert "alice" in ledger.list_wallets()

    def test_duplicate_wallet_rejected(self, ledger):
        ledger.register_wallet("alice")
        with pytest.raises(ValueError, match="already registered"):
            ledger.register_wallet("alice")

    def test_duplicate_unit_rejected(self, engine):
        with pytest.raises(ValueError, match="already registered"):
            engine.ledger.register_unit(engine.ledger.get_unit(SYMBOL))

    def test_deploy_registers_fund_wallets(self, engine):
        for wallet in ("treasury", "reserve", "custody", "owner"):
            assert engine.ledger.is_registered(wallet)
        assert engine.ledger.list_units() == [SYMBOL]

    def test_get_balance_unregistered_wallet(self, engine):
        with pytest.raises(WalletNotRegistered):
            engine.ledger.get_balance("nobody", SYMBOL)

    def test_get_balance_unregistered_unit(self, ledger):
        with pytest.raises(UnitNotRegistered):
            ledger.get_balance(SYSTEM_WALLET, "NOPE")

    def test_get_unit_state_unregistered(self, ledger):
        with pytest.raises(UnitNotRegistered):
            ledger.get_unit_state("NOPE")


# ============================================================================
# CLOCK
# ============================================================================

class TestClock:

    def test_default_initial_time(self):
        ledger = Ledger("t", verbose=False)
        assert ledger.current_time.year == 1970

    def test_advance_time(self, ledger):
        ledger.advance_time(at(60))
        assert ledger.current_time == at(60)

    def test_advance_to_same_time_allowed(self, ledger):
        ledger.advance_time(GENESIS)
        assert ledger.current_time == GENESIS

    def test_time_cannot_move_backwards(self, ledger):
        ledger.advance_time(at(60))
        with pytest.raises(ValueError, match="backwards"):
            ledger.advance_time(at(30))


# ============================================================================
# TEST MODE
# ============================================================================

class TestSetBalance:

    def test_set_balance_in_test_mode(self, engine):
        engine.ledger.register_wallet("alice")
        engine.ledger.set_balance("alice", SYMBOL, Decimal("5"))
        assert engine.balance_of("alice") == Decimal("5")
        assert engine.ledger.get_positions(SYMBOL) == {"alice": Decimal("5")}

    def test_set_balance_disabled_in_production(self):
        ledger = Ledger("prod", initial_time=GENESIS, verbose=False)
        with pytest.raises(LedgerError, match="disabled"):
            ledger.set_balance(SYSTEM_WALLET, SYMBOL, Decimal("1"))


# ============================================================================
# EXECUTE
# ============================================================================

class TestExecute:

    def test_empty_pending_is_applied_without_logging(self, engine):
        result = engine.ledger.execute(empty_pending_transaction(engine.ledger))
        assert result == ExecuteResult.APPLIED
        assert engine.ledger.transaction_log == []

    def test_mint_applies_moves_state_and_events(self, engine):
        ledger = engine.ledger
        ledger.advance_time(at(3600))
        pending = compute_mint_batch(ledger, SYMBOL)

        assert ledger.execute(pending) == ExecuteResult.APPLIED

        tx = ledger.transaction_log[-1]
        assert tx.intent_id == pending.intent_id
        assert tx.sequence_number == 0
        assert tx.exec_id.startswith("exec:test:000000000000:")
        assert tx.events == pending.events
        assert list(ledger.event_log) == list(pending.events)
        assert ledger.get_unit_state(SYMBOL)['last_batch_time'] == at(3600)

    def test_duplicate_intent_already_applied(self, engine):
        ledger = engine.ledger
        ledger.advance_time(at(3600))
        pending = compute_mint_batch(ledger, SYMBOL)

        assert ledger.execute(pending) == ExecuteResult.APPLIED
        assert ledger.execute(pending) == ExecuteResult.ALREADY_APPLIED
        assert ledger.total_issued(SYMBOL) == Decimal("3600")
        assert len(ledger.transaction_log) == 1

    def test_unregistered_wallet_rejected(self, engine):
        ledger = engine.ledger
        ledger.register_wallet("alice")
        ledger.set_balance("alice", SYMBOL, Decimal("10"))
        pending = build_transaction(ledger, [Move(Decimal("1"), SYMBOL, "alice", "ghost", "pay")])
        assert ledger.execute(pending) == ExecuteResult.REJECTED

    def test_overdraft_rejected(self, engine):
        ledger = engine.ledger
        ledger.register_wallet("alice")
        ledger.register_wallet("bob")
        pending = build_transaction(ledger, [Move(Decimal("1"), SYMBOL, "alice", "bob", "pay")])
        assert ledger.execute(pending) == ExecuteResult.REJECTED
        assert ledger.get_balance("bob", SYMBOL) == Decimal("0")

    def test_balance_checked_on_net_change(self, engine):
        """An inbound move in the same transaction covers an outbound one."""
        ledger = engine.ledger
        for w in ("alice", "bob", "carol"):
            ledger.register_wallet(w)
        ledger.set_balance("bob", SYMBOL, Decimal("5"))
        pending = build_transaction(ledger, [
            Move(Decimal("5"), SYMBOL, "bob", "alice", "leg1"),
            Move(Decimal("5"), SYMBOL, "alice", "carol", "leg2"),
        ])
        assert ledger.execute(pending) == ExecuteResult.APPLIED
        assert ledger.get_balance("carol", SYMBOL) == Decimal("5")
        assert ledger.get_balance("alice", SYMBOL) == Decimal("0")

    def test_direct_issuance_to_user_rejected(self, engine):
        ledger = engine.ledger
        ledger.register_wallet("alice")
        pending = build_transaction(ledger, [Move(Decimal("1"), SYMBOL, SYSTEM_WALLET, "alice", "gift")])
        assert ledger.execute(pending) == ExecuteResult.REJECTED
        assert ledger.total_issued(SYMBOL) == Decimal("0")

    def test_burn_rejected(self, engine):
        ledger = engine.ledger
        ledger.advance_time(at(3600))
        engine.mint_batch()
        pending = build_transaction(ledger, [Move(Decimal("1"), SYMBOL, "treasury", SYSTEM_WALLET, "burn")])
        assert ledger.execute(pending) == ExecuteResult.REJECTED
        assert ledger.total_issued(SYMBOL) == Decimal("3600")

    def test_stale_state_rejected(self, engine):
        ledger = engine.ledger
        ledger.advance_time(at(3600))
        stale = compute_mint_batch(ledger, SYMBOL)
        ledger.advance_time(at(3700))
        engine.mint_batch()

        assert ledger.execute(stale) == ExecuteResult.REJECTED
        assert ledger.total_issued(SYMBOL) == Decimal("3700")

    def test_future_timestamp_rejected(self, engine):
        ledger = engine.ledger
        ahead = ledger.clone()
        ahead.advance_time(at(3600))
        pending = compute_mint_batch(ahead, SYMBOL)
        assert ledger.execute(pending) == ExecuteResult.REJECTED

    def test_state_change_for_unknown_unit_rejected(self, ledger):
        origin = TransactionOrigin(OriginType.SYSTEM, "test")
        pending = PendingTransaction(
            (), (UnitStateChange("NOPE", None, {'x': 1}),), origin, GENESIS
        )
        assert ledger.execute(pending) == ExecuteResult.REJECTED

    def test_events_only_transaction(self, ledger):
        origin = TransactionOrigin(OriginType.SYSTEM, "test")
        pending = PendingTransaction((), (), origin, GENESIS, events=(TokensMinted(Decimal("0"), False),))
        assert ledger.execute(pending) == ExecuteResult.APPLIED
        assert ledger.event_log == [TokensMinted(Decimal("0"), False)]


# ============================================================================
# QUERIES
# ============================================================================

class TestQueries:

    def test_supply_views_after_mint(self, engine):
        ledger = engine.ledger
        ledger.advance_time(at(7200))
        engine.mint_batch()

        assert ledger.total_issued(SYMBOL) == Decimal("7200")
        assert ledger.total_supply(SYMBOL) == Decimal("0")
        assert ledger.get_balance(SYSTEM_WALLET, SYMBOL) == Decimal("-7200")
        assert ledger.get_positions(SYMBOL) == {
            SYSTEM_WALLET: Decimal("-7200"),
            "treasury": Decimal("5040"),
            "reserve": Decimal("2160"),
        }

    def test_total_issued_starts_at_positive_zero(self, engine):
        issued = engine.ledger.total_issued(SYMBOL)
        assert issued == 0
        assert not issued.is_signed()

    def test_verify_double_entry(self, engine):
        ledger = engine.ledger
        ledger.advance_time(at(7200))
        engine.mint_batch()

        result = ledger.verify_double_entry(expected_supplies={SYMBOL: Decimal("0")})
        assert result['valid']
        assert result['supplies'] == {SYMBOL: Decimal("0")}

    def test_verify_double_entry_reports_discrepancy(self, engine):
        ledger = engine.ledger
        ledger.register_wallet("alice")
        ledger.set_balance("alice", SYMBOL, Decimal("5"))

        result = ledger.verify_double_entry(expected_supplies={SYMBOL: Decimal("0"), "GHOST": Decimal("1")})
        assert not result['valid']
        units = {d['unit'] for d in result['discrepancies']}
        assert units == {SYMBOL, "GHOST"}

    def test_get_wallet_balances(self, engine):
        ledger = engine.ledger
        ledger.advance_time(at(3600))
        engine.mint_batch()
        assert ledger.get_wallet_balances("treasury") == {SYMBOL: Decimal("2520")}


# ============================================================================
# CLONE
# ============================================================================

class TestClone:

    def test_clone_is_independent(self, engine):
        ledger = engine.ledger
        ledger.advance_time(at(3600))
        engine.mint_batch()

        cloned = ledger.clone()
        cloned.advance_time(at(7200))
        cloned.execute(compute_mint_batch(cloned, SYMBOL))

        assert cloned.total_issued(SYMBOL) == Decimal("7200")
        assert ledger.total_issued(SYMBOL) == Decimal("3600")
        assert ledger.current_time == at(3600)
        assert len(ledger.transaction_log) == 1
        assert len(cloned.transaction_log) == 2
        assert len(ledger.event_log) == 3
        assert len(cloned.event_log) == 6

    def test_clone_preserves_seen_intents(self, engine):
        ledger = engine.ledger
        ledger.advance_time(at(3600))
        pending = compute_mint_batch(ledger, SYMBOL)
        ledger.execute(pending)

        cloned = ledger.clone()
        assert cloned.execute(pending) == ExecuteResult.ALREADY_APPLIED
