"""
conftest.py - Shared pytest fixtures for timetick tests

Provides common fixtures used across unit, functional and conformance tests:
- Empty ledgers at a fixed genesis time
- A deployed time token
- A funded token whose treasury has paid out balances to test accounts
- Comparison utilities
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Tuple

from timetick import (
    Ledger,
    TimeTickEngine,
    LifecycleEngine,
    SYSTEM_WALLET,
    load_time_token,
)


GENESIS = datetime(2025, 1, 1)
SYMBOL = "TIME"

# Clock position of the funded_engine fixture: one 10-day batch after genesis
FUNDED_AT = GENESIS + timedelta(days=10)
ACCOUNT_FUNDING = Decimal("36000")  # 10 stake units each


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def at(seconds: float) -> datetime:
    """Genesis plus a number of seconds."""
    return GENESIS + timedelta(seconds=seconds)


def fund_account(engine: TimeTickEngine, account: str, amount: Decimal) -> None:
    """Register account if needed and pay it amount out of the treasury."""
    if not engine.ledger.is_registered(account):
        engine.ledger.register_wallet(account)
    engine.transfer("treasury", account, amount)


def custody_matches_obligations(ledger: Ledger, symbol: str = SYMBOL) -> Tuple[bool, Dict[str, Decimal]]:
    """
    Check that custody holds exactly what it owes.

    Returns:
        (matches, breakdown)
    """
    terms, state = load_time_token(ledger, symbol)
    custody = ledger.get_balance(terms.custody_wallet, symbol)
    owed = state.total_staked + state.total_unclaimed + state.undistributed_remainder
    return custody == owed, {
        'custody': custody,
        'total_staked': state.total_staked,
        'total_unclaimed': state.total_unclaimed,
        'undistributed_remainder': state.undistributed_remainder,
    }


def issued_equals_holdings(ledger: Ledger, symbol: str = SYMBOL) -> bool:
    """Issued supply equals the sum of every non-system balance."""
    holdings = sum(
        (ledger.get_balance(w, symbol) for w in sorted(ledger.list_wallets()) if w != SYSTEM_WALLET),
        Decimal("0"),
    )
    return ledger.total_issued(symbol) == holdings


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def ledger():
    """Fresh ledger at genesis with no units."""
    return Ledger("test", initial_time=GENESIS, verbose=False, test_mode=True)


@pytest.fixture
def engine(ledger):
    """Time token deployed at genesis with default parameters."""
    return TimeTickEngine.deploy(ledger, SYMBOL)


@pytest.fixture
def funded_engine(engine):
    """
    Deployed token after one 10-day batch, with alice, bob and charlie each
    holding 36000 paid out of the treasury. Clock at FUNDED_AT.
    """
    engine.ledger.advance_time(FUNDED_AT)
    engine.mint_batch()
    for account in ("alice", "bob", "charlie"):
        fund_account(engine, account, ACCOUNT_FUNDING)
    return engine


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def lifecycle(engine):
    """LifecycleEngine over the deployed token's ledger."""
    return LifecycleEngine(engine.ledger), engine
