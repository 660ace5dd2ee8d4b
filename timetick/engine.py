"""
engine.py - TimeTick Engine

One method per public operation of the time token. Every mutating method
builds a PendingTransaction with the matching compute_* function, executes it
on the ledger, and returns the events it emitted.

Precondition failures raise the LedgerError subclass named by the compute
function before anything reaches the ledger. A transaction the ledger still
rejects raises LedgerError; either way no state changes.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any, Optional, Tuple

from .core import (
    Move, PendingTransaction, ExecuteResult, OriginType, TransactionOrigin,
    LedgerError, InsufficientBalance, SYSTEM_WALLET,
    build_transaction,
)
from .ledger import Ledger
from .units.time_token import (
    DistributionSplit,
    STAKER_SPLIT, NO_STAKER_SPLIT,
    DEFAULT_BATCH_INTERVAL, DEFAULT_EMISSION_RATE, DEFAULT_STAKE_UNIT,
    DEFAULT_UNSTAKE_DELAY, DEFAULT_RENEWAL_PERIOD, DEFAULT_MINIMUM_STAKE_UNITS,
    create_time_token_unit, load_time_token,
    compute_set_minimum_stake_units, compute_toggle_minting, compute_toggle_staking,
)
from .units.stake_registry import (
    StakerInfo, NetworkStats,
    compute_stake, compute_request_unstake, compute_cancel_unstake,
    compute_unstake, compute_renew_stake,
    get_staker_info, get_network_stats,
)
from .units.rewards import compute_claim_rewards
from .units.emission import compute_mint_batch
from .units.supply import SupplyReport, validate_supply, compute_mint_batch_validated


Events = Tuple[Any, ...]


class TimeTickEngine:
    """
    Operation surface of one time token on one ledger.

    Example:
        ledger = Ledger("main", initial_time=datetime(2025, 1, 1))
        engine = TimeTickEngine.deploy(ledger, "TIME")
        ledger.advance_time(datetime(2025, 1, 1, 2))
        engine.mint_batch()
        ledger.get_balance("treasury", "TIME")  # Decimal("5040")
    """

    def __init__(self, ledger: Ledger, symbol: str):
        self.ledger = ledger
        self.symbol = symbol
        self.verbose = ledger.verbose

    @classmethod
    def deploy(
        cls,
        ledger: Ledger,
        symbol: str = "TIME",
        name: str = "Time Token",
        treasury_wallet: str = "treasury",
        reserve_wallet: str = "reserve",
        custody_wallet: str = "custody",
        owner_wallet: str = "owner",
        batch_interval: int = DEFAULT_BATCH_INTERVAL,
        emission_rate: Decimal = DEFAULT_EMISSION_RATE,
        stake_unit: Decimal = DEFAULT_STAKE_UNIT,
        unstake_delay: int = DEFAULT_UNSTAKE_DELAY,
        renewal_period: int = DEFAULT_RENEWAL_PERIOD,
        minimum_stake_units: int = DEFAULT_MINIMUM_STAKE_UNITS,
        staker_split: DistributionSplit = STAKER_SPLIT,
        no_staker_split: DistributionSplit = NO_STAKER_SPLIT,
    ) -> TimeTickEngine:
        """
        Register a new time token with genesis at the ledger's current time.

        Fund and owner wallets are registered if the ledger does not know
        them yet.
        """
        unit = create_time_token_unit(
            symbol=symbol,
            name=name,
            genesis_time=ledger.current_time,
            treasury_wallet=treasury_wallet,
            reserve_wallet=reserve_wallet,
            custody_wallet=custody_wallet,
            owner_wallet=owner_wallet,
            batch_interval=batch_interval,
            emission_rate=emission_rate,
            stake_unit=stake_unit,
            unstake_delay=unstake_delay,
            renewal_period=renewal_period,
            minimum_stake_units=minimum_stake_units,
            staker_split=staker_split,
            no_staker_split=no_staker_split,
        )
        for wallet in (treasury_wallet, reserve_wallet, custody_wallet, owner_wallet):
            if not ledger.is_registered(wallet):
                ledger.register_wallet(wallet)
        ledger.register_unit(unit)
        return cls(ledger, symbol)

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def _submit(self, pending: PendingTransaction) -> Events:
        if pending.is_empty():
            return ()
        result = self.ledger.execute(pending)
        if result != ExecuteResult.APPLIED:
            raise LedgerError(
                f"{pending.origin.event_type or 'transaction'} on {self.symbol} "
                f"was not applied: {result.value}"
            )
        if self.verbose:
            for event in pending.events:
                print(f"  ↳ {event!r}")
        return pending.events

    # ========================================================================
    # EMISSION
    # ========================================================================

    def mint_batch(self) -> Events:
        return self._submit(compute_mint_batch(self.ledger, self.symbol))

    def mint_batch_validated(self) -> Events:
        return self._submit(compute_mint_batch_validated(self.ledger, self.symbol))

    def validate_supply(self) -> SupplyReport:
        return validate_supply(self.ledger, self.symbol)

    # ========================================================================
    # STAKING
    # ========================================================================

    def stake(self, account: str, amount: Decimal) -> Events:
        return self._submit(compute_stake(self.ledger, self.symbol, account, amount))

    def request_unstake(self, account: str, amount: Optional[Decimal] = None) -> Events:
        return self._submit(compute_request_unstake(self.ledger, self.symbol, account, amount))

    def cancel_unstake(self, account: str) -> Events:
        return self._submit(compute_cancel_unstake(self.ledger, self.symbol, account))

    def unstake(self, account: str) -> Events:
        return self._submit(compute_unstake(self.ledger, self.symbol, account))

    def renew_stake(self, account: str) -> Events:
        return self._submit(compute_renew_stake(self.ledger, self.symbol, account))

    def claim_rewards(self, account: str) -> Events:
        return self._submit(compute_claim_rewards(self.ledger, self.symbol, account))

    # ========================================================================
    # GOVERNANCE
    # ========================================================================

    def set_minimum_stake_units(self, caller: str, units: int) -> Events:
        return self._submit(
            compute_set_minimum_stake_units(self.ledger, self.symbol, caller, units)
        )

    def toggle_minting(self, caller: str) -> Events:
        return self._submit(compute_toggle_minting(self.ledger, self.symbol, caller))

    def toggle_staking(self, caller: str) -> Events:
        return self._submit(compute_toggle_staking(self.ledger, self.symbol, caller))

    # ========================================================================
    # TRANSFERS AND QUERIES
    # ========================================================================

    def transfer(self, source: str, dest: str, amount: Decimal) -> None:
        """
        Plain token transfer between two wallets.

        Raises:
            InsufficientBalance: If source holds less than amount
            ValueError: If amount is not positive, or source is SYSTEM_WALLET
                        or the custody wallet
        """
        if not isinstance(amount, Decimal):
            amount = Decimal(str(amount))
        if amount <= 0:
            raise ValueError(f"transfer amount must be positive, got {amount}")
        if source == SYSTEM_WALLET:
            raise ValueError("issuance only happens through batches")
        terms, _ = load_time_token(self.ledger, self.symbol)
        if source == terms.custody_wallet:
            raise ValueError("custody balances only leave through unstake, expiry or claims")
        balance = self.ledger.get_balance(source, self.symbol)
        if balance < amount:
            raise InsufficientBalance(
                f"{source} has {balance} {self.symbol}, cannot transfer {amount}"
            )
        # Sequence number keeps identical transfers from colliding on intent_id
        contract_id = f"transfer_{self.symbol}_{len(self.ledger.transaction_log)}"
        origin = TransactionOrigin(
            OriginType.USER_ACTION, source, unit_symbol=self.symbol, event_type="TRANSFER"
        )
        pending = build_transaction(
            self.ledger, [Move(amount, self.symbol, source, dest, contract_id)], origin=origin
        )
        self._submit(pending)

    def balance_of(self, wallet: str) -> Decimal:
        return self.ledger.get_balance(wallet, self.symbol)

    def total_issued(self) -> Decimal:
        return self.ledger.total_issued(self.symbol)

    def get_staker_info(self, account: str) -> StakerInfo:
        return get_staker_info(self.ledger, self.symbol, account)

    def get_network_stats(self) -> NetworkStats:
        return get_network_stats(self.ledger, self.symbol)
