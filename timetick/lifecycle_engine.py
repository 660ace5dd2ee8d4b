"""
lifecycle_engine.py - Lifecycle Engine

Moves the ledger clock forward and asks each token's contract whether it
has work due, such as a batch whose interval has elapsed.

One step(timestamp):
1. ledger.advance_time(timestamp)
2. For each registered unit (by symbol) with a contract for its type,
   execute whatever non-empty transaction the contract returns
3. Poll again while the previous pass executed something

Executed transactions land in the ledger's transaction_log; the engine
keeps no bookkeeping of its own.
"""

from __future__ import annotations
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .core import (
    PendingTransaction, Transaction, ExecuteResult, LedgerError,
    SmartContract, UNIT_TYPE_TIME_TOKEN,
)
from .ledger import Ledger
from .units.emission import time_token_contract


def default_contracts() -> Dict[str, SmartContract]:
    """unit_type -> contract for the token types in this package."""
    return {UNIT_TYPE_TIME_TOKEN: time_token_contract}


def _poll(contract, view: Ledger, symbol: str, timestamp: datetime) -> PendingTransaction:
    check = getattr(contract, 'check_lifecycle', contract)
    pending = check(view, symbol, timestamp)
    if not isinstance(pending, PendingTransaction):
        raise LedgerError(
            f"Contract for {symbol} returned {type(pending).__name__}, expected PendingTransaction"
        )
    return pending


class LifecycleEngine:
    """
    Drives unit contracts as time passes.

    Example:
        engine = LifecycleEngine(ledger)
        engine.run([genesis + timedelta(hours=h) for h in range(1, 25)])
    """

    def __init__(
        self,
        ledger: Ledger,
        contracts: Optional[Dict[str, SmartContract]] = None,
    ):
        self.ledger = ledger
        self.contracts: Dict[str, SmartContract] = (
            default_contracts() if contracts is None else contracts
        )
        # Upper bound on re-polling within one step
        self.max_passes = 10
        self.verbose = ledger.verbose

    def register(self, unit_type: str, contract: SmartContract) -> None:
        """Use contract (a callable or an object with check_lifecycle) for unit_type."""
        self.contracts[unit_type] = contract

    def step(self, timestamp: datetime) -> List[Transaction]:
        """
        Advance to timestamp and execute everything that is due.

        Returns:
            The transactions applied during this step, in order

        Raises:
            LedgerError: A contract returned something other than a
                PendingTransaction, or the ledger rejected its transaction
        """
        self.ledger.advance_time(timestamp)
        applied: List[Transaction] = []
        for _ in range(self.max_passes):
            this_pass = self._run_contracts(timestamp)
            if not this_pass:
                break
            applied += this_pass
        return applied

    def _run_contracts(self, timestamp: datetime) -> List[Transaction]:
        applied: List[Transaction] = []
        for symbol, unit in sorted(self.ledger.units.items()):
            contract = self.contracts.get(unit.unit_type)
            if contract is None:
                continue

            pending = _poll(contract, self.ledger, symbol, timestamp)
            if pending.is_empty():
                continue

            if self.verbose:
                print(f"[LIFECYCLE] {symbol}: {pending.origin.event_type}")

            result = self.ledger.execute(pending)
            if result == ExecuteResult.REJECTED:
                raise LedgerError(f"Lifecycle transaction for {symbol} was rejected by the ledger")
            if result == ExecuteResult.APPLIED:
                applied.append(self.ledger.transaction_log[-1])
        return applied

    def run(self, timestamps: Iterable[datetime]) -> List[Transaction]:
        """step() through each timestamp; returns all applied transactions."""
        applied: List[Transaction] = []
        for timestamp in timestamps:
            applied.extend(self.step(timestamp))
        return applied
