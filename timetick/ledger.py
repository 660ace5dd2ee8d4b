"""
ledger.py - Stateful Double-Entry Balance Ledger

The balance ledger and clock that the time token calls into. Pure functions
read it through the LedgerView protocol; only Ledger.execute() changes it.

What it keeps:
    - wallet balances per unit, SYSTEM_WALLET carrying the negated issuance
    - the registered units and their state dicts
    - a logical clock that never runs backwards
    - the transaction log and the event log, which together are the audit trail

Execution is all-or-nothing. A pending transaction is validated in full, then
its unit state changes are written, then its balance moves, then it is logged.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Set, Optional, Tuple, Any
import copy
from decimal import Decimal

from .core import (
    Move, Transaction, Unit, PendingTransaction, ExecuteResult,
    Positions, UnitState, BalanceMap,
    QUANTITY_EPSILON, SYSTEM_WALLET,
    LedgerError, TransferRuleViolation, UnitNotRegistered, WalletNotRegistered,
    _freeze_state,
)


NetChanges = Dict[Tuple[str, str], Decimal]


def _zero_balances() -> Dict[str, Decimal]:
    return defaultdict(lambda: Decimal("0"))


class Ledger:
    """
    Double-entry balance ledger for time tokens.

    Implements LedgerView, so compute_* functions can be handed the ledger
    itself and still only read from it.

    Every applied transaction is validated first (clock, registration,
    transfer rules, balance limits, prior unit state) and logged after.

    Not thread-safe: give each thread its own Ledger.

    Example:
        ledger = Ledger("main")
        engine = TimeTickEngine.deploy(ledger, "TIME")
        ledger.advance_time(ledger.current_time + timedelta(hours=2))
        engine.mint_batch()
    """

    def __init__(
        self,
        name: str,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Args:
            name: Ledger identifier, part of every exec_id
            initial_time: Clock start (default: 1970-01-01)
            verbose: Print a box for every applied transaction (default: True)
            test_mode: Enable set_balance() (default: False)
        """
        self.name = name
        self.verbose = verbose
        self._test_mode = test_mode
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self._next_sequence: int = 0

        self.units: Dict[str, Unit] = {}
        self.registered_wallets: Set[str] = {SYSTEM_WALLET}
        self.balances: Dict[str, Dict[str, Decimal]] = {SYSTEM_WALLET: _zero_balances()}
        # unit -> {wallet -> non-zero balance}
        self._positions_by_unit: Dict[str, Dict[str, Decimal]] = defaultdict(dict)

        self.transaction_log: List[Transaction] = []
        self.event_log: List[Any] = []
        self.seen_intent_ids: Set[str] = set()

    def _require_wallet(self, wallet_id: str) -> None:
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")

    def _require_unit(self, unit_symbol: str) -> Unit:
        try:
            return self.units[unit_symbol]
        except KeyError:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered") from None

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        return self._current_time

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Balance of unit_symbol held by wallet_id (zero if never touched).

        Raises:
            WalletNotRegistered, UnitNotRegistered
        """
        self._require_wallet(wallet_id)
        self._require_unit(unit_symbol)
        return self.balances[wallet_id].get(unit_symbol, Decimal("0"))

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """Deep copy of a unit's state dict; callers may mutate it freely."""
        unit = self._require_unit(unit_symbol)
        return copy.deepcopy(unit.state) if unit.state else {}

    def get_positions(self, unit_symbol: str) -> Positions:
        """Every wallet with a non-zero balance of the unit."""
        return dict(self._positions_by_unit.get(unit_symbol, {}))

    def list_wallets(self) -> Set[str]:
        return set(self.registered_wallets)

    def list_units(self) -> List[str]:
        return sorted(self.units)

    def get_unit(self, symbol: str) -> Unit:
        return self._require_unit(symbol)

    def get_wallet_balances(self, wallet_id: str) -> BalanceMap:
        """All unit balances of one wallet."""
        self._require_wallet(wallet_id)
        return dict(self.balances[wallet_id])

    def total_supply(self, unit_symbol: str) -> Decimal:
        """
        Sum of every wallet's balance of the unit, SYSTEM_WALLET included.

        Issuance debits SYSTEM_WALLET, so this stays zero for a unit that
        only ever entered the ledger through minting. Wallets are summed in
        sorted order.
        """
        self._require_unit(unit_symbol)
        total = Decimal("0")
        for wallet in sorted(self.registered_wallets):
            total += self.balances[wallet].get(unit_symbol, Decimal("0"))
        return total

    def total_issued(self, unit_symbol: str) -> Decimal:
        """Tokens minted so far: the SYSTEM_WALLET balance with its sign flipped."""
        return Decimal("0") - self.get_balance(SYSTEM_WALLET, unit_symbol)

    def verify_double_entry(
        self,
        expected_supplies: Optional[Dict[str, Decimal]] = None,
        tolerance: Decimal = Decimal("0")
    ) -> Dict[str, Any]:
        """
        Check every unit's total_supply() against an expected value.

        Without expected_supplies only the current sums are reported. An
        expected unit that is not registered counts as a discrepancy.

        Returns:
            {'valid': bool, 'supplies': {symbol: sum}, 'discrepancies': [...]}

        Example:
            result = ledger.verify_double_entry(expected_supplies={"TIME": Decimal("0")})
            assert result['valid'], result['discrepancies']
        """
        expected_supplies = expected_supplies or {}
        supplies = {symbol: self.total_supply(symbol) for symbol in self.units}

        discrepancies = []
        for symbol, expected in expected_supplies.items():
            if symbol not in supplies:
                discrepancies.append({
                    'unit': symbol, 'expected': expected, 'actual': Decimal("0"),
                    'difference': abs(expected), 'error': 'unit not registered',
                })
                continue
            difference = abs(supplies[symbol] - expected)
            if difference > tolerance:
                discrepancies.append({
                    'unit': symbol, 'expected': expected, 'actual': supplies[symbol],
                    'difference': difference,
                })

        return {
            'valid': not discrepancies,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    def is_registered(self, wallet_id: str) -> bool:
        return wallet_id in self.registered_wallets

    # ========================================================================
    # CLOCK
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Move the clock to new_time. Staying put is allowed.

        Raises:
            ValueError: new_time is earlier than the current time
        """
        if new_time < self._current_time:
            raise ValueError(f"Cannot move time backwards: {new_time} < {self._current_time}")
        self._current_time = new_time

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """Add a wallet with empty balances. Raises ValueError if it exists."""
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = _zero_balances()
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        """Add a unit definition. Raises ValueError if the symbol is taken."""
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        if self.verbose:
            rule = f", rule={unit.transfer_rule.__name__}" if unit.transfer_rule else ""
            print(f"📝 Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]{rule}")

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """
        Overwrite a balance without a counter-entry.

        Test fixtures use this to stage supply drift. It breaks conservation
        on purpose and is refused unless the ledger was built with
        test_mode=True.

        Raises:
            LedgerError: test_mode is off
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is disabled in production mode; "
                "balances only change through execute(). "
                "Create the Ledger with test_mode=True to stage balances."
            )
        self._require_wallet(wallet_id)
        self._require_unit(unit_symbol)
        quantity = quantity if isinstance(quantity, Decimal) else Decimal(str(quantity))
        self._write_balance(wallet_id, unit_symbol, quantity)

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """exec:{ledger_name}:{sequence:012d}:{clock in microseconds}"""
        micros = int(self._current_time.timestamp() * 1_000_000)
        return f"exec:{self.name}:{sequence:012d}:{micros}"

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Apply a PendingTransaction in full or not at all.

        An empty transaction is a no-op. A transaction whose intent_id was
        already applied is skipped, so retries are safe. Otherwise the
        transaction is validated, its state changes are written before its
        moves, and it is appended to transaction_log with its events
        appended to event_log.

        Returns:
            APPLIED, ALREADY_APPLIED or REJECTED
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED

        if pending.intent_id in self.seen_intent_ids:
            if self.verbose:
                print(f"⚠️  ALREADY_APPLIED: intent_id={pending.intent_id}")
            return ExecuteResult.ALREADY_APPLIED

        reason = self._rejection_reason(pending)
        if reason:
            if self.verbose:
                print(f"✗ REJECTED: {reason}")
            return ExecuteResult.REJECTED

        sequence = self._next_sequence
        self._next_sequence += 1
        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            origin=pending.origin,
            timestamp=pending.timestamp,
            intent_id=pending.intent_id,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
            events=pending.events,
        )

        # Token accounting is current before any balance lands
        for change in tx.state_changes:
            self._write_unit_state(change.unit, change.new_state)
        for move in tx.moves:
            self._apply_move(move)

        self.transaction_log.append(tx)
        self.event_log.extend(tx.events)
        self.seen_intent_ids.add(tx.intent_id)

        if self.verbose:
            self._print_tx_result(tx, "APPLIED", "✓")
        return ExecuteResult.APPLIED

    def _print_tx_result(self, tx: Transaction, result: str, icon: str) -> None:
        """Reprint the transaction box with the result as its last row."""
        width = 100
        rows = repr(tx).split('\n')
        status = f" {icon} {result}"
        if len(status) > width:
            status = status[:width - 3] + "..."
        rows[-1] = "├" + "─" * width + "┤"
        rows.append("│" + status.ljust(width) + "│")
        rows.append("└" + "─" * width + "┘")
        print("\n".join(rows))

    # ------------------------------------------------------------------------
    # Validation: each check returns a rejection reason, or "" if it passes
    # ------------------------------------------------------------------------

    def _rejection_reason(self, pending: PendingTransaction) -> str:
        if pending.timestamp > self._current_time:
            return "future timestamp"
        return (
            self._check_moves(pending.moves)
            or self._check_balances(self._net_changes(pending.moves))
            or self._check_state_changes(pending)
        )

    def _check_moves(self, moves: Tuple[Move, ...]) -> str:
        for move in moves:
            if move.unit_symbol not in self.units:
                return f"unit not registered: {move.unit_symbol}"
            for wallet in (move.source, move.dest):
                if wallet not in self.registered_wallets:
                    return f"wallet not registered: {wallet}"
            rule = self.units[move.unit_symbol].transfer_rule
            if rule is None:
                continue
            try:
                rule(self, move)
            except TransferRuleViolation as e:
                return str(e)
        return ""

    def _net_changes(self, moves: Tuple[Move, ...]) -> NetChanges:
        """Net change per (wallet, unit); limits apply to the net, not each leg."""
        net: NetChanges = defaultdict(lambda: Decimal("0"))
        for move in moves:
            unit = self.units[move.unit_symbol]
            net[move.source, move.unit_symbol] = unit.round(net[move.source, move.unit_symbol] - move.quantity)
            net[move.dest, move.unit_symbol] = unit.round(net[move.dest, move.unit_symbol] + move.quantity)
        return net

    def _check_balances(self, net: NetChanges) -> str:
        for (wallet, symbol), delta in net.items():
            # SYSTEM_WALLET goes as negative as issuance takes it
            if wallet == SYSTEM_WALLET:
                continue
            unit = self.units[symbol]
            proposed = unit.round(self.balances[wallet][symbol] + delta)
            if proposed < unit.min_balance:
                return f"{wallet} {symbol}: {proposed} < min {unit.min_balance}"
            if proposed > unit.max_balance:
                return f"{wallet} {symbol}: {proposed} > max {unit.max_balance}"
        return ""

    def _check_state_changes(self, pending: PendingTransaction) -> str:
        """Reject a state change built from a snapshot that has since moved on."""
        for change in pending.state_changes:
            if change.unit not in self.units:
                return f"unit not registered: {change.unit}"
            if change.old_state is None:
                continue
            expected = change.old_state if isinstance(change.old_state, dict) else {}
            actual = self.units[change.unit].state
            for key in expected.keys() | actual.keys():
                if expected.get(key) != actual.get(key):
                    return f"stale state for {change.unit}.{key}"
        return ""

    # ------------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------------

    def _write_unit_state(self, symbol: str, new_state: Optional[UnitState]) -> None:
        state = copy.deepcopy(new_state) if isinstance(new_state, dict) else {}
        self.units[symbol] = replace(self.units[symbol], _frozen_state=_freeze_state(state))

    def _write_balance(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        self.balances[wallet_id][unit_symbol] = quantity
        positions = self._positions_by_unit[unit_symbol]
        if abs(quantity) > QUANTITY_EPSILON:
            positions[wallet_id] = quantity
        else:
            positions.pop(wallet_id, None)

    def _apply_move(self, move: Move) -> None:
        unit = self.units[move.unit_symbol]
        symbol = move.unit_symbol
        self._write_balance(move.source, symbol, unit.round(self.balances[move.source][symbol] - move.quantity))
        self._write_balance(move.dest, symbol, unit.round(self.balances[move.dest][symbol] + move.quantity))

    # ========================================================================
    # CLONING
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Fully independent copy: units and state, balances, positions, both
        logs, seen intents, clock and settings.

        Used to try operations against a scratch ledger without touching
        this one.
        """
        cloned = Ledger(self.name, self._current_time, self.verbose, self._test_mode)
        cloned._next_sequence = self._next_sequence

        cloned.units = {
            symbol: replace(unit, _frozen_state=_freeze_state(copy.deepcopy(unit.state)))
            for symbol, unit in self.units.items()
        }
        cloned.registered_wallets = set(self.registered_wallets)
        cloned.balances = {
            wallet: defaultdict(lambda: Decimal("0"), balances)
            for wallet, balances in self.balances.items()
        }
        cloned._positions_by_unit = defaultdict(dict, {
            symbol: dict(positions) for symbol, positions in self._positions_by_unit.items()
        })

        cloned.transaction_log = list(self.transaction_log)
        cloned.event_log = list(self.event_log)
        cloned.seen_intent_ids = set(self.seen_intent_ids)
        return cloned
