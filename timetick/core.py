"""
Core types and pure functions for the time token ledger.

Contents:
1. Decimal context and constants (SYSTEM_WALLET, TOKEN_DECIMALS, unit type)
2. Protocols: LedgerView (read-only ledger), SmartContract (lifecycle polling)
3. Errors: LedgerError and the emission / staking taxonomy under it
4. Base-unit arithmetic: token amounts as exact integer counts of 10**-decimals
5. Transactions: Move, UnitStateChange, PendingTransaction (intent),
   Transaction (fact), with content-addressed intent ids
6. Unit definition and the emission transfer rule

Nothing here mutates a ledger. compute_* functions read through a LedgerView
and hand back a PendingTransaction for Ledger.execute().
"""

from __future__ import annotations
from dataclasses import dataclass, field, asdict, is_dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_EVEN, ROUND_DOWN, getcontext
from enum import Enum
import copy
import hashlib
from typing import (
    Dict, List, Set, Optional, Callable, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Set once at import and never touched again. prec=50 holds an 18-decimal
# token amount with room to spare after centuries of emission; ratios such
# as the correction factor use banker's rounding.
#
_context = getcontext()
_context.prec = 50
_context.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Issuance counterparty. Balance checks skip it, so it always holds the
# negated total issued of every unit.
SYSTEM_WALLET = "system"

UNIT_TYPE_TIME_TOKEN = "TIME_TOKEN"

TOKEN_DECIMALS = 18

# Below one smallest token unit (1e-18); treated as zero.
QUANTITY_EPSILON = Decimal("1e-24")

# Fractions of a smallest unit are never minted.
DECIMAL_ROUNDING = {
    UNIT_TYPE_TIME_TOKEN: ROUND_DOWN,
}


# ============================================================================
# TYPE ALIASES
# ============================================================================

Positions = Dict[str, Decimal]      # wallet -> balance, for one unit
BalanceMap = Dict[str, Decimal]     # unit -> balance, for one wallet
UnitState = Dict[str, Any]          # term sheet, batch clock, stake registry


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    What a compute_* function may see of the ledger.

    Ledger satisfies this and also has mutators; accepting a LedgerView is a
    promise not to use them. Tests pass a FakeView instead.
    """

    @property
    def current_time(self) -> datetime:
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """Balance of the unit in the wallet, Decimal("0") if none."""
        ...

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """A copy of the unit's state dict."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        ...

    def list_wallets(self) -> Set[str]:
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        ...


class SmartContract(Protocol):
    """
    A unit contract polled by the LifecycleEngine.

    Returns the transaction that is due at timestamp, or an empty one
    (empty_pending_transaction) when there is nothing to do. A plain function
    with the same signature works too.
    """

    def check_lifecycle(
        self,
        view: LedgerView,
        symbol: str,
        timestamp: datetime,
    ) -> 'PendingTransaction':
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """What Ledger.execute() did with a pending transaction."""
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"   # intent_id seen before; nothing done
    REJECTED = "rejected"                 # failed validation; nothing done


class OriginType(Enum):
    USER_ACTION = "user_action"           # staker, holder or owner call
    CONTRACT = "contract"                 # token operation without a caller
    LIFECYCLE = "lifecycle"               # batch fired by the lifecycle engine
    SYSTEM = "system"                     # setup and tooling


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Root of every error this package raises on purpose."""


class InsufficientBalance(LedgerError):
    """The wallet cannot cover a stake or transfer."""


class BalanceConstraintViolation(LedgerError):
    """A balance would leave the unit's [min_balance, max_balance] range."""


class TransferRuleViolation(LedgerError):
    """The unit's transfer rule refuses a move."""


class UnitNotRegistered(LedgerError):
    pass


class WalletNotRegistered(LedgerError):
    pass


class Unauthorized(LedgerError):
    """An owner-only operation was called by another account."""


class EmissionError(LedgerError):
    """Batch minting cannot proceed."""


class BatchNotDue(EmissionError):
    """Less than batch_interval has passed since the last batch."""


class MintingDisabled(EmissionError):
    pass


class StakeError(LedgerError):
    """A stake lifecycle precondition failed."""


class NonWholeUnit(StakeError):
    """Amount is not a whole number of stake units."""


class BelowMinimumStake(StakeError):
    """A new stake has fewer units than minimum_stake_units."""


class UnstakeNotReady(StakeError):
    """No pending request, or unstake_delay has not yet passed."""


class StakerNotFound(StakeError):
    """The account has no active stake."""


class UnstakeExceedsStake(StakeError):
    pass


class NoPendingUnstake(StakeError):
    pass


class StakingDisabled(StakeError):
    pass


# ============================================================================
# BASE-UNIT ARITHMETIC
# ============================================================================

def to_base_units(amount: Decimal, decimals: int = TOKEN_DECIMALS) -> int:
    """
    Token amount -> integer count of smallest units, truncated toward zero.

    Example:
        to_base_units(Decimal("1.239"), 2)  # 123
    """
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    return int(amount.scaleb(decimals).to_integral_value(rounding=ROUND_DOWN))


def from_base_units(base: int, decimals: int = TOKEN_DECIMALS) -> Decimal:
    return Decimal(base).scaleb(-decimals)


def quantize_amount(amount: Decimal, decimals: int = TOKEN_DECIMALS) -> Decimal:
    """Drop anything below the token's smallest unit."""
    return from_base_units(to_base_units(amount, decimals), decimals)


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Audit tag saying who asked for a transaction and which operation it is.

    Attributes:
        origin_type: Kind of caller
        source_id: Account or contract that asked
        unit_symbol: Token the operation belongs to
        event_type: Operation name, e.g. "MINT_BATCH" or "STAKE"
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        text = f"{self.origin_type.value}:{self.source_id}"
        if self.unit_symbol:
            text += f", unit={self.unit_symbol}"
        if self.event_type:
            text += f", event={self.event_type}"
        return f"Origin({text})"


# ============================================================================
# UNIT STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class UnitStateChange:
    """
    Before and after snapshots of one unit's state.

    The ledger refuses the change unless the unit still holds old_state,
    which makes every compute_* result single-use against the state it was
    built from.
    """
    unit: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """{field: (old, new)} for every field whose value differs."""
        before = self.old_state if isinstance(self.old_state, dict) else {}
        after = self.new_state if isinstance(self.new_state, dict) else {}
        return {
            key: (before.get(key), after.get(key))
            for key in before.keys() | after.keys()
            if before.get(key) != after.get(key)
        }


# ============================================================================
# MOVES AND TRANSACTIONS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    quantity of unit_symbol from source to dest.

    contract_id names the operation that produced the move (for example
    "mint_batch_TIME" or "stake_TIME") and ends up in Transaction.contract_ids.
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        for name in ('source', 'dest', 'unit_symbol', 'contract_id'):
            value = getattr(self, name)
            if not value or not value.strip():
                raise ValueError(f"Move {name} cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity {self.quantity!r} is not a Decimal")
        if not self.quantity.is_finite():
            raise ValueError(f"Move quantity {self.quantity} is not finite")
        if abs(self.quantity) < QUANTITY_EPSILON:
            raise ValueError(f"Move quantity {self.quantity} rounds to zero")
        if self.source == self.dest:
            raise ValueError(f"Move source and dest must be different wallets ({self.source})")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


def _decimal_text(d: Decimal) -> str:
    """Plain text of a Decimal, identical for 1, 1.0 and 1.00."""
    return format(d.normalize(), 'f')


def _canonicalize(value: Any) -> str:
    """
    Stable text form of a value for hashing.

    Dicts are key-sorted, Decimals normalised, and dataclasses (events) are
    written as their type name plus fields, so equal content always gives
    equal text.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return "D:" + _decimal_text(value)
    if isinstance(value, (int, float)):
        return f"N:{value}"
    if isinstance(value, str):
        return "S:" + value
    if isinstance(value, datetime):
        return "T:" + value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return "E:" + type(value).__name__ + _canonicalize(asdict(value))
    if isinstance(value, dict):
        pairs = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(_canonicalize(k) + ":" + _canonicalize(v) for k, v in pairs) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(item) for item in value) + "]"
    if isinstance(value, (set, frozenset)):
        return "<" + ",".join(_canonicalize(item) for item in sorted(value, key=str)) + ">"
    return "R:" + repr(value)


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_changes: Tuple[UnitStateChange, ...],
    origin: TransactionOrigin,
    events: Tuple[Any, ...] = (),
) -> str:
    """
    16-hex-digit SHA-256 over what a transaction intends to do.

    Moves and state changes are order-independent; events keep the order
    they are emitted in. The creation timestamp is deliberately absent so
    that a retried submission maps to the same id.
    """
    move_rows = sorted(
        (_decimal_text(m.quantity), m.unit_symbol, m.source, m.dest, m.contract_id)
        for m in moves
    )
    change_rows = [
        (sc.unit, _canonicalize(sc.old_state), _canonicalize(sc.new_state))
        for sc in sorted(state_changes, key=lambda s: s.unit)
    ]
    payload = _canonicalize({
        'origin': (origin.origin_type.value, origin.source_id, origin.unit_symbol, origin.event_type),
        'moves': move_rows,
        'state_changes': change_rows,
        'events': list(events),
    })
    return hashlib.sha256(payload.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    What an operation wants to happen, before the ledger has seen it.

    Attributes:
        moves: Balance transfers
        state_changes: Unit state snapshots (old and new)
        origin: Audit tag
        timestamp: Ledger time the transaction was built at
        events: Emitted once the transaction is applied
        intent_id: Content hash, filled in automatically
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    events: Tuple[Any, ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            object.__setattr__(
                self, 'intent_id',
                _compute_intent_id(self.moves, self.state_changes, self.origin, self.events),
            )

    def is_empty(self) -> bool:
        return not (self.moves or self.state_changes or self.events)

    def __repr__(self) -> str:
        return (
            f"PendingTransaction({len(self.moves)} moves, {len(self.state_changes)} deltas, "
            f"{len(self.events)} events, {self.origin})"
        )


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[UnitStateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    events: Optional[List[Any]] = None,
) -> PendingTransaction:
    """
    Assemble a PendingTransaction stamped with the view's current time.

    State snapshots are deep-copied so later edits by the caller cannot leak
    into the transaction.

    Example:
        moves = [Move(amount, "TIME", "treasury", "alice", "grant_001")]
        pending = build_transaction(ledger, moves)
    """
    changes = tuple(
        UnitStateChange(sc.unit, copy.deepcopy(sc.old_state), copy.deepcopy(sc.new_state))
        for sc in state_changes or ()
    )
    return PendingTransaction(
        moves=tuple(moves),
        state_changes=changes,
        origin=origin or TransactionOrigin(OriginType.CONTRACT, "contract"),
        timestamp=view.current_time,
        events=tuple(events or ()),
    )


def empty_pending_transaction(view: LedgerView) -> PendingTransaction:
    """The 'nothing to do' result of a contract or compute function."""
    return PendingTransaction((), (), TransactionOrigin(OriginType.CONTRACT, "noop"), view.current_time)


_BOX_WIDTH = 100


def _box_row(text: str) -> str:
    if len(text) > _BOX_WIDTH:
        text = text[:_BOX_WIDTH - 3] + "..."
    return "│" + text.ljust(_BOX_WIDTH) + "│"


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An applied transaction as recorded in Ledger.transaction_log.

    Carries everything from the PendingTransaction plus the execution
    identity: exec_id, ledger_name, execution_time and sequence_number.
    contract_ids is derived from the moves.
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    events: Tuple[Any, ...] = ()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not (self.moves or self.state_changes or self.events):
            raise ValueError("Transaction must have moves, state_changes, or events")
        if self.contract_ids is None:
            object.__setattr__(self, 'contract_ids', frozenset(m.contract_id for m in self.moves))

    def _state_rows(self) -> List[str]:
        rows = []
        for sc in self.state_changes:
            rows.append(f"   [{sc.unit}]")
            for name, (old, new) in sorted(sc.changed_fields().items()):
                if name == 'stakers':
                    rows.append(f"      stakers: {len(old or {})} → {len(new or {})} records")
                else:
                    rows.append(f"      {name}: {old!r} → {new!r}")
        return rows

    def __repr__(self) -> str:
        rule = "─" * _BOX_WIDTH
        sections = [
            [
                f" Transaction: {self.exec_id}",
            ],
            [
                f"   intent_id      : {self.intent_id}",
                f"   timestamp      : {self.timestamp}",
                f"   execution_time : {self.execution_time}",
                f"   sequence       : {self.sequence_number}",
                f"   origin         : {self.origin}",
            ],
            [f" Moves ({len(self.moves)}):"] + [
                f"   [{i}] {m.quantity} {m.unit_symbol}: {m.source} → {m.dest}"
                for i, m in enumerate(self.moves)
            ],
        ]
        if self.state_changes:
            sections.append([f" State Changes ({len(self.state_changes)}):"] + self._state_rows())
        if self.events:
            sections.append([f" Events ({len(self.events)}):"] + [f"   {ev!r}" for ev in self.events])

        lines = ["", "┌" + rule + "┐"]
        for i, section in enumerate(sections):
            if i:
                lines.append("├" + rule + "┤")
            lines.extend(_box_row(text) for text in section)
        lines.append("└" + rule + "┘")
        return "\n".join(lines)


# ============================================================================
# UNITS
# ============================================================================

# A transfer rule raises TransferRuleViolation for a move it refuses.
TransferRule = Callable[[LedgerView, Move], None]


def _freeze_state(state: Optional[UnitState]) -> Tuple[Tuple[str, Any], ...]:
    """State dict -> key-sorted tuple of pairs, so Unit can stay frozen."""
    return tuple(sorted(state.items())) if state else ()


@dataclass(frozen=True, slots=True)
class Unit:
    """
    A token registered with the ledger.

    Attributes:
        symbol: Ticker, e.g. "TIME"
        name: Display name
        unit_type: Selects the lifecycle contract and rounding mode
        min_balance / max_balance: Limits for every wallet but SYSTEM_WALLET
        decimal_places: Balance precision (None = unrounded)
        transfer_rule: Checked for every move of this unit
        _frozen_state: The state dict, frozen; read it through .state
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = Decimal("0")
    max_balance: Decimal = Decimal("Infinity")
    decimal_places: Optional[int] = None
    transfer_rule: Optional[TransferRule] = None
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def state(self) -> UnitState:
        """A fresh dict each call."""
        return dict(self._frozen_state)

    def round(self, value: Decimal) -> Decimal:
        """Quantize to decimal_places with the unit type's rounding mode."""
        if self.decimal_places is None:
            return value
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        return value.quantize(
            Decimal(1).scaleb(-self.decimal_places),
            rounding=DECIMAL_ROUNDING.get(self.unit_type, ROUND_HALF_EVEN),
        )


# ============================================================================
# TRANSFER RULES
# ============================================================================

def emission_transfer_rule(view: LedgerView, move: Move) -> None:
    """
    Issuance only into the fund wallets, and no burning.

    SYSTEM_WALLET may pay the treasury, reserve and custody wallets named in
    the unit's state and nobody else. Nothing may be paid back into
    SYSTEM_WALLET, so issued supply only ever grows. Moves between ordinary
    wallets are unrestricted.

    Raises:
        TransferRuleViolation: The unit has no fund wallets, or the move
            issues to another wallet, or burns.
    """
    state = view.get_unit_state(move.unit_symbol)
    funds = {
        state[key] for key in ('treasury_wallet', 'reserve_wallet', 'custody_wallet')
        if state.get(key) is not None
    }

    if not funds:
        raise TransferRuleViolation(f"Emission unit {move.unit_symbol} missing fund wallet state")
    if move.dest == SYSTEM_WALLET:
        raise TransferRuleViolation(
            f"Emission {move.unit_symbol}: {move.source} cannot burn into {SYSTEM_WALLET}"
        )
    if move.source == SYSTEM_WALLET and move.dest not in funds:
        raise TransferRuleViolation(f"Emission {move.unit_symbol}: {move.dest} cannot receive issuance")
