"""
time_token.py - Time-Linked Emission Token

This module defines the time token unit: its term sheet, its lifecycle state,
and the adapters between the ledger's state dict and typed dataclasses.
Emission, distribution, staking, accrual and supply validation live in
sibling modules and all build on the types defined here.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES (explicit inputs):
   - TimeTokenTerms: Immutable term sheet (set at deployment, never changes)
   - TimeTokenState: Immutable state snapshot (changes with every operation)
   - StakerRecord: One account's stake, unstake request and unclaimed rewards
   - DistributionSplit: Treasury / reserve / timekeeper fractions

2. ADAPTER FUNCTIONS (load_time_token / to_state_dict):
   - The ONLY place that touches LedgerView for token state reads
   - to_state_dict() is the exact inverse, used for UnitStateChange.new_state

3. CONVENIENCE FUNCTIONS (compute_*):
   - Governance operations: minimum stake units, minting and staking switches
   - Each returns a PendingTransaction; failed preconditions raise before
     anything is built

Key Formulas:
    emission(elapsed) = exact seconds since last batch * emission_rate
    expected_supply   = exact seconds since genesis * emission_rate
    staked_amount     = staked_units * stake_unit
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, Any, List, Optional, Tuple, Mapping

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    SYSTEM_WALLET, TOKEN_DECIMALS, UNIT_TYPE_TIME_TOKEN,
    Unauthorized,
    build_transaction, emission_transfer_rule, quantize_amount,
    _freeze_state,
)
from ..events import ParameterChanged


# ============================================================================
# DEFAULTS
# ============================================================================

DEFAULT_BATCH_INTERVAL = 3600                 # seconds between batches
DEFAULT_EMISSION_RATE = Decimal("1")          # tokens per second
DEFAULT_STAKE_UNIT = Decimal("3600")          # one hour of emission
DEFAULT_UNSTAKE_DELAY = 3 * 24 * 3600         # 3 days
DEFAULT_RENEWAL_PERIOD = 180 * 24 * 3600      # 180 days
DEFAULT_MINIMUM_STAKE_UNITS = 1


# ============================================================================
# FROZEN DATACLASSES - Explicit Inputs for Pure Functions
# ============================================================================

@dataclass(frozen=True, slots=True)
class DistributionSplit:
    """
    Fractions of a minted amount routed to each destination. Must sum to 1.
    """
    treasury: Decimal
    reserve: Decimal
    timekeepers: Decimal

    def __post_init__(self):
        for name in ('treasury', 'reserve', 'timekeepers'):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                value = Decimal(str(value))
                object.__setattr__(self, name, value)
            if value < 0:
                raise ValueError(f"{name} share cannot be negative, got {value}")
        total = self.treasury + self.reserve + self.timekeepers
        if total != Decimal("1"):
            raise ValueError(f"distribution split must sum to 1, got {total}")

    def to_dict(self) -> Dict[str, Decimal]:
        return {
            'treasury': self.treasury,
            'reserve': self.reserve,
            'timekeepers': self.timekeepers,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> DistributionSplit:
        return cls(
            treasury=Decimal(str(raw['treasury'])),
            reserve=Decimal(str(raw['reserve'])),
            timekeepers=Decimal(str(raw['timekeepers'])),
        )


# Split once timekeepers are active: 70% timekeepers, 20% treasury, 10% reserve
STAKER_SPLIT = DistributionSplit(
    treasury=Decimal("0.20"),
    reserve=Decimal("0.10"),
    timekeepers=Decimal("0.70"),
)

# Split before any timekeeper is active: 70% treasury, 30% reserve
NO_STAKER_SPLIT = DistributionSplit(
    treasury=Decimal("0.70"),
    reserve=Decimal("0.30"),
    timekeepers=Decimal("0"),
)


@dataclass(frozen=True, slots=True)
class StakerRecord:
    """
    One account's stake.

    staked_amount == staked_units * stake_unit always holds. A record with
    zero stake survives only while unclaimed_rewards is positive.
    """
    staked_amount: Decimal = Decimal("0")
    staked_units: int = 0
    last_stake_time: Optional[datetime] = None
    unstake_request_time: Optional[datetime] = None
    unstake_request_amount: Decimal = Decimal("0")
    last_renewal_time: Optional[datetime] = None
    unclaimed_rewards: Decimal = Decimal("0")

    def __post_init__(self):
        """Convert float values to Decimal to ensure type consistency."""
        if not isinstance(self.staked_amount, Decimal):
            object.__setattr__(self, 'staked_amount', Decimal(str(self.staked_amount)))
        if not isinstance(self.unstake_request_amount, Decimal):
            object.__setattr__(self, 'unstake_request_amount', Decimal(str(self.unstake_request_amount)))
        if not isinstance(self.unclaimed_rewards, Decimal):
            object.__setattr__(self, 'unclaimed_rewards', Decimal(str(self.unclaimed_rewards)))

    @property
    def is_active(self) -> bool:
        return self.staked_units > 0

    @property
    def has_pending_unstake(self) -> bool:
        return self.unstake_request_time is not None

    @property
    def is_empty(self) -> bool:
        return not self.is_active and self.unclaimed_rewards == 0


@dataclass(frozen=True, slots=True)
class TimeTokenTerms:
    """
    Immutable term sheet for a time token - set at deployment, never changes.

    Durations are whole seconds. Amounts are Decimal token amounts.
    """
    genesis_time: datetime
    batch_interval: int
    emission_rate: Decimal
    stake_unit: Decimal
    unstake_delay: int
    renewal_period: int
    decimals: int
    staker_split: DistributionSplit
    no_staker_split: DistributionSplit
    treasury_wallet: str
    reserve_wallet: str
    custody_wallet: str
    owner_wallet: str

    def __post_init__(self):
        """Convert float values to Decimal to ensure type consistency."""
        if not isinstance(self.emission_rate, Decimal):
            object.__setattr__(self, 'emission_rate', Decimal(str(self.emission_rate)))
        if not isinstance(self.stake_unit, Decimal):
            object.__setattr__(self, 'stake_unit', Decimal(str(self.stake_unit)))


@dataclass(frozen=True, slots=True)
class TimeTokenState:
    """
    Immutable snapshot of the token's mutable state.

    Each operation produces a NEW instance. timekeepers_at_last_batch is the
    active staker count recorded at the previous batch boundary; it decides
    whether the next batch uses the staker split.
    """
    last_batch_time: datetime
    minimum_stake_units: int
    minting_enabled: bool
    staking_enabled: bool
    stakers: Mapping[str, StakerRecord] = field(default_factory=dict)
    total_staked: Decimal = Decimal("0")
    staker_count: int = 0
    timekeepers_at_last_batch: int = 0
    undistributed_remainder: Decimal = Decimal("0")
    op_sequence: int = 0

    def __post_init__(self):
        """Convert float values to Decimal to ensure type consistency."""
        if not isinstance(self.total_staked, Decimal):
            object.__setattr__(self, 'total_staked', Decimal(str(self.total_staked)))
        if not isinstance(self.undistributed_remainder, Decimal):
            object.__setattr__(self, 'undistributed_remainder', Decimal(str(self.undistributed_remainder)))

    def record(self, account: str) -> StakerRecord:
        """Return the account's record, or an empty one if it has none."""
        return self.stakers.get(account, StakerRecord())

    def with_record(self, account: str, record: StakerRecord) -> TimeTokenState:
        """Return a copy with the account's record replaced, dropping it if empty."""
        stakers = dict(self.stakers)
        if record.is_empty:
            stakers.pop(account, None)
        else:
            stakers[account] = record
        return replace(self, stakers=stakers)

    @property
    def active_stakers(self) -> Dict[str, StakerRecord]:
        return {a: r for a, r in self.stakers.items() if r.is_active}

    @property
    def total_unclaimed(self) -> Decimal:
        return sum((r.unclaimed_rewards for r in self.stakers.values()), Decimal("0"))


# ============================================================================
# ADAPTER FUNCTIONS
# ============================================================================

def _record_from_dict(raw: Mapping[str, Any]) -> StakerRecord:
    return StakerRecord(
        staked_amount=Decimal(str(raw.get('staked_amount', 0))),
        staked_units=int(raw.get('staked_units', 0)),
        last_stake_time=raw.get('last_stake_time'),
        unstake_request_time=raw.get('unstake_request_time'),
        unstake_request_amount=Decimal(str(raw.get('unstake_request_amount', 0))),
        last_renewal_time=raw.get('last_renewal_time'),
        unclaimed_rewards=Decimal(str(raw.get('unclaimed_rewards', 0))),
    )


def _record_to_dict(record: StakerRecord) -> Dict[str, Any]:
    return {
        'staked_amount': record.staked_amount,
        'staked_units': record.staked_units,
        'last_stake_time': record.last_stake_time,
        'unstake_request_time': record.unstake_request_time,
        'unstake_request_amount': record.unstake_request_amount,
        'last_renewal_time': record.last_renewal_time,
        'unclaimed_rewards': record.unclaimed_rewards,
    }


def load_time_token(view: LedgerView, symbol: str) -> Tuple[TimeTokenTerms, TimeTokenState]:
    """
    Load a time token from ledger state as typed frozen dataclasses.

    This is the ONLY function that reads token state from a LedgerView. All
    pure calculation functions take the returned dataclasses as parameters.

    Example:
        terms, state = load_time_token(view, "TIME")
        amount = calculate_emission_amount(3600, terms.emission_rate, terms.decimals)
    """
    raw = view.get_unit_state(symbol)

    terms = TimeTokenTerms(
        genesis_time=raw['genesis_time'],
        batch_interval=int(raw.get('batch_interval', DEFAULT_BATCH_INTERVAL)),
        emission_rate=Decimal(str(raw.get('emission_rate', DEFAULT_EMISSION_RATE))),
        stake_unit=Decimal(str(raw.get('stake_unit', DEFAULT_STAKE_UNIT))),
        unstake_delay=int(raw.get('unstake_delay', DEFAULT_UNSTAKE_DELAY)),
        renewal_period=int(raw.get('renewal_period', DEFAULT_RENEWAL_PERIOD)),
        decimals=int(raw.get('decimals', TOKEN_DECIMALS)),
        staker_split=DistributionSplit.from_dict(raw.get('staker_split', STAKER_SPLIT.to_dict())),
        no_staker_split=DistributionSplit.from_dict(raw.get('no_staker_split', NO_STAKER_SPLIT.to_dict())),
        treasury_wallet=raw['treasury_wallet'],
        reserve_wallet=raw['reserve_wallet'],
        custody_wallet=raw['custody_wallet'],
        owner_wallet=raw['owner_wallet'],
    )

    state = TimeTokenState(
        last_batch_time=raw.get('last_batch_time', terms.genesis_time),
        minimum_stake_units=int(raw.get('minimum_stake_units', DEFAULT_MINIMUM_STAKE_UNITS)),
        minting_enabled=raw.get('minting_enabled', True),
        staking_enabled=raw.get('staking_enabled', True),
        stakers={a: _record_from_dict(r) for a, r in raw.get('stakers', {}).items()},
        total_staked=Decimal(str(raw.get('total_staked', 0))),
        staker_count=int(raw.get('staker_count', 0)),
        timekeepers_at_last_batch=int(raw.get('timekeepers_at_last_batch', 0)),
        undistributed_remainder=Decimal(str(raw.get('undistributed_remainder', 0))),
        op_sequence=int(raw.get('op_sequence', 0)),
    )

    return terms, state


def to_state_dict(terms: TimeTokenTerms, state: TimeTokenState) -> Dict[str, Any]:
    """
    Convert typed dataclasses back to a state dict for ledger storage.

    Inverse of load_time_token().
    """
    return {
        'genesis_time': terms.genesis_time,
        'batch_interval': terms.batch_interval,
        'emission_rate': terms.emission_rate,
        'stake_unit': terms.stake_unit,
        'unstake_delay': terms.unstake_delay,
        'renewal_period': terms.renewal_period,
        'decimals': terms.decimals,
        'staker_split': terms.staker_split.to_dict(),
        'no_staker_split': terms.no_staker_split.to_dict(),
        'treasury_wallet': terms.treasury_wallet,
        'reserve_wallet': terms.reserve_wallet,
        'custody_wallet': terms.custody_wallet,
        'owner_wallet': terms.owner_wallet,
        'last_batch_time': state.last_batch_time,
        'minimum_stake_units': state.minimum_stake_units,
        'minting_enabled': state.minting_enabled,
        'staking_enabled': state.staking_enabled,
        'stakers': {a: _record_to_dict(r) for a, r in sorted(state.stakers.items())},
        'total_staked': state.total_staked,
        'staker_count': state.staker_count,
        'timekeepers_at_last_batch': state.timekeepers_at_last_batch,
        'undistributed_remainder': state.undistributed_remainder,
        'op_sequence': state.op_sequence,
    }


# ============================================================================
# SHARED HELPERS
# ============================================================================

def elapsed_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds from start to end; the sub-second part is dropped."""
    delta = end - start
    return delta.days * 86400 + delta.seconds


def elapsed_time(start: datetime, end: datetime) -> Decimal:
    """Exact seconds from start to end, down to the microsecond."""
    delta = end - start
    micros = (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds
    return Decimal(micros).scaleb(-6)



def build_token_update(
    view: LedgerView,
    symbol: str,
    terms: TimeTokenTerms,
    old_state: Dict[str, Any],
    new_state: TimeTokenState,
    moves: List[Move],
    events: List[Any],
    event_type: str,
    source_id: Optional[str] = None,
    origin_type: OriginType = OriginType.CONTRACT,
) -> PendingTransaction:
    """
    Wrap a token state transition into a PendingTransaction.

    The operation sequence is bumped on every update, so two operations that
    happen to produce the same balances and records never share an intent_id.
    """
    new_state = replace(new_state, op_sequence=new_state.op_sequence + 1)
    change = UnitStateChange(
        unit=symbol,
        old_state=old_state,
        new_state=to_state_dict(terms, new_state),
    )
    origin = TransactionOrigin(
        origin_type=origin_type,
        source_id=source_id or symbol,
        unit_symbol=symbol,
        event_type=event_type,
    )
    return build_transaction(view, moves, [change], origin=origin, events=events)


# ============================================================================
# UNIT CREATION
# ============================================================================

def create_time_token_unit(
    symbol: str,
    name: str,
    genesis_time: datetime,
    treasury_wallet: str,
    reserve_wallet: str,
    custody_wallet: str,
    owner_wallet: str,
    batch_interval: int = DEFAULT_BATCH_INTERVAL,
    emission_rate: Decimal = DEFAULT_EMISSION_RATE,
    stake_unit: Decimal = DEFAULT_STAKE_UNIT,
    unstake_delay: int = DEFAULT_UNSTAKE_DELAY,
    renewal_period: int = DEFAULT_RENEWAL_PERIOD,
    minimum_stake_units: int = DEFAULT_MINIMUM_STAKE_UNITS,
    staker_split: DistributionSplit = STAKER_SPLIT,
    no_staker_split: DistributionSplit = NO_STAKER_SPLIT,
    decimals: int = TOKEN_DECIMALS,
) -> Unit:
    """
    Create a time token unit.

    The token is minted at emission_rate per elapsed second, in batches no
    closer together than batch_interval. Stakes are locked in custody_wallet
    in whole multiples of stake_unit.

    Args:
        symbol: Token symbol (e.g., "TIME")
        name: Human-readable token name
        genesis_time: Anchor of the expected-supply formula; also the first
                      last_batch_time
        treasury_wallet: Dev fund receiving the treasury share
        reserve_wallet: Stability pool receiving the reserve share
        custody_wallet: Holds staked principal and unclaimed rewards
        owner_wallet: The only account allowed to change parameters
        batch_interval: Minimum seconds between batches (default: 3600)
        emission_rate: Tokens minted per second (default: 1)
        stake_unit: Indivisible stake quantum (default: 3600)
        unstake_delay: Seconds between an unstake request and unstake (default: 3 days)
        renewal_period: Seconds a stake may go unrenewed before expiry (default: 180 days)
        minimum_stake_units: Floor on new stakes, in stake units (default: 1)
        staker_split: Split used once timekeepers are active
        no_staker_split: Split used otherwise; its timekeeper share must be 0
        decimals: Token decimal places (default: 18)

    Returns:
        Unit with min_balance 0 and the emission transfer rule.

    Raises:
        ValueError: If any parameter is out of range or wallets collide.

    Example:
        unit = create_time_token_unit(
            "TIME", "Time Token", datetime(2025, 1, 1),
            treasury_wallet="treasury", reserve_wallet="reserve",
            custody_wallet="custody", owner_wallet="owner",
        )
        ledger.register_unit(unit)
    """
    if not symbol or not symbol.strip():
        raise ValueError("symbol cannot be empty")
    if not isinstance(decimals, int) or isinstance(decimals, bool) or decimals < 0:
        raise ValueError(f"decimals must be a non-negative int, got {decimals!r}")

    if not isinstance(batch_interval, int) or batch_interval <= 0:
        raise ValueError(f"batch_interval must be a positive int, got {batch_interval!r}")
    if not isinstance(unstake_delay, int) or unstake_delay < 0:
        raise ValueError(f"unstake_delay must be a non-negative int, got {unstake_delay!r}")
    if not isinstance(renewal_period, int) or renewal_period <= 0:
        raise ValueError(f"renewal_period must be a positive int, got {renewal_period!r}")
    if not isinstance(minimum_stake_units, int) or isinstance(minimum_stake_units, bool) or minimum_stake_units <= 0:
        raise ValueError(f"minimum_stake_units must be a positive int, got {minimum_stake_units!r}")

    if not isinstance(emission_rate, Decimal):
        emission_rate = Decimal(str(emission_rate))
    if not isinstance(stake_unit, Decimal):
        stake_unit = Decimal(str(stake_unit))
    if emission_rate <= 0:
        raise ValueError(f"emission_rate must be positive, got {emission_rate}")
    if quantize_amount(emission_rate, decimals) != emission_rate:
        raise ValueError(f"emission_rate {emission_rate} has more than {decimals} decimals")
    if stake_unit <= 0:
        raise ValueError(f"stake_unit must be positive, got {stake_unit}")
    if quantize_amount(stake_unit, decimals) != stake_unit:
        raise ValueError(f"stake_unit {stake_unit} has more than {decimals} decimals")

    if no_staker_split.timekeepers != 0:
        raise ValueError("no_staker_split cannot route a share to timekeepers")

    wallets = [treasury_wallet, reserve_wallet, custody_wallet, owner_wallet]
    for wallet in wallets:
        if not wallet or not wallet.strip():
            raise ValueError("fund and owner wallets cannot be empty")
    if SYSTEM_WALLET in wallets:
        raise ValueError(f"{SYSTEM_WALLET} cannot be a fund or owner wallet")
    if len({treasury_wallet, reserve_wallet, custody_wallet}) != 3:
        raise ValueError("treasury, reserve and custody wallets must be different")
    if owner_wallet == custody_wallet:
        raise ValueError("owner_wallet cannot be the custody wallet")

    terms = TimeTokenTerms(
        genesis_time=genesis_time,
        batch_interval=batch_interval,
        emission_rate=emission_rate,
        stake_unit=stake_unit,
        unstake_delay=unstake_delay,
        renewal_period=renewal_period,
        decimals=decimals,
        staker_split=staker_split,
        no_staker_split=no_staker_split,
        treasury_wallet=treasury_wallet,
        reserve_wallet=reserve_wallet,
        custody_wallet=custody_wallet,
        owner_wallet=owner_wallet,
    )
    state = TimeTokenState(
        last_batch_time=genesis_time,
        minimum_stake_units=minimum_stake_units,
        minting_enabled=True,
        staking_enabled=True,
    )

    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_TIME_TOKEN,
        min_balance=Decimal("0"),
        decimal_places=decimals,
        transfer_rule=emission_transfer_rule,
        _frozen_state=_freeze_state(to_state_dict(terms, state)),
    )


# ============================================================================
# GOVERNANCE
# ============================================================================

def _require_owner(terms: TimeTokenTerms, caller: str, action: str) -> None:
    if caller != terms.owner_wallet:
        raise Unauthorized(f"{caller} is not authorized to {action}")


def compute_set_minimum_stake_units(
    view: LedgerView,
    symbol: str,
    caller: str,
    units: int,
) -> PendingTransaction:
    """
    Set the minimum stake size, in stake units, for future stakes.

    Existing stakes below the new floor are unaffected.

    Raises:
        Unauthorized: If caller is not the owner
        ValueError: If units is not a positive int
    """
    terms, state = load_time_token(view, symbol)
    _require_owner(terms, caller, "set minimum stake units")
    if not isinstance(units, int) or isinstance(units, bool) or units <= 0:
        raise ValueError(f"minimum stake units must be a positive int, got {units!r}")

    new_state = replace(state, minimum_stake_units=units)
    event = ParameterChanged(
        name='minimum_stake_units',
        old_value=state.minimum_stake_units,
        new_value=units,
        changed_by=caller,
        timestamp=view.current_time,
    )
    return build_token_update(
        view, symbol, terms, view.get_unit_state(symbol), new_state, [], [event],
        event_type="SET_MINIMUM_STAKE_UNITS", source_id=caller,
        origin_type=OriginType.USER_ACTION,
    )


def _compute_toggle(view: LedgerView, symbol: str, caller: str, flag: str) -> PendingTransaction:
    terms, state = load_time_token(view, symbol)
    _require_owner(terms, caller, f"toggle {flag}")
    old_value = getattr(state, flag)
    new_state = replace(state, **{flag: not old_value})
    event = ParameterChanged(
        name=flag,
        old_value=old_value,
        new_value=not old_value,
        changed_by=caller,
        timestamp=view.current_time,
    )
    return build_token_update(
        view, symbol, terms, view.get_unit_state(symbol), new_state, [], [event],
        event_type=f"TOGGLE_{flag.upper()}", source_id=caller,
        origin_type=OriginType.USER_ACTION,
    )


def compute_toggle_minting(view: LedgerView, symbol: str, caller: str) -> PendingTransaction:
    """Switch batch minting on or off. Owner only."""
    return _compute_toggle(view, symbol, caller, 'minting_enabled')


def compute_toggle_staking(view: LedgerView, symbol: str, caller: str) -> PendingTransaction:
    """Switch new stakes on or off. Owner only; unstaking and claims stay available."""
    return _compute_toggle(view, symbol, caller, 'staking_enabled')
