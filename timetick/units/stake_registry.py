"""
stake_registry.py - Stake Lifecycle and Registry Projections

Per-account stake records and the aggregate totals they roll up into.

Stake lifecycle:
    stake -> [request_unstake -> (cancel_unstake | wait unstake_delay -> unstake)]
    renew_stake resets the renewal clock; a stake left unrenewed for longer
    than renewal_period is force-unstaked by the expiry sweep. An unstake
    whose own sweep evicts the stake completes with the swept principal.

Expiry sweep:
    calculate_expiry_sweep() is a pure function run at the top of every batch
    and every stake-touching operation. It evicts stale stakes, returns their
    principal, and leaves their unclaimed rewards claimable. There is no
    background timer: an overdue stake stays in the registry until the next
    operation touches the token.

Aggregates:
    total_staked == sum(staked_amount of active records)
    staker_count == number of active records
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, List, Optional, Tuple

from ..core import (
    LedgerView, Move, PendingTransaction, OriginType, SYSTEM_WALLET,
    InsufficientBalance, NonWholeUnit, BelowMinimumStake, UnstakeNotReady,
    StakerNotFound, UnstakeExceedsStake, NoPendingUnstake, StakingDisabled,
)
from ..events import (
    Staked, UnstakeRequested, UnstakeCancelled, Unstaked, StakeRenewed, StakeExpired,
)
from .time_token import (
    StakerRecord, TimeTokenTerms, TimeTokenState,
    load_time_token, build_token_update, elapsed_seconds,
)


@dataclass(frozen=True, slots=True)
class ExpiredStake:
    account: str
    amount: Decimal
    unclaimed_rewards: Decimal


@dataclass(frozen=True, slots=True)
class StakerInfo:
    """Read-only projection of one account's stake."""
    account: str
    staked_amount: Decimal
    staked_units: int
    unclaimed_rewards: Decimal
    last_stake_time: Optional[datetime]
    last_renewal_time: Optional[datetime]
    unstake_request_time: Optional[datetime]
    unstake_request_amount: Decimal
    staked_seconds: int
    unstake_ready: bool
    renewal_deadline: Optional[datetime]
    expired: bool

    @property
    def staked_days(self) -> int:
        return self.staked_seconds // 86400


@dataclass(frozen=True, slots=True)
class NetworkStats:
    """Read-only projection of the registry aggregates and token status."""
    total_staked: Decimal
    staker_count: int
    minimum_stake_units: int
    minimum_stake_amount: Decimal
    genesis_time: datetime
    last_batch_time: datetime
    next_batch_time: datetime
    current_supply: Decimal
    total_unclaimed: Decimal
    undistributed_remainder: Decimal
    timekeepers_at_last_batch: int
    minting_enabled: bool
    staking_enabled: bool


# ============================================================================
# PURE CALCULATION FUNCTIONS - No LedgerView, All Inputs Explicit
# ============================================================================

def is_expired(record: StakerRecord, renewal_period: int, now: datetime) -> bool:
    """True if an active stake has gone unrenewed for longer than renewal_period."""
    if not record.is_active or record.last_renewal_time is None:
        return False
    return now - record.last_renewal_time > timedelta(seconds=renewal_period)


def calculate_expiry_sweep(
    terms: TimeTokenTerms,
    state: TimeTokenState,
    now: datetime,
) -> Tuple[TimeTokenState, Tuple[ExpiredStake, ...]]:
    """
    Evict every overdue stake.

    Each evicted record loses its stake and any pending unstake request and
    keeps its unclaimed rewards; aggregates drop accordingly. Records with
    nothing left are removed.

    Returns:
        (new_state, expired) where expired lists the principal to return.
    """
    expired: List[ExpiredStake] = []
    for account in sorted(state.stakers):
        record = state.stakers[account]
        if not is_expired(record, terms.renewal_period, now):
            continue
        expired.append(ExpiredStake(account, record.staked_amount, record.unclaimed_rewards))
        cleared = replace(
            record,
            staked_amount=Decimal("0"),
            staked_units=0,
            unstake_request_time=None,
            unstake_request_amount=Decimal("0"),
        )
        state = state.with_record(account, cleared)
        state = replace(
            state,
            total_staked=state.total_staked - record.staked_amount,
            staker_count=state.staker_count - 1,
        )
    return state, tuple(expired)


def _whole_units(terms: TimeTokenTerms, amount: Decimal) -> int:
    if amount % terms.stake_unit != 0:
        raise NonWholeUnit(
            f"amount {amount} is not a whole multiple of stake unit {terms.stake_unit}"
        )
    return int(amount // terms.stake_unit)


def calculate_stake(
    terms: TimeTokenTerms,
    state: TimeTokenState,
    account: str,
    amount: Decimal,
    now: datetime,
) -> Tuple[TimeTokenState, int]:
    """
    Add a stake of amount to the account's record.

    Staking also renews: last_stake_time and last_renewal_time become now.
    A pending unstake request is left untouched.

    Returns:
        (new_state, units_added)

    Raises:
        StakingDisabled, ValueError, NonWholeUnit, BelowMinimumStake
    """
    if not state.staking_enabled:
        raise StakingDisabled("staking is disabled")
    if amount <= 0:
        raise ValueError(f"stake amount must be positive, got {amount}")
    units = _whole_units(terms, amount)
    if units < state.minimum_stake_units:
        raise BelowMinimumStake(
            f"{units} stake units is below the minimum of {state.minimum_stake_units}"
        )

    record = state.record(account)
    was_active = record.is_active
    record = replace(
        record,
        staked_amount=record.staked_amount + amount,
        staked_units=record.staked_units + units,
        last_stake_time=now,
        last_renewal_time=now,
    )
    state = state.with_record(account, record)
    state = replace(
        state,
        total_staked=state.total_staked + amount,
        staker_count=state.staker_count + (0 if was_active else 1),
    )
    return state, units


def calculate_request_unstake(
    terms: TimeTokenTerms,
    state: TimeTokenState,
    account: str,
    amount: Optional[Decimal],
    now: datetime,
) -> Tuple[TimeTokenState, Decimal]:
    """
    Start the unstake timer for amount (the whole stake when None).

    A new request replaces any earlier one and restarts the timer.

    Raises:
        StakerNotFound, ValueError, NonWholeUnit, UnstakeExceedsStake
    """
    record = state.record(account)
    if not record.is_active:
        raise StakerNotFound(f"{account} has no active stake")
    if amount is None:
        amount = record.staked_amount
    if amount <= 0:
        raise ValueError(f"unstake amount must be positive, got {amount}")
    _whole_units(terms, amount)
    if amount > record.staked_amount:
        raise UnstakeExceedsStake(
            f"unstake amount {amount} exceeds staked amount {record.staked_amount}"
        )

    record = replace(record, unstake_request_time=now, unstake_request_amount=amount)
    return state.with_record(account, record), amount


def calculate_cancel_unstake(state: TimeTokenState, account: str) -> TimeTokenState:
    """Clear a pending unstake request. Raises NoPendingUnstake if there is none."""
    record = state.record(account)
    if not record.has_pending_unstake:
        raise NoPendingUnstake(f"{account} has no pending unstake request")
    record = replace(record, unstake_request_time=None, unstake_request_amount=Decimal("0"))
    return state.with_record(account, record)


def calculate_unstake(
    terms: TimeTokenTerms,
    state: TimeTokenState,
    account: str,
    now: datetime,
) -> Tuple[TimeTokenState, Decimal]:
    """
    Release the requested principal once unstake_delay has passed.

    Succeeds exactly at the delay. A full unstake zeroes the stake; the
    record is removed unless unclaimed rewards remain.

    Returns:
        (new_state, released_amount)

    Raises:
        UnstakeNotReady: No pending request, or the delay has not elapsed
    """
    record = state.record(account)
    if not record.has_pending_unstake:
        raise UnstakeNotReady(f"{account} has no pending unstake request")
    if now - record.unstake_request_time < timedelta(seconds=terms.unstake_delay):
        ready_at = record.unstake_request_time + timedelta(seconds=terms.unstake_delay)
        raise UnstakeNotReady(f"{account} cannot unstake before {ready_at}")

    released = record.unstake_request_amount
    units = int(released // terms.stake_unit)
    record = replace(
        record,
        staked_amount=record.staked_amount - released,
        staked_units=record.staked_units - units,
        unstake_request_time=None,
        unstake_request_amount=Decimal("0"),
    )
    state = state.with_record(account, record)
    state = replace(
        state,
        total_staked=state.total_staked - released,
        staker_count=state.staker_count - (0 if record.is_active else 1),
    )
    return state, released


def calculate_renewal(state: TimeTokenState, account: str, now: datetime) -> TimeTokenState:
    """Reset the renewal clock. Raises StakerNotFound without an active stake."""
    record = state.record(account)
    if not record.is_active:
        raise StakerNotFound(f"{account} has no active stake to renew")
    return state.with_record(account, replace(record, last_renewal_time=now))


# ============================================================================
# CONVENIENCE FUNCTIONS - load + sweep + calculate + build
# ============================================================================

def sweep_expired_stakes(
    view: LedgerView,
    symbol: str,
) -> Tuple[TimeTokenTerms, TimeTokenState, List[Move], List[Any]]:
    """
    Load the token and run the expiry sweep.

    Returns:
        (terms, swept_state, principal_return_moves, StakeExpired events)
    """
    terms, state = load_time_token(view, symbol)
    now = view.current_time
    state, expired = calculate_expiry_sweep(terms, state, now)
    moves = [
        Move(e.amount, symbol, terms.custody_wallet, e.account, f"expiry_{symbol}")
        for e in expired
    ]
    events = [
        StakeExpired(
            account=e.account,
            amount=e.amount,
            unclaimed_rewards=e.unclaimed_rewards,
            timestamp=now,
        )
        for e in expired
    ]
    return terms, state, moves, events


def _check_account(terms: TimeTokenTerms, account: str) -> None:
    if not account or not account.strip():
        raise ValueError("account cannot be empty")
    if account in (SYSTEM_WALLET, terms.custody_wallet):
        raise ValueError(f"{account} cannot stake")


def compute_stake(
    view: LedgerView,
    symbol: str,
    account: str,
    amount: Decimal,
) -> PendingTransaction:
    """
    Lock amount of the account's balance in custody as stake.

    Principal returned to the same account by this operation's expiry sweep
    counts toward its available balance.

    Raises:
        StakingDisabled, ValueError, NonWholeUnit, BelowMinimumStake,
        InsufficientBalance

    Example:
        pending = compute_stake(ledger, "TIME", "alice", Decimal("3600"))
        ledger.execute(pending)
    """
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    raw = view.get_unit_state(symbol)
    terms, state, moves, events = sweep_expired_stakes(view, symbol)
    _check_account(terms, account)
    now = view.current_time

    state, units = calculate_stake(terms, state, account, amount, now)

    returned = sum((m.quantity for m in moves if m.dest == account), Decimal("0"))
    available = view.get_balance(account, symbol) + returned
    if available < amount:
        raise InsufficientBalance(
            f"{account} has {available} {symbol}, needs {amount} to stake"
        )

    moves.append(Move(amount, symbol, account, terms.custody_wallet, f"stake_{symbol}"))
    events.append(Staked(account=account, amount=amount, units=units, timestamp=now))
    return build_token_update(
        view, symbol, terms, raw, state, moves, events,
        event_type="STAKE", source_id=account, origin_type=OriginType.USER_ACTION,
    )


def compute_request_unstake(
    view: LedgerView,
    symbol: str,
    account: str,
    amount: Optional[Decimal] = None,
) -> PendingTransaction:
    """Start the unstake timer for amount, or for the whole stake when omitted. No funds move."""
    if amount is not None and not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    raw = view.get_unit_state(symbol)
    terms, state, moves, events = sweep_expired_stakes(view, symbol)
    now = view.current_time

    state, requested = calculate_request_unstake(terms, state, account, amount, now)

    events.append(UnstakeRequested(account=account, amount=requested, timestamp=now))
    return build_token_update(
        view, symbol, terms, raw, state, moves, events,
        event_type="REQUEST_UNSTAKE", source_id=account, origin_type=OriginType.USER_ACTION,
    )


def compute_cancel_unstake(view: LedgerView, symbol: str, account: str) -> PendingTransaction:
    """Clear the account's pending unstake request."""
    raw = view.get_unit_state(symbol)
    terms, state, moves, events = sweep_expired_stakes(view, symbol)

    state = calculate_cancel_unstake(state, account)

    events.append(UnstakeCancelled(account=account, timestamp=view.current_time))
    return build_token_update(
        view, symbol, terms, raw, state, moves, events,
        event_type="CANCEL_UNSTAKE", source_id=account, origin_type=OriginType.USER_ACTION,
    )


def compute_unstake(view: LedgerView, symbol: str, account: str) -> PendingTransaction:
    """
    Return the requested principal from custody once the unstake delay has passed.

    If this operation's expiry sweep evicts the account's own stake, the
    sweep has already returned the whole principal and the unstake completes
    with that amount instead of checking the request and delay.

    Raises:
        UnstakeNotReady
    """
    raw = view.get_unit_state(symbol)
    terms, state, moves, events = sweep_expired_stakes(view, symbol)
    now = view.current_time

    swept = [m for m in moves if m.dest == account]
    if swept:
        released = swept[0].quantity
    else:
        state, released = calculate_unstake(terms, state, account, now)
        moves.append(Move(released, symbol, terms.custody_wallet, account, f"unstake_{symbol}"))

    events.append(Unstaked(account=account, amount=released, timestamp=now))
    return build_token_update(
        view, symbol, terms, raw, state, moves, events,
        event_type="UNSTAKE", source_id=account, origin_type=OriginType.USER_ACTION,
    )


def compute_renew_stake(view: LedgerView, symbol: str, account: str) -> PendingTransaction:
    """Reset the account's renewal clock to now."""
    raw = view.get_unit_state(symbol)
    terms, state, moves, events = sweep_expired_stakes(view, symbol)
    now = view.current_time

    state = calculate_renewal(state, account, now)

    events.append(StakeRenewed(account=account, timestamp=now))
    return build_token_update(
        view, symbol, terms, raw, state, moves, events,
        event_type="RENEW_STAKE", source_id=account, origin_type=OriginType.USER_ACTION,
    )


# ============================================================================
# READ-ONLY PROJECTIONS
# ============================================================================

def get_staker_info(view: LedgerView, symbol: str, account: str) -> StakerInfo:
    """
    Project one account's record. Unknown accounts get an all-zero record.

    expired reports a stake the next sweep will evict; the projection itself
    does not evict anything.
    """
    terms, state = load_time_token(view, symbol)
    now = view.current_time
    record = state.record(account)

    staked_seconds = 0
    if record.is_active and record.last_stake_time is not None:
        staked_seconds = elapsed_seconds(record.last_stake_time, now)
    unstake_ready = (
        record.has_pending_unstake
        and now - record.unstake_request_time >= timedelta(seconds=terms.unstake_delay)
    )
    renewal_deadline = None
    if record.is_active and record.last_renewal_time is not None:
        renewal_deadline = record.last_renewal_time + timedelta(seconds=terms.renewal_period)

    return StakerInfo(
        account=account,
        staked_amount=record.staked_amount,
        staked_units=record.staked_units,
        unclaimed_rewards=record.unclaimed_rewards,
        last_stake_time=record.last_stake_time,
        last_renewal_time=record.last_renewal_time,
        unstake_request_time=record.unstake_request_time,
        unstake_request_amount=record.unstake_request_amount,
        staked_seconds=staked_seconds,
        unstake_ready=unstake_ready,
        renewal_deadline=renewal_deadline,
        expired=is_expired(record, terms.renewal_period, now),
    )


def get_network_stats(view: LedgerView, symbol: str) -> NetworkStats:
    """Project the registry aggregates, issued supply and token switches."""
    terms, state = load_time_token(view, symbol)
    return NetworkStats(
        total_staked=state.total_staked,
        staker_count=state.staker_count,
        minimum_stake_units=state.minimum_stake_units,
        minimum_stake_amount=terms.stake_unit * state.minimum_stake_units,
        genesis_time=terms.genesis_time,
        last_batch_time=state.last_batch_time,
        next_batch_time=state.last_batch_time + timedelta(seconds=terms.batch_interval),
        current_supply=Decimal("0") - view.get_balance(SYSTEM_WALLET, symbol),
        total_unclaimed=state.total_unclaimed,
        undistributed_remainder=state.undistributed_remainder,
        timekeepers_at_last_batch=state.timekeepers_at_last_batch,
        minting_enabled=state.minting_enabled,
        staking_enabled=state.staking_enabled,
    )
