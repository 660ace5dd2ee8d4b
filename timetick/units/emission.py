"""
emission.py - Emission Engine

Mints the time token in batches:

    elapsed = exact time since last_batch_time, in seconds (microsecond resolution)
    amount  = elapsed * emission_rate, truncated to the smallest token unit

Nothing below one smallest unit is lost per batch, and a sum of truncated
batch amounts never exceeds the truncated genesis formula.

A batch is due once batch_interval seconds have passed since the previous
one. Each batch runs the expiry sweep, routes the amount through the
distribution router, accrues the timekeeper pool, and advances
last_batch_time, all in one state change applied atomically with the
issuance moves.

Timekeeper lag:
    The split for batch N is decided by timekeepers_at_last_batch, the active
    staker count recorded when batch N-1 closed. Stakers who join during the
    interval first share in the batch after next.

    One exception: if the expiry sweep at the start of batch N leaves
    total_staked at zero, batch N uses the no-staker split even though
    timekeepers_at_last_batch > 0. No timekeeper pool is minted then.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, List, Tuple

from ..core import (
    LedgerView, PendingTransaction, OriginType,
    BatchNotDue, MintingDisabled,
    empty_pending_transaction, quantize_amount,
)
from ..events import TokensMinted, FundDistribution, RewardsProcessed
from .time_token import (
    TimeTokenTerms, TimeTokenState,
    build_token_update, elapsed_time,
)
from .distribution import Distribution, calculate_distribution, distribution_moves
from .rewards import AccrualResult, calculate_reward_accrual, apply_accrual
from .stake_registry import sweep_expired_stakes


# ============================================================================
# PURE CALCULATION FUNCTIONS - No LedgerView, All Inputs Explicit
# ============================================================================

def calculate_emission_amount(elapsed: Decimal, rate: Decimal, decimals: int) -> Decimal:
    """Tokens due for elapsed seconds, truncated to the smallest unit."""
    if elapsed < 0:
        raise ValueError(f"elapsed cannot be negative, got {elapsed}")
    return quantize_amount(Decimal(elapsed) * rate, decimals)


def check_batch_due(terms: TimeTokenTerms, state: TimeTokenState, now: datetime) -> Decimal:
    """
    Check that a batch may run now and return the exact seconds it covers.

    Raises:
        MintingDisabled: If minting is switched off
        BatchNotDue: If batch_interval has not passed since last_batch_time
    """
    if not state.minting_enabled:
        raise MintingDisabled("minting is disabled")
    if now - state.last_batch_time < timedelta(seconds=terms.batch_interval):
        next_batch = state.last_batch_time + timedelta(seconds=terms.batch_interval)
        raise BatchNotDue(f"Batch period not reached: next batch at {next_batch}")
    return elapsed_time(state.last_batch_time, now)


def timekeepers_active(state: TimeTokenState) -> bool:
    """Whether this batch pays timekeepers: active at the last boundary and still staked now."""
    return state.timekeepers_at_last_batch > 0 and state.total_staked > 0


def calculate_batch(
    terms: TimeTokenTerms,
    state: TimeTokenState,
    amount: Decimal,
    now: datetime,
) -> Tuple[TimeTokenState, Distribution, AccrualResult]:
    """
    Route amount, accrue the timekeeper pool, and close the batch at now.

    state must already be swept. Closing the batch records the current active
    staker count as the timekeeper snapshot for the next batch.
    """
    distribution = calculate_distribution(amount, terms, timekeepers_active(state))
    accrual = calculate_reward_accrual(
        distribution.timekeepers, state.stakers, state.total_staked, terms.decimals
    )
    state = apply_accrual(state, accrual)
    state = replace(
        state,
        last_batch_time=now,
        timekeepers_at_last_batch=state.staker_count,
    )
    return state, distribution, accrual


def batch_events(
    amount: Decimal,
    distribution: Distribution,
    accrual: AccrualResult,
    validated: bool,
    correction_factor: Decimal,
    now: datetime,
) -> List[Any]:
    """The TokensMinted, FundDistribution and RewardsProcessed events of one batch."""
    return [
        TokensMinted(amount=amount, validated=validated),
        FundDistribution(
            dev_amount=distribution.treasury,
            stability_amount=distribution.reserve,
            timekeepers_amount=distribution.timekeepers,
            valid_timekeepers=distribution.timekeepers_active,
            timestamp=now,
        ),
        RewardsProcessed(
            total_rewards=amount,
            dev_share=distribution.dev_share,
            staker_share=accrual.distributed,
            correction_factor=correction_factor,
        ),
    ]


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

def compute_mint_batch(
    view: LedgerView,
    symbol: str,
    origin_type: OriginType = OriginType.CONTRACT,
) -> PendingTransaction:
    """
    Mint everything due since the last batch.

    Returns:
        PendingTransaction with:
        - moves: expired principal returned, then issuance to each fund
        - state_changes: swept registry, accrued rewards, new last_batch_time
        - events: StakeExpired..., TokensMinted, FundDistribution, RewardsProcessed

    Raises:
        MintingDisabled, BatchNotDue

    Example:
        ledger.advance_time(genesis + timedelta(seconds=7200))
        ledger.execute(compute_mint_batch(ledger, "TIME"))
        # treasury 5040, reserve 2160
    """
    raw = view.get_unit_state(symbol)
    terms, state, moves, events = sweep_expired_stakes(view, symbol)
    now = view.current_time

    elapsed = check_batch_due(terms, state, now)
    amount = calculate_emission_amount(elapsed, terms.emission_rate, terms.decimals)

    state, distribution, accrual = calculate_batch(terms, state, amount, now)

    moves.extend(distribution_moves(symbol, terms, distribution, f"mint_batch_{symbol}"))
    events.extend(batch_events(amount, distribution, accrual, False, Decimal("1"), now))
    return build_token_update(
        view, symbol, terms, raw, state, moves, events,
        event_type="MINT_BATCH", origin_type=origin_type,
    )


# ============================================================================
# SMART CONTRACT
# ============================================================================

def time_token_contract(
    view: LedgerView,
    symbol: str,
    timestamp: datetime,
) -> PendingTransaction:
    """
    SmartContract function for automatic batch minting.

    Returns a mint batch when one is due, otherwise an empty transaction.
    """
    state = view.get_unit_state(symbol)
    if not state.get('minting_enabled', True):
        return empty_pending_transaction(view)

    interval = timedelta(seconds=state['batch_interval'])
    if timestamp - state['last_batch_time'] < interval:
        return empty_pending_transaction(view)

    return compute_mint_batch(view, symbol, origin_type=OriginType.LIFECYCLE)
