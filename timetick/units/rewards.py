"""
rewards.py - Proportional Reward Accrual and Claims

Each batch's timekeeper pool P is shared among active stakers:

    share_i = floor(P * staked_i / total_staked)      (in smallest units)

Shares are truncated per staker, so their sum never exceeds P. The truncated
remainder stays in custody and is added to the token's running
undistributed_remainder, where it stays observable.

Claims pay a staker's unclaimed rewards out of custody and never touch
principal.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, Mapping

from ..core import (
    LedgerView, Move, PendingTransaction, OriginType,
    empty_pending_transaction, to_base_units, from_base_units,
)
from ..events import RewardsClaimed
from .time_token import (
    StakerRecord, TimeTokenState,
    load_time_token, build_token_update,
)


@dataclass(frozen=True, slots=True)
class AccrualResult:
    """Per-staker shares of one pool, plus the truncation remainder."""
    shares: Mapping[str, Decimal]
    distributed: Decimal
    remainder: Decimal


def calculate_reward_accrual(
    pool: Decimal,
    stakers: Mapping[str, StakerRecord],
    total_staked: Decimal,
    decimals: int,
) -> AccrualResult:
    """
    Share a timekeeper pool among active stakers in proportion to their stake.

    Inactive records are ignored. With no stake at all the whole pool is
    remainder.

    Example:
        result = calculate_reward_accrual(Decimal("2520"), stakers, Decimal("3600"), 18)
        result.shares  # {'alice': Decimal('2520')}
    """
    pool_base = to_base_units(pool, decimals)
    total_base = to_base_units(total_staked, decimals)

    shares: Dict[str, Decimal] = {}
    distributed_base = 0
    if pool_base > 0 and total_base > 0:
        for account in sorted(stakers):
            record = stakers[account]
            if not record.is_active:
                continue
            share_base = pool_base * to_base_units(record.staked_amount, decimals) // total_base
            shares[account] = from_base_units(share_base, decimals)
            distributed_base += share_base

    return AccrualResult(
        shares=shares,
        distributed=from_base_units(distributed_base, decimals),
        remainder=from_base_units(pool_base - distributed_base, decimals),
    )


def apply_accrual(state: TimeTokenState, accrual: AccrualResult) -> TimeTokenState:
    """Credit each share to unclaimed rewards and book the remainder."""
    stakers = dict(state.stakers)
    for account, share in accrual.shares.items():
        record = stakers[account]
        stakers[account] = replace(record, unclaimed_rewards=record.unclaimed_rewards + share)
    return replace(
        state,
        stakers=stakers,
        undistributed_remainder=state.undistributed_remainder + accrual.remainder,
    )


def compute_claim_rewards(view: LedgerView, symbol: str, account: str) -> PendingTransaction:
    """
    Pay out an account's unclaimed rewards from custody.

    Returns an empty transaction when there is nothing to claim. The record
    is removed if it holds no stake either.
    """
    terms, state = load_time_token(view, symbol)
    record = state.record(account)
    amount = record.unclaimed_rewards
    if amount <= 0:
        return empty_pending_transaction(view)

    new_state = state.with_record(account, replace(record, unclaimed_rewards=Decimal("0")))
    moves = [Move(amount, symbol, terms.custody_wallet, account, f"claim_{symbol}")]
    events = [RewardsClaimed(account=account, amount=amount, timestamp=view.current_time)]
    return build_token_update(
        view, symbol, terms, view.get_unit_state(symbol), new_state, moves, events,
        event_type="CLAIM_REWARDS", source_id=account, origin_type=OriginType.USER_ACTION,
    )
