"""
events.py - Observable events emitted by the time token

Every event is a frozen dataclass with a fixed field set. Events travel in
PendingTransaction.events, are copied onto the executed Transaction, and are
appended to Ledger.event_log once the transaction is applied.

Batch events (one set per mint):
    TokensMinted, FundDistribution, RewardsProcessed, SupplyValidation

Staker events:
    Staked, UnstakeRequested, UnstakeCancelled, Unstaked, StakeRenewed,
    StakeExpired, RewardsClaimed

Governance events:
    ParameterChanged
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional


@dataclass(frozen=True, slots=True)
class TokensMinted:
    amount: Decimal
    validated: bool


@dataclass(frozen=True, slots=True)
class FundDistribution:
    """How one minted amount was split between the funds and the timekeeper pool."""
    dev_amount: Decimal
    stability_amount: Decimal
    timekeepers_amount: Decimal
    valid_timekeepers: bool
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class RewardsProcessed:
    """
    Summary of a batch's reward processing.

    dev_share is everything paid to treasury and reserve; staker_share is what
    was actually credited to stakers. The difference between total_rewards and
    their sum is the accrual remainder kept in custody.
    """
    total_rewards: Decimal
    dev_share: Decimal
    staker_share: Decimal
    correction_factor: Decimal


@dataclass(frozen=True, slots=True)
class SupplyValidation:
    total_seconds_since_genesis: int
    previous_supply: Decimal
    expected_supply: Decimal
    adjustment_amount: Decimal
    validated: bool


@dataclass(frozen=True, slots=True)
class Staked:
    account: str
    amount: Decimal
    units: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class UnstakeRequested:
    account: str
    amount: Decimal
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class UnstakeCancelled:
    account: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class Unstaked:
    account: str
    amount: Decimal
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class StakeRenewed:
    account: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class StakeExpired:
    """A stake evicted by the expiry sweep; its principal has been returned."""
    account: str
    amount: Decimal
    unclaimed_rewards: Decimal
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class RewardsClaimed:
    account: str
    amount: Decimal
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class ParameterChanged:
    name: str
    old_value: Any
    new_value: Any
    changed_by: str
    timestamp: Optional[datetime] = None
