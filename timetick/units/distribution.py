"""
distribution.py - Distribution Router

Splits a minted amount between the treasury, the stability reserve and the
timekeeper pool.

Policy:
    - With active timekeepers the staker split applies; otherwise the
      no-staker split applies and the timekeeper share is zero.
    - Reserve and timekeeper shares are floored to the token's smallest unit.
    - The treasury receives everything else, so integer remainders go to the
      treasury and the three shares always add up to the minted amount.
    - The timekeeper share is never paid to a staker directly. It is minted
      into custody as a pool and handed to reward accrual.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Tuple

from ..core import Move, SYSTEM_WALLET, to_base_units, from_base_units
from .time_token import DistributionSplit, TimeTokenTerms


@dataclass(frozen=True, slots=True)
class Distribution:
    """Result of routing one minted amount."""
    treasury: Decimal
    reserve: Decimal
    timekeepers: Decimal
    timekeepers_active: bool

    @property
    def total(self) -> Decimal:
        return self.treasury + self.reserve + self.timekeepers

    @property
    def dev_share(self) -> Decimal:
        """Treasury plus reserve: everything that is not a staker reward."""
        return self.treasury + self.reserve


def split_amount(amount: Decimal, split: DistributionSplit, decimals: int) -> Tuple[Decimal, Decimal, Decimal]:
    """
    Split amount by the given fractions in exact base-unit arithmetic.

    Returns:
        (treasury, reserve, timekeepers), summing exactly to amount

    Example:
        split_amount(Decimal("7200"), NO_STAKER_SPLIT, 18)
        # (Decimal("5040"), Decimal("2160"), Decimal("0"))
    """
    base = to_base_units(amount, decimals)
    amount = from_base_units(base, decimals)
    reserve = to_base_units(amount * split.reserve, decimals)
    timekeepers = to_base_units(amount * split.timekeepers, decimals)
    treasury = base - reserve - timekeepers
    return (
        from_base_units(treasury, decimals),
        from_base_units(reserve, decimals),
        from_base_units(timekeepers, decimals),
    )


def calculate_distribution(
    amount: Decimal,
    terms: TimeTokenTerms,
    timekeepers_active: bool,
) -> Distribution:
    """
    Route a minted amount using the split for the current timekeeper status.

    timekeepers_active must reflect the staker set at the previous batch
    boundary, not stakers who joined during the interval being minted.
    """
    if amount < 0:
        raise ValueError(f"amount cannot be negative, got {amount}")
    split = terms.staker_split if timekeepers_active else terms.no_staker_split
    treasury, reserve, timekeepers = split_amount(amount, split, terms.decimals)
    return Distribution(
        treasury=treasury,
        reserve=reserve,
        timekeepers=timekeepers,
        timekeepers_active=timekeepers_active,
    )


def distribution_moves(symbol: str, terms: TimeTokenTerms, distribution: Distribution, contract_id: str) -> List[Move]:
    """Issuance moves from SYSTEM_WALLET to each fund; zero shares are skipped."""
    moves = []
    for dest, quantity in (
        (terms.treasury_wallet, distribution.treasury),
        (terms.reserve_wallet, distribution.reserve),
        (terms.custody_wallet, distribution.timekeepers),
    ):
        if quantity > 0:
            moves.append(Move(quantity, symbol, SYSTEM_WALLET, dest, contract_id))
    return moves
