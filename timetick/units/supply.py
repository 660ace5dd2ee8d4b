"""
supply.py - Supply Validation and Reconciliation

Compares the issued supply with the genesis-anchored formula:

    expected_supply = exact seconds since genesis * emission_rate, truncated
    current_supply  = total issued (negated SYSTEM_WALLET balance)
    diff            = expected_supply - current_supply

Each plain batch truncates only below the smallest token unit and a skipped
or late batch never overshoots, so after N plain batches 0 <= diff <= N
smallest units. The validated batch mints exactly diff through the regular
distribution path, which brings the issued supply back to the formula
without double counting anything earlier batches already minted. Negative
drift is reported, never burned.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import NamedTuple

from ..core import LedgerView, PendingTransaction, OriginType, SYSTEM_WALLET
from ..events import SupplyValidation
from .time_token import (
    TimeTokenTerms, load_time_token, build_token_update,
    elapsed_seconds, elapsed_time,
)
from .distribution import distribution_moves
from .emission import calculate_batch, batch_events, calculate_emission_amount, check_batch_due
from .stake_registry import sweep_expired_stakes


class SupplyReport(NamedTuple):
    valid: bool
    total_elapsed_seconds: int
    expected_supply: Decimal
    current_supply: Decimal
    diff: Decimal


def calculate_supply_report(
    terms: TimeTokenTerms,
    now: datetime,
    current_supply: Decimal,
) -> SupplyReport:
    """Compare current_supply with the genesis formula at now."""
    seconds = elapsed_seconds(terms.genesis_time, now)
    expected = calculate_emission_amount(
        elapsed_time(terms.genesis_time, now), terms.emission_rate, terms.decimals
    )
    diff = expected - current_supply
    return SupplyReport(
        valid=diff >= 0,
        total_elapsed_seconds=seconds,
        expected_supply=expected,
        current_supply=current_supply,
        diff=diff,
    )


def issued_supply(view: LedgerView, symbol: str) -> Decimal:
    return Decimal("0") - view.get_balance(SYSTEM_WALLET, symbol)


def validate_supply(view: LedgerView, symbol: str) -> SupplyReport:
    """
    Read-only supply check.

    Example:
        report = validate_supply(ledger, "TIME")
        valid, seconds, expected, current, diff = report
    """
    terms, _ = load_time_token(view, symbol)
    return calculate_supply_report(terms, view.current_time, issued_supply(view, symbol))


def compute_mint_batch_validated(
    view: LedgerView,
    symbol: str,
    origin_type: OriginType = OriginType.CONTRACT,
) -> PendingTransaction:
    """
    Batch that mints the supply shortfall instead of the elapsed-time amount.

    Preconditions are those of compute_mint_batch. Then, after the expiry
    sweep:
        diff > 0   mint diff through the distribution router, close the batch
        diff == 0  close the batch without minting
        diff < 0   mint nothing and leave last_batch_time alone

    A SupplyValidation event is always emitted; a mint also emits
    TokensMinted(validated=True), FundDistribution and RewardsProcessed,
    whose correction_factor is diff over the plain batch amount.

    Raises:
        MintingDisabled, BatchNotDue
    """
    raw = view.get_unit_state(symbol)
    terms, state, moves, events = sweep_expired_stakes(view, symbol)
    now = view.current_time

    elapsed = check_batch_due(terms, state, now)
    report = calculate_supply_report(terms, now, issued_supply(view, symbol))

    minted = Decimal("0")
    batch = []
    if report.diff > 0:
        minted = report.diff
        nominal = calculate_emission_amount(elapsed, terms.emission_rate, terms.decimals)
        correction_factor = minted / nominal
        state, distribution, accrual = calculate_batch(terms, state, minted, now)
        moves.extend(distribution_moves(symbol, terms, distribution, f"mint_validated_{symbol}"))
        batch = batch_events(minted, distribution, accrual, True, correction_factor, now)
    elif report.diff == 0:
        state = replace(state, last_batch_time=now, timekeepers_at_last_batch=state.staker_count)

    events.append(SupplyValidation(
        total_seconds_since_genesis=report.total_elapsed_seconds,
        previous_supply=report.current_supply,
        expected_supply=report.expected_supply,
        adjustment_amount=minted,
        validated=report.valid,
    ))
    events.extend(batch)
    return build_token_update(
        view, symbol, terms, raw, state, moves, events,
        event_type="MINT_BATCH_VALIDATED", origin_type=origin_type,
    )
