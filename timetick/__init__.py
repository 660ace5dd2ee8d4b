"""
timetick - Time-Linked Token Emission and Staking Rewards

A double-entry ledger that mints a token at a fixed rate per elapsed second,
splits each batch between a treasury, a stability reserve and a timekeeper
pool, and shares the pool among stakers in proportion to their stake.

Usage:
    from datetime import datetime, timedelta
    from decimal import Decimal
    from timetick import Ledger, TimeTickEngine

    genesis = datetime(2025, 1, 1)
    ledger = Ledger("main", initial_time=genesis)
    engine = TimeTickEngine.deploy(ledger, "TIME")

    # Two hours without stakers: 70% treasury, 30% reserve
    ledger.advance_time(genesis + timedelta(hours=2))
    engine.mint_batch()

    # Fund a staker from the treasury and lock one stake unit
    ledger.register_wallet("alice")
    engine.transfer("treasury", "alice", Decimal("3600"))
    engine.stake("alice", Decimal("3600"))
"""

# Core types
from .core import (
    LedgerView,
    SmartContract,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    empty_pending_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    LedgerError,
    InsufficientBalance,
    BalanceConstraintViolation,
    TransferRuleViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    Unauthorized,
    EmissionError,
    BatchNotDue,
    MintingDisabled,
    StakeError,
    NonWholeUnit,
    BelowMinimumStake,
    UnstakeNotReady,
    StakerNotFound,
    UnstakeExceedsStake,
    NoPendingUnstake,
    StakingDisabled,
    emission_transfer_rule,
    to_base_units,
    from_base_units,
    quantize_amount,
    SYSTEM_WALLET,
    TOKEN_DECIMALS,
    UNIT_TYPE_TIME_TOKEN,
)

# Ledger
from .ledger import Ledger

# Events
from .events import (
    TokensMinted,
    FundDistribution,
    RewardsProcessed,
    SupplyValidation,
    Staked,
    UnstakeRequested,
    UnstakeCancelled,
    Unstaked,
    StakeRenewed,
    StakeExpired,
    RewardsClaimed,
    ParameterChanged,
)

# Time token
from .units import (
    DistributionSplit,
    StakerRecord,
    TimeTokenTerms,
    TimeTokenState,
    STAKER_SPLIT,
    NO_STAKER_SPLIT,
    DEFAULT_BATCH_INTERVAL,
    DEFAULT_EMISSION_RATE,
    DEFAULT_STAKE_UNIT,
    DEFAULT_UNSTAKE_DELAY,
    DEFAULT_RENEWAL_PERIOD,
    DEFAULT_MINIMUM_STAKE_UNITS,
    create_time_token_unit,
    load_time_token,
    to_state_dict,
    compute_set_minimum_stake_units,
    compute_toggle_minting,
    compute_toggle_staking,
    ExpiredStake,
    StakerInfo,
    NetworkStats,
    calculate_expiry_sweep,
    compute_stake,
    compute_request_unstake,
    compute_cancel_unstake,
    compute_unstake,
    compute_renew_stake,
    get_staker_info,
    get_network_stats,
    Distribution,
    calculate_distribution,
    split_amount,
    AccrualResult,
    calculate_reward_accrual,
    compute_claim_rewards,
    calculate_emission_amount,
    compute_mint_batch,
    time_token_contract,
    SupplyReport,
    calculate_supply_report,
    validate_supply,
    compute_mint_batch_validated,
)

# Engines
from .engine import TimeTickEngine
from .lifecycle_engine import LifecycleEngine, default_contracts


__all__ = [
    # Core
    'LedgerView', 'SmartContract', 'Move', 'Transaction', 'PendingTransaction',
    'TransactionOrigin', 'OriginType', 'build_transaction', 'empty_pending_transaction',
    'Unit', 'UnitStateChange', 'ExecuteResult',
    'emission_transfer_rule', 'to_base_units', 'from_base_units', 'quantize_amount',
    'SYSTEM_WALLET', 'TOKEN_DECIMALS', 'UNIT_TYPE_TIME_TOKEN',
    # Errors
    'LedgerError', 'InsufficientBalance', 'BalanceConstraintViolation',
    'TransferRuleViolation', 'UnitNotRegistered', 'WalletNotRegistered', 'Unauthorized',
    'EmissionError', 'BatchNotDue', 'MintingDisabled',
    'StakeError', 'NonWholeUnit', 'BelowMinimumStake', 'UnstakeNotReady',
    'StakerNotFound', 'UnstakeExceedsStake', 'NoPendingUnstake', 'StakingDisabled',
    # Ledger
    'Ledger',
    # Events
    'TokensMinted', 'FundDistribution', 'RewardsProcessed', 'SupplyValidation',
    'Staked', 'UnstakeRequested', 'UnstakeCancelled', 'Unstaked', 'StakeRenewed',
    'StakeExpired', 'RewardsClaimed', 'ParameterChanged',
    # Time token
    'DistributionSplit', 'StakerRecord', 'TimeTokenTerms', 'TimeTokenState',
    'STAKER_SPLIT', 'NO_STAKER_SPLIT',
    'DEFAULT_BATCH_INTERVAL', 'DEFAULT_EMISSION_RATE', 'DEFAULT_STAKE_UNIT',
    'DEFAULT_UNSTAKE_DELAY', 'DEFAULT_RENEWAL_PERIOD', 'DEFAULT_MINIMUM_STAKE_UNITS',
    'create_time_token_unit', 'load_time_token', 'to_state_dict',
    'compute_set_minimum_stake_units', 'compute_toggle_minting', 'compute_toggle_staking',
    # Stake registry
    'ExpiredStake', 'StakerInfo', 'NetworkStats', 'calculate_expiry_sweep',
    'compute_stake', 'compute_request_unstake', 'compute_cancel_unstake',
    'compute_unstake', 'compute_renew_stake', 'get_staker_info', 'get_network_stats',
    # Distribution and rewards
    'Distribution', 'calculate_distribution', 'split_amount',
    'AccrualResult', 'calculate_reward_accrual', 'compute_claim_rewards',
    # Emission and supply
    'calculate_emission_amount', 'compute_mint_batch', 'time_token_contract',
    'SupplyReport', 'calculate_supply_report', 'validate_supply',
    'compute_mint_batch_validated',
    # Engines
    'TimeTickEngine', 'LifecycleEngine', 'default_contracts',
]

__version__ = '1.0.0'
