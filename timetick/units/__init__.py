"""
Units module - The time token and its lifecycle operations.

- time_token: term sheet, state snapshot, unit factory, governance
- stake_registry: stake lifecycle, expiry sweep, read-only projections
- distribution: treasury / reserve / timekeeper split
- rewards: proportional accrual and claims
- emission: batch minting and the lifecycle contract
- supply: genesis-anchored supply validation

All unit factories and related functions are re-exported here for convenience.
"""

from .time_token import (
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
)

from .stake_registry import (
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
)

from .distribution import (
    Distribution,
    calculate_distribution,
    split_amount,
)

from .rewards import (
    AccrualResult,
    calculate_reward_accrual,
    compute_claim_rewards,
)

from .emission import (
    calculate_emission_amount,
    compute_mint_batch,
    time_token_contract,
)

from .supply import (
    SupplyReport,
    calculate_supply_report,
    validate_supply,
    compute_mint_batch_validated,
)


__all__ = [
    # Token
    'DistributionSplit',
    'StakerRecord',
    'TimeTokenTerms',
    'TimeTokenState',
    'STAKER_SPLIT',
    'NO_STAKER_SPLIT',
    'DEFAULT_BATCH_INTERVAL',
    'DEFAULT_EMISSION_RATE',
    'DEFAULT_STAKE_UNIT',
    'DEFAULT_UNSTAKE_DELAY',
    'DEFAULT_RENEWAL_PERIOD',
    'DEFAULT_MINIMUM_STAKE_UNITS',
    'create_time_token_unit',
    'load_time_token',
    'to_state_dict',
    'compute_set_minimum_stake_units',
    'compute_toggle_minting',
    'compute_toggle_staking',
    # Stake registry
    'ExpiredStake',
    'StakerInfo',
    'NetworkStats',
    'calculate_expiry_sweep',
    'compute_stake',
    'compute_request_unstake',
    'compute_cancel_unstake',
    'compute_unstake',
    'compute_renew_stake',
    'get_staker_info',
    'get_network_stats',
    # Distribution
    'Distribution',
    'calculate_distribution',
    'split_amount',
    # Rewards
    'AccrualResult',
    'calculate_reward_accrual',
    'compute_claim_rewards',
    # Emission
    'calculate_emission_amount',
    'compute_mint_batch',
    'time_token_contract',
    # Supply
    'SupplyReport',
    'calculate_supply_report',
    'validate_supply',
    'compute_mint_batch_validated',
]
