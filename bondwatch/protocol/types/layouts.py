# MIT License
# Copyright (c) 2025 Hashborn

"""
Positional layouts of BondingManager read calls.

Contract reads return fixed-width tuples. The delegator tuple changed shape
with the unbonding locks upgrade, so decoding is keyed by the block height
the read refers to.
"""

from typing import Optional, Sequence
from pydantic import BaseModel
from .transcoder import EarningsPool
from ..config.params import EMPTY_ADDRESS
from ..crypto.addresses import normalize_address

# Genesis BondingManager
GENESIS_DELEGATOR_FIELDS = (
    "bonded_amount",
    "fees",
    "delegate_address",
    "delegated_amount",
    "start_round",
    "withdraw_round",
    "last_claim_round",
)

# Unbonding locks and later
LOCK_DELEGATOR_FIELDS = (
    "bonded_amount",
    "fees",
    "delegate_address",
    "delegated_amount",
    "start_round",
    "last_claim_round",
    "next_unbonding_lock_id",
)

TRANSCODER_FIELDS = (
    "last_reward_round",
    "reward_cut",
    "fee_share",
    "last_active_stake_update_round",
    "activation_round",
    "deactivation_round",
)

EARNINGS_POOL_FIELDS = (
    "reward_pool",
    "fee_pool",
    "total_stake",
    "claimable_stake",
    "transcoder_reward_cut",
    "transcoder_fee_share",
    "transcoder_reward_pool",
    "transcoder_fee_pool",
    "has_transcoder_reward_fee_pool",
)

UNBONDING_LOCK_FIELDS = ("amount", "withdraw_round")


class ChainDelegator(BaseModel):
    bonded_amount: int = 0
    fees: int = 0
    delegate_address: str = ""
    delegated_amount: int = 0
    start_round: int = 0
    last_claim_round: int = 0
    next_unbonding_lock_id: int = 0
    withdraw_round: Optional[int] = None    # Genesis layout only


class ChainTranscoder(BaseModel):
    last_reward_round: int = 0
    reward_cut: int = 0
    fee_share: int = 0
    last_active_stake_update_round: int = 0
    activation_round: int = 0
    deactivation_round: int = 0


class ChainUnbondingLock(BaseModel):
    amount: int = 0
    withdraw_round: int = 0


def _zip_fields(names: Sequence[str], values: Sequence, what: str) -> dict:
    if len(values) < len(names):
        raise ValueError(f"{what}: expected {len(names)} fields, got {len(values)}")
    return dict(zip(names, values))


def delegator_fields_for_block(block_number: Optional[int], lock_layout_height: int) -> Sequence[str]:
    """Layout in force at a block. None means latest."""
    if block_number is not None and block_number < lock_layout_height:
        return GENESIS_DELEGATOR_FIELDS
    return LOCK_DELEGATOR_FIELDS


def decode_delegator(values: Sequence, fields: Sequence[str] = LOCK_DELEGATOR_FIELDS) -> ChainDelegator:
    data = _zip_fields(fields, values, "getDelegator")
    data["delegate_address"] = normalize_address(data.get("delegate_address"))
    return ChainDelegator(**data)


def encode_delegator(d: ChainDelegator, fields: Sequence[str] = LOCK_DELEGATOR_FIELDS) -> tuple:
    values = []
    for name in fields:
        if name == "delegate_address":
            values.append(d.delegate_address or EMPTY_ADDRESS)
        else:
            values.append(getattr(d, name) or 0)
    return tuple(values)


def encode_earnings_pool(pool: EarningsPool) -> tuple:
    return tuple(getattr(pool, name) for name in EARNINGS_POOL_FIELDS)


def encode_transcoder(t: ChainTranscoder) -> tuple:
    return tuple(getattr(t, name) for name in TRANSCODER_FIELDS)


def decode_transcoder(values: Sequence) -> ChainTranscoder:
    return ChainTranscoder(**_zip_fields(TRANSCODER_FIELDS, values, "getTranscoder"))


def decode_earnings_pool(values: Sequence) -> EarningsPool:
    return EarningsPool(**_zip_fields(EARNINGS_POOL_FIELDS, values, "getTranscoderEarningsPoolForRound"))


def decode_unbonding_lock(values: Sequence) -> ChainUnbondingLock:
    return ChainUnbondingLock(**_zip_fields(UNBONDING_LOCK_FIELDS, values, "getDelegatorUnbondingLock"))
