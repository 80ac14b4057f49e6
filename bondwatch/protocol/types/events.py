from pydantic import BaseModel
from typing import Optional


class RewardEvent(BaseModel):
    """BondingManager.Reward(transcoder, amount)"""
    transcoder: str
    block_number: int
    amount: int = 0
    round: Optional[int] = None     # Round the event landed in, if known


class BondEvent(BaseModel):
    delegator: str
    new_delegate: str
    old_delegate: str = ""
    additional_amount: int = 0
    bonded_amount: int = 0
    block_number: int = 0


class UnbondEvent(BaseModel):
    delegator: str
    delegate: str
    unbonding_lock_id: int
    amount: int
    withdraw_round: int
    block_number: int = 0


class RebondEvent(BaseModel):
    delegator: str
    delegate: str
    unbonding_lock_id: int
    amount: int
    block_number: int = 0


class WithdrawStakeEvent(BaseModel):
    delegator: str
    unbonding_lock_id: int
    amount: int
    withdraw_round: int
    block_number: int = 0
