from pydantic import BaseModel, Field
from typing import Dict
from .common import DelegatorStatus, RewardFormula


class Delegator(BaseModel):
    """Composite delegator view assembled from chain reads."""
    address: str
    allowance: int = 0                 # Token allowance granted to the BondingManager
    bonded_amount: int = 0
    delegate_address: str = ""         # "" when unset
    delegated_amount: int = 0
    fees: int = 0
    last_claim_round: int = 0
    pending_fees: int = 0
    pending_stake: int = 0
    start_round: int = 0
    status: DelegatorStatus = DelegatorStatus.UNBONDED
    withdraw_round: int = 0            # Of the most recent unbonding lock
    withdraw_amount: int = 0           # Of the most recent unbonding lock
    next_unbonding_lock_id: int = 0


class IndexedDelegator(BaseModel):
    """Locally indexed delegator record, maintained from chain events."""
    address: str
    delegate: str = ""
    bonded_amount: int = 0
    pending_stake: int = 0
    last_claim_round: int = 0
    next_unbonding_lock_id: int = 0

    # round -> reward tokens folded into pending_stake, for rounds not yet claimed
    credited_rounds: Dict[int, int] = Field(default_factory=dict)


class UnbondingLock(BaseModel):
    id: int
    delegator: str
    amount: int
    withdraw_round: int
    withdrawn: bool = False

    @property
    def key(self) -> str:
        return make_lock_id(self.delegator, self.id)


class Share(BaseModel):
    """A delegator's reward tokens for one round of one transcoder's pool."""
    id: str                 # "<delegator>:<round>"
    delegator: str
    round: int
    pool: str               # "<transcoder>:<round>"
    reward_tokens: int
    formula: RewardFormula


def make_share_id(delegator: str, round_id: int) -> str:
    return f"{delegator}:{round_id}"


def make_pool_id(transcoder: str, round_id: int) -> str:
    return f"{transcoder}:{round_id}"


def make_lock_id(delegator: str, lock_id: int) -> str:
    return f"{delegator}:{lock_id}"
