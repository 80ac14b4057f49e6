from pydantic import BaseModel
from .common import TranscoderStatus
from ..config.params import EMPTY_ADDRESS


class Transcoder(BaseModel):
    address: str
    active: bool = False               # Occupies a slot in the active set
    status: TranscoderStatus = TranscoderStatus.NOT_REGISTERED
    reward_cut: int = 0                # Parts of PERC_DIVISOR kept by the transcoder
    fee_share: int = 0                 # Parts of PERC_DIVISOR shared with delegators
    last_reward_round: int = 0
    activation_round: int = 0
    deactivation_round: int = 0
    last_active_stake_update_round: int = 0
    total_stake: int = 0


class EarningsPool(BaseModel):
    """Per-transcoder, per-round snapshot. Never mutated locally."""
    reward_pool: int = 0
    fee_pool: int = 0
    total_stake: int = 0
    claimable_stake: int = 0
    transcoder_reward_cut: int = 0
    transcoder_fee_share: int = 0
    transcoder_reward_pool: int = 0
    transcoder_fee_pool: int = 0
    has_transcoder_reward_fee_pool: bool = False


class ActiveSetEntry(BaseModel):
    address: str
    total_stake: int


class Hint(BaseModel):
    """Neighbours of a transcoder in the simulated pool order."""
    new_pos_prev: str = EMPTY_ADDRESS
    new_pos_next: str = EMPTY_ADDRESS


class BondHints(BaseModel):
    """Hints for bondWithHint: the old delegate's new position and the new delegate's."""
    old_delegate: Hint = Hint()
    curr_delegate: Hint = Hint()
