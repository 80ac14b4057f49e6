from pydantic import BaseModel


class RoundInfo(BaseModel):
    id: int
    initialized: bool
    last_initialized_round: int
    length: int
    start_block: int


class ProtocolInfo(BaseModel):
    paused: bool
    total_token_supply: int
    total_bonded: int
    target_bonding_rate: int
    transcoder_pool_max_size: int
    max_earnings_claims_rounds: int
