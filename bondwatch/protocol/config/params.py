# MIT License
# Copyright (c) 2025 Hashborn

import os
from typing import Dict

# Global Constants
DENOM = "LPT"
DECIMALS = 18
EMPTY_ADDRESS = "0x0000000000000000000000000000000000000000"

# Fixed-point base for reward cuts and fee shares (MathUtils.PERC_DIVISOR)
PERC_DIVISOR = 1_000_000

# Mainnet protocol upgrade heights
# Streamflow BondingManager: reward formula switches to the separate transcoder reward pool
STREAMFLOW_BLOCK = 6_248_558
# Unbonding locks upgrade: getDelegator() drops withdrawRound, lastClaimRound moves to index 5
UNBONDING_LOCKS_BLOCK = 6_194_948


class NetworkConfig:
    def __init__(self,
                 network_id: str,
                 chain_id: int,
                 formula_upgrade_height: int,
                 lock_layout_height: int,
                 percent_denominator: int = PERC_DIVISOR,
                 # Receipt polling
                 receipt_poll_interval: float = 0.3,
                 receipt_timeout: float = 600.0,
                 # Concurrent read pool for composite views
                 max_read_workers: int = 8,
                 # Devnet chain params
                 unbonding_period_rounds: int = 7,
                 transcoder_pool_max_size: int = 100,
                 max_earnings_claims_rounds: int = 20,
                 round_length_blocks: int = 5760):
        self.network_id = network_id
        self.chain_id = chain_id
        self.formula_upgrade_height = formula_upgrade_height
        self.lock_layout_height = lock_layout_height
        self.percent_denominator = percent_denominator
        self.receipt_poll_interval = receipt_poll_interval
        self.receipt_timeout = receipt_timeout
        self.max_read_workers = max_read_workers
        self.unbonding_period_rounds = unbonding_period_rounds
        self.transcoder_pool_max_size = transcoder_pool_max_size
        self.max_earnings_claims_rounds = max_earnings_claims_rounds
        self.round_length_blocks = round_length_blocks


NETWORKS: Dict[str, NetworkConfig] = {
    "mainnet": NetworkConfig(
        network_id="mainnet",
        chain_id=1,
        formula_upgrade_height=STREAMFLOW_BLOCK,
        lock_layout_height=UNBONDING_LOCKS_BLOCK,
    ),
    "rinkeby": NetworkConfig(
        network_id="rinkeby",
        chain_id=4,
        # Rinkeby was deployed after both upgrades
        formula_upgrade_height=0,
        lock_layout_height=0,
        round_length_blocks=50,
    ),
    "devnet": NetworkConfig(
        network_id="devnet",
        chain_id=1337,
        formula_upgrade_height=1_000,
        lock_layout_height=500,
        percent_denominator=10_000,
        receipt_poll_interval=0.05,
        receipt_timeout=30.0,
        unbonding_period_rounds=2,
        transcoder_pool_max_size=10,
        round_length_blocks=10,
    ),
}

# Selected via environment, devnet by default
CURRENT_NETWORK = NETWORKS[os.environ.get("BONDWATCH_NETWORK", "devnet")]
