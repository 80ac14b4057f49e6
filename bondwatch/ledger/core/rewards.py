# MIT License
# Copyright (c) 2025 Hashborn

"""
Per-round reward shares.

When a transcoder calls reward(), every delegator bonded to it earns a share
of that round's reward pool. The formula changed with the Streamflow
upgrade, so the version is chosen by the block height of the Reward event:

    block <  formula_upgrade_height  -> legacy (reward cut taken out of the pool)
    block >= formula_upgrade_height  -> current (transcoder reward pool tracked apart)
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ...protocol.types.common import EventType, RewardFormula, NotFound
from ...protocol.types.delegator import Share, make_pool_id, make_share_id
from ...protocol.types.layouts import (
    decode_delegator, decode_earnings_pool, decode_transcoder, delegator_fields_for_block,
)
from ...protocol.config.params import CURRENT_NETWORK, NetworkConfig
from ...protocol.crypto.addresses import same_address
from ..chain.interfaces import ChainReader, chain_read
from ..observability.metrics import (
    reward_tokens_credited_total, share_replays_total, shares_computed_total,
)
from .events import EventBus
from .numeric import perc_of, perc_of_with_denom
from .records import LedgerRecords

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RewardInputs:
    """Raw figures for one delegator in one transcoder's pool for one round."""
    reward_pool: int
    bonded_amount: int
    claimable_stake: int
    is_transcoder: bool
    reward_cut: int = 0                 # Legacy only
    transcoder_reward_pool: int = 0     # Current only
    percent_denominator: int = 1_000_000


def current_formula(inputs: RewardInputs) -> int:
    delegator_rewards = (
        perc_of_with_denom(inputs.reward_pool, inputs.bonded_amount, inputs.claimable_stake)
        if inputs.claimable_stake > 0 else 0
    )
    if inputs.is_transcoder:
        return delegator_rewards + inputs.transcoder_reward_pool
    return delegator_rewards


def legacy_formula(inputs: RewardInputs) -> int:
    transcoder_rewards = 0
    delegator_rewards = 0
    if inputs.claimable_stake > 0:
        transcoder_rewards = perc_of(inputs.reward_pool, inputs.reward_cut, inputs.percent_denominator)
        delegator_rewards = perc_of_with_denom(
            inputs.reward_pool - transcoder_rewards,
            inputs.bonded_amount,
            inputs.claimable_stake,
        )
    if inputs.is_transcoder:
        return delegator_rewards + transcoder_rewards
    return delegator_rewards


FORMULAS: Dict[RewardFormula, Callable[[RewardInputs], int]] = {
    RewardFormula.LEGACY: legacy_formula,
    RewardFormula.CURRENT: current_formula,
}


def select_formula(block_number: int, upgrade_height: int) -> RewardFormula:
    return RewardFormula.LEGACY if block_number < upgrade_height else RewardFormula.CURRENT


class RoundRewardAccountant:
    """Computes and records Share entries, folding them into pending stake once per round."""

    def __init__(self, records: LedgerRecords, chain: ChainReader,
                 config: NetworkConfig = CURRENT_NETWORK,
                 event_bus: Optional[EventBus] = None):
        self.records = records
        self.chain = chain
        self.config = config
        self.event_bus = event_bus

    def compute_share(self, delegator_id: str, transcoder_id: str, trigger_block: int,
                      trigger_round: Optional[int] = None) -> Optional[Share]:
        """
        Compute a delegator's share of a transcoder's reward for the current round.

        Args:
            delegator_id: Indexed delegator address
            transcoder_id: Transcoder that called reward()
            trigger_block: Block number of the Reward event
            trigger_round: Round of the event; read from the chain when None

        Returns:
            The stored Share, or None when the delegator is not bonded to the
            transcoder or has already claimed through the current round

        Raises:
            NotFound: Delegator not indexed
            ChainReadFailure: A chain read failed
        """
        address = delegator_id.lower()
        transcoder = transcoder_id.lower()

        with self.records.locks.hold(address):
            delegator = self.records.get_delegator(address)
            if not same_address(delegator.delegate, transcoder):
                logger.debug(f"{address} is not delegated to {transcoder}, no share")
                return None

            formula = select_formula(trigger_block, self.config.formula_upgrade_height)
            current_round = trigger_round if trigger_round is not None \
                else chain_read("currentRound", self.chain.current_round)

            # lastClaimRound comes from contract storage: a claim landing in the
            # same block as the reward leaves the indexed value stale.
            fields = delegator_fields_for_block(trigger_block, self.config.lock_layout_height)
            chain_delegator = decode_delegator(
                chain_read("getDelegator", self.chain.get_delegator, address, trigger_block),
                fields,
            )
            if current_round <= chain_delegator.last_claim_round:
                logger.debug(f"{address} already claimed through round "
                             f"{chain_delegator.last_claim_round}, no share for {current_round}")
                return None

            pool = decode_earnings_pool(chain_read(
                "getTranscoderEarningsPoolForRound",
                self.chain.get_transcoder_earnings_pool_for_round, transcoder, current_round,
            ))

            reward_cut = 0
            if formula is RewardFormula.LEGACY:
                reward_cut = decode_transcoder(
                    chain_read("getTranscoder", self.chain.get_transcoder, transcoder)
                ).reward_cut

            inputs = RewardInputs(
                reward_pool=pool.reward_pool,
                bonded_amount=chain_delegator.bonded_amount,
                claimable_stake=pool.claimable_stake,
                is_transcoder=same_address(address, transcoder),
                reward_cut=reward_cut,
                transcoder_reward_pool=pool.transcoder_reward_pool,
                percent_denominator=self.config.percent_denominator,
            )
            reward_tokens = FORMULAS[formula](inputs)

            share = Share(
                id=make_share_id(address, current_round),
                delegator=address,
                round=current_round,
                pool=make_pool_id(transcoder, current_round),
                reward_tokens=reward_tokens,
                formula=formula,
            )

            # Overwrite the share, but credit pending stake only by the change
            # against what this round already contributed.
            previously_credited = delegator.credited_rounds.get(current_round)
            delta = reward_tokens - (previously_credited or 0)
            delegator.pending_stake += delta
            delegator.credited_rounds[current_round] = reward_tokens
            # Claimed rounds never compute a share again
            delegator.credited_rounds = {
                r: tokens for r, tokens in delegator.credited_rounds.items()
                if r > chain_delegator.last_claim_round
            }
            self.records.save_share(share, delegator)

        shares_computed_total.labels(formula=formula.value).inc()
        if previously_credited is not None:
            share_replays_total.inc()
        if delta:
            reward_tokens_credited_total.labels(formula=formula.value).inc(max(delta, 0))
        logger.info(f"Share {share.id} = {reward_tokens} ({formula.value}), pending stake delta {delta}")

        if self.event_bus:
            self.event_bus.emit(EventType.SHARE_COMPUTED, share=share)
        return share

    def get_shares(self, delegator_id: str):
        if self.records.find_delegator(delegator_id) is None:
            raise NotFound(f"Delegator {delegator_id} not indexed")
        return self.records.get_shares(delegator_id)
