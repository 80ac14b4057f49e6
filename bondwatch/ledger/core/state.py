# MIT License
# Copyright (c) 2025 Hashborn

"""
Delegator and transcoder views.

Composite objects are assembled from authoritative chain reads. Reads inside
one call are independent, so they are issued concurrently; nothing read here
(current round included) outlives the call that read it.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from ...protocol.types.common import (
    CHAIN_DELEGATOR_STATUS, CHAIN_TRANSCODER_STATUS, ChainReadFailure, NameNotDefined,
)
from ...protocol.types.delegator import Delegator, UnbondingLock
from ...protocol.types.transcoder import ActiveSetEntry, Transcoder
from ...protocol.types.round import ProtocolInfo, RoundInfo
from ...protocol.types.layouts import decode_delegator, decode_transcoder, decode_unbonding_lock
from ...protocol.config.params import CURRENT_NETWORK, EMPTY_ADDRESS, NetworkConfig
from ...protocol.crypto.addresses import is_valid_address
from ..chain.interfaces import AddressResolver, ChainReader, chain_read
from .unbonding import derive_delegator_status, iter_locks, latest_lock_id

logger = logging.getLogger(__name__)


class DelegatorStateService:
    """Query API over the chain-read and resolver collaborators."""

    def __init__(self, chain: ChainReader, resolver: Optional[AddressResolver] = None,
                 config: NetworkConfig = CURRENT_NETWORK):
        self.chain = chain
        self.resolver = resolver
        self.config = config

    def _parallel(self, calls: Dict[str, tuple]) -> Dict[str, object]:
        """Runs {name: (call, fn, *args)} concurrently. The first failure is raised."""
        with ThreadPoolExecutor(max_workers=min(len(calls), self.config.max_read_workers)) as pool:
            futures = {
                name: pool.submit(chain_read, call, fn, *args)
                for name, (call, fn, *args) in calls.items()
            }
            return {name: future.result() for name, future in futures.items()}

    # --- Names ---
    def resolve_address(self, address_or_name: str) -> str:
        """Addresses pass through untouched; names go to the resolver, "" when undefined."""
        if is_valid_address(address_or_name):
            return address_or_name.lower()
        if self.resolver is None:
            return ""
        try:
            resolved = self.resolver.resolve(address_or_name)
        except NameNotDefined:
            return ""
        except Exception as e:
            logger.warning(f'Could not get address for name "{address_or_name}": {e}')
            raise ChainReadFailure("resolve", str(e)) from e
        return resolved.lower() if resolved else ""

    # --- Rounds ---
    def get_current_round(self) -> int:
        return chain_read("currentRound", self.chain.current_round)

    def get_current_round_info(self) -> RoundInfo:
        r = self._parallel({
            "length": ("roundLength", self.chain.round_length),
            "id": ("currentRound", self.chain.current_round),
            "initialized": ("currentRoundInitialized", self.chain.current_round_initialized),
            "last_initialized_round": ("lastInitializedRound", self.chain.last_initialized_round),
            "start_block": ("currentRoundStartBlock", self.chain.current_round_start_block),
        })
        return RoundInfo(**r)

    def get_protocol(self) -> ProtocolInfo:
        r = self._parallel({
            "paused": ("paused", self.chain.paused),
            "total_token_supply": ("totalSupply", self.chain.total_supply),
            "total_bonded": ("getTotalBonded", self.chain.total_bonded),
            "target_bonding_rate": ("targetBondingRate", self.chain.target_bonding_rate),
            "transcoder_pool_max_size": ("getTranscoderPoolMaxSize", self.chain.transcoder_pool_max_size),
            "max_earnings_claims_rounds": ("maxEarningsClaimsRounds", self.chain.max_earnings_claims_rounds),
        })
        return ProtocolInfo(**r)

    # --- Delegators ---
    def get_delegator(self, address_or_name: str) -> Delegator:
        address = self.resolve_address(address_or_name)
        current_round = self.get_current_round()

        r = self._parallel({
            "allowance": ("allowance", self.chain.allowance, address, self.chain.bonding_manager_address),
            "pending_stake": ("pendingStake", self.chain.pending_stake, address, current_round),
            "pending_fees": ("pendingFees", self.chain.pending_fees, address, current_round),
            "raw": ("getDelegator", self.chain.get_delegator, address),
            "raw_status": ("delegatorStatus", self.chain.delegator_status, address),
        })
        d = decode_delegator(r["raw"])
        latest = self.get_delegator_unbonding_lock(address, latest_lock_id(d.next_unbonding_lock_id))
        status = derive_delegator_status(current_round, latest, CHAIN_DELEGATOR_STATUS[r["raw_status"]])

        return Delegator(
            address=address,
            allowance=r["allowance"],
            bonded_amount=d.bonded_amount,
            delegate_address=d.delegate_address,
            delegated_amount=d.delegated_amount,
            fees=d.fees,
            last_claim_round=d.last_claim_round,
            pending_fees=r["pending_fees"],
            pending_stake=r["pending_stake"],
            start_round=d.start_round,
            status=status,
            withdraw_round=latest.withdraw_round,
            withdraw_amount=latest.amount,
            next_unbonding_lock_id=d.next_unbonding_lock_id,
        )

    def get_delegator_status(self, address_or_name: str):
        address = self.resolve_address(address_or_name)
        return CHAIN_DELEGATOR_STATUS[chain_read("delegatorStatus", self.chain.delegator_status, address)]

    def get_pending_stake(self, address_or_name: str, end_round: Optional[int] = None) -> int:
        address = self.resolve_address(address_or_name)
        if end_round is None:
            end_round = self.get_current_round()
        return chain_read("getPendingStake", self.chain.pending_stake, address, end_round)

    def get_pending_fees(self, address_or_name: str, end_round: Optional[int] = None) -> int:
        address = self.resolve_address(address_or_name)
        if end_round is None:
            end_round = self.get_current_round()
        return chain_read("getPendingFees", self.chain.pending_fees, address, end_round)

    # --- Unbonding locks ---
    def get_delegator_unbonding_lock(self, address: str, lock_id: int) -> UnbondingLock:
        raw = decode_unbonding_lock(chain_read(
            "getDelegatorUnbondingLock", self.chain.get_delegator_unbonding_lock, address, lock_id,
        ))
        return UnbondingLock(id=lock_id, delegator=address, amount=raw.amount,
                             withdraw_round=raw.withdraw_round)

    def iter_delegator_unbonding_locks(self, address_or_name: str):
        """Newest lock first, each read on demand."""
        address = self.resolve_address(address_or_name)
        d = decode_delegator(chain_read("getDelegator", self.chain.get_delegator, address))
        return iter_locks(
            d.next_unbonding_lock_id,
            lambda lock_id: self.get_delegator_unbonding_lock(address, lock_id),
        )

    def get_delegator_unbonding_locks(self, address_or_name: str) -> List[UnbondingLock]:
        return list(self.iter_delegator_unbonding_locks(address_or_name))

    # --- Transcoders ---
    def get_transcoder(self, address_or_name: str) -> Transcoder:
        address = self.resolve_address(address_or_name)
        r = self._parallel({
            "total_stake": ("transcoderTotalStake", self.chain.transcoder_total_stake, address),
            "raw": ("getTranscoder", self.chain.get_transcoder, address),
            "status": ("transcoderStatus", self.chain.transcoder_status, address),
            "active": ("isActiveTranscoder", self.chain.is_active_transcoder, address),
        })
        t = decode_transcoder(r["raw"])
        return Transcoder(
            address=address,
            active=r["active"],
            status=CHAIN_TRANSCODER_STATUS[r["status"]],
            reward_cut=t.reward_cut,
            fee_share=t.fee_share,
            last_reward_round=t.last_reward_round,
            activation_round=t.activation_round,
            deactivation_round=t.deactivation_round,
            last_active_stake_update_round=t.last_active_stake_update_round,
            total_stake=r["total_stake"],
        )

    def get_transcoders(self) -> List[Transcoder]:
        """Walks the on-chain transcoder pool, highest stake first."""
        transcoders = []
        addr = chain_read("getFirstTranscoderInPool", self.chain.get_first_transcoder_in_pool)
        while addr and addr.lower() != EMPTY_ADDRESS:
            transcoders.append(self.get_transcoder(addr))
            addr = chain_read("getNextTranscoderInPool", self.chain.get_next_transcoder_in_pool, addr)
        return transcoders

    def get_active_set(self) -> List[ActiveSetEntry]:
        return [
            ActiveSetEntry(address=t.address, total_stake=t.total_stake)
            for t in self.get_transcoders() if t.active
        ]
