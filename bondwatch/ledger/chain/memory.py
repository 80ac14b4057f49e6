# MIT License
# Copyright (c) 2025 Hashborn

"""
In-memory BondingManager for devnet and tests.

Implements the reader, writer and resolver interfaces over plain dicts.
Submitted calls are applied immediately (one block per call); a call that
fails validation is mined with status 0x0, like a reverted transaction.
When an EventBus is attached, applied calls emit the matching
BondingManager events.
"""

import itertools
import json
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging

from ...protocol.types.common import EventType, NameNotDefined, RewardFormula
from ...protocol.types.events import (
    BondEvent, RebondEvent, RewardEvent, UnbondEvent, WithdrawStakeEvent,
)
from ...protocol.types.layouts import (
    ChainDelegator, ChainTranscoder, delegator_fields_for_block,
    encode_delegator, encode_earnings_pool, encode_transcoder,
)
from ...protocol.types.transcoder import EarningsPool
from ...protocol.types.tx import CallSpec, TxOptions
from ...protocol.config.params import CURRENT_NETWORK, DECIMALS, EMPTY_ADDRESS, NetworkConfig
from ...protocol.crypto.addresses import normalize_address, same_address
from ...protocol.crypto.hash import sha256_hex
from ..core.numeric import perc_of, perc_of_with_denom
from ..core.rewards import FORMULAS, RewardInputs
from .interfaces import AddressResolver, ChainReader, ChainWriter

logger = logging.getLogger(__name__)

DEVNET_BONDING_MANAGER = "0x511bc4556d823ae99630ae8de28b9b80df90ea2e"

# Delegator status enum order on chain
_PENDING, _BONDED, _UNBONDED = 0, 1, 2


class InMemoryChain(ChainReader, ChainWriter, AddressResolver):
    def __init__(self, config: NetworkConfig = CURRENT_NETWORK,
                 bonding_manager: str = DEVNET_BONDING_MANAGER,
                 block_number: int = 0,
                 current_round: int = 1,
                 reward_per_round: int = 1_000 * 10**DECIMALS,
                 event_bus=None):
        self.config = config
        self._bonding_manager = bonding_manager.lower()
        self.block_number = block_number
        self.round = current_round
        self.round_initialized = True
        self.round_start_block = block_number
        self.last_initialized = current_round
        self.reward_per_round = reward_per_round
        self.event_bus = event_bus

        self.delegators: Dict[str, ChainDelegator] = {}
        self.transcoders: Dict[str, ChainTranscoder] = {}
        self.stakes: Dict[str, int] = {}
        self.active: Dict[str, bool] = {}
        self.pools: Dict[Tuple[str, int], EarningsPool] = {}
        self.locks: Dict[Tuple[str, int], Tuple[int, int]] = {}
        self.allowances: Dict[Tuple[str, str], int] = {}
        self.names: Dict[str, str] = {}

        self.token_supply = 10_000_000 * 10**DECIMALS
        self.bonding_rate_target = 500_000
        self.is_paused = False

        # Test hooks: read call name -> exception to raise, receipt polls to withhold
        self.fail_reads: Dict[str, Exception] = {}
        self.receipt_delay = 0

        self.transactions: Dict[str, Dict[str, Any]] = {}
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self._polls: Dict[str, int] = {}
        self._nonce = itertools.count()
        self.lock = threading.RLock()

    # ------------------------------------------------------------------
    # Setup helpers
    # ------------------------------------------------------------------
    def set_delegator(self, address: str, **fields) -> ChainDelegator:
        with self.lock:
            address = address.lower()
            d = self.delegators.get(address) or ChainDelegator()
            d = d.model_copy(update=fields)
            d.delegate_address = normalize_address(d.delegate_address)
            self.delegators[address] = d
            return d

    def set_transcoder(self, address: str, total_stake: int = 0, active: bool = True,
                       **fields) -> ChainTranscoder:
        with self.lock:
            address = address.lower()
            t = (self.transcoders.get(address) or ChainTranscoder()).model_copy(update=fields)
            self.transcoders[address] = t
            self.stakes[address] = total_stake
            self.active[address] = active
            return t

    def set_earnings_pool(self, transcoder: str, round_id: int, **fields) -> EarningsPool:
        with self.lock:
            key = (transcoder.lower(), round_id)
            pool = (self.pools.get(key) or EarningsPool()).model_copy(update=fields)
            self.pools[key] = pool
            return pool

    def set_lock(self, delegator: str, lock_id: int, amount: int, withdraw_round: int):
        with self.lock:
            self.locks[(delegator.lower(), lock_id)] = (amount, withdraw_round)

    def register_name(self, name: str, address: str):
        self.names[name] = address.lower()

    def advance_round(self, rounds: int = 1) -> int:
        """Moves to a later round and mines the blocks in between."""
        with self.lock:
            self.round += rounds
            self.block_number += rounds * self.config.round_length_blocks
            self.round_start_block = self.block_number
            self.last_initialized = self.round
            return self.round

    def _read(self, call: str):
        exc = self.fail_reads.get(call)
        if exc is not None:
            raise exc

    # ------------------------------------------------------------------
    # ChainReader
    # ------------------------------------------------------------------
    @property
    def bonding_manager_address(self) -> str:
        return self._bonding_manager

    def get_delegator(self, address: str, block_number: Optional[int] = None) -> Sequence:
        self._read("getDelegator")
        with self.lock:
            d = self.delegators.get(address.lower()) or ChainDelegator()
            return encode_delegator(d, delegator_fields_for_block(block_number, self.config.lock_layout_height))

    def get_transcoder(self, address: str) -> Sequence:
        self._read("getTranscoder")
        with self.lock:
            return encode_transcoder(self.transcoders.get(address.lower()) or ChainTranscoder())

    def get_transcoder_earnings_pool_for_round(self, address: str, round_id: int) -> Sequence:
        self._read("getTranscoderEarningsPoolForRound")
        with self.lock:
            return encode_earnings_pool(self.pools.get((address.lower(), round_id)) or EarningsPool())

    def get_delegator_unbonding_lock(self, address: str, lock_id: int) -> Sequence:
        self._read("getDelegatorUnbondingLock")
        with self.lock:
            return self.locks.get((address.lower(), lock_id), (0, 0))

    def delegator_status(self, address: str) -> int:
        self._read("delegatorStatus")
        with self.lock:
            d = self.delegators.get(address.lower())
            if d is None or d.bonded_amount == 0:
                return _UNBONDED
            if d.start_round > self.round:
                return _PENDING
            return _BONDED

    def transcoder_status(self, address: str) -> int:
        self._read("transcoderStatus")
        return 1 if address.lower() in self.transcoders else 0

    def is_active_transcoder(self, address: str) -> bool:
        self._read("isActiveTranscoder")
        return self.active.get(address.lower(), False)

    def transcoder_total_stake(self, address: str) -> int:
        self._read("transcoderTotalStake")
        return self.stakes.get(address.lower(), 0)

    def pending_stake(self, address: str, end_round: int) -> int:
        self._read("pendingStake")
        stake, _ = self._pending(address.lower(), end_round)
        return stake

    def pending_fees(self, address: str, end_round: int) -> int:
        self._read("pendingFees")
        _, fees = self._pending(address.lower(), end_round)
        return fees

    def _pending(self, address: str, end_round: int) -> Tuple[int, int]:
        """Compounds rewards and fees from last_claim_round + 1 through end_round."""
        with self.lock:
            d = self.delegators.get(address)
            if d is None:
                return 0, 0
            stake, fees = d.bonded_amount, d.fees
            if not d.delegate_address:
                return stake, fees
            for r in range(d.last_claim_round + 1, end_round + 1):
                pool = self.pools.get((d.delegate_address, r))
                if pool is None or pool.claimable_stake == 0:
                    continue
                formula = RewardFormula.CURRENT if pool.has_transcoder_reward_fee_pool else RewardFormula.LEGACY
                fees += perc_of_with_denom(pool.fee_pool, stake, pool.claimable_stake)
                stake += FORMULAS[formula](RewardInputs(
                    reward_pool=pool.reward_pool,
                    bonded_amount=stake,
                    claimable_stake=pool.claimable_stake,
                    is_transcoder=same_address(address, d.delegate_address),
                    reward_cut=pool.transcoder_reward_cut,
                    transcoder_reward_pool=pool.transcoder_reward_pool,
                    percent_denominator=self.config.percent_denominator,
                ))
            return stake, fees

    def pool_order(self) -> List[str]:
        with self.lock:
            return sorted(self.transcoders, key=lambda a: self.stakes.get(a, 0), reverse=True)

    def get_first_transcoder_in_pool(self) -> str:
        self._read("getFirstTranscoderInPool")
        order = self.pool_order()
        return order[0] if order else EMPTY_ADDRESS

    def get_next_transcoder_in_pool(self, address: str) -> str:
        self._read("getNextTranscoderInPool")
        order = self.pool_order()
        i = order.index(address.lower())
        return order[i + 1] if i + 1 < len(order) else EMPTY_ADDRESS

    def transcoder_pool_max_size(self) -> int:
        return self.config.transcoder_pool_max_size

    def total_bonded(self) -> int:
        self._read("getTotalBonded")
        with self.lock:
            return sum(self.stakes.values())

    def max_earnings_claims_rounds(self) -> int:
        return self.config.max_earnings_claims_rounds

    def current_round(self) -> int:
        self._read("currentRound")
        return self.round

    def current_round_initialized(self) -> bool:
        return self.round_initialized

    def current_round_start_block(self) -> int:
        return self.round_start_block

    def last_initialized_round(self) -> int:
        return self.last_initialized

    def round_length(self) -> int:
        return self.config.round_length_blocks

    def allowance(self, owner: str, spender: str) -> int:
        self._read("allowance")
        return self.allowances.get((owner.lower(), spender.lower()), 0)

    def total_supply(self) -> int:
        return self.token_supply

    def target_bonding_rate(self) -> int:
        return self.bonding_rate_target

    def paused(self) -> bool:
        return self.is_paused

    # ------------------------------------------------------------------
    # AddressResolver
    # ------------------------------------------------------------------
    def resolve(self, name: str) -> str:
        if name not in self.names:
            raise NameNotDefined("ENS name not defined.")
        return self.names[name]

    # ------------------------------------------------------------------
    # ChainWriter
    # ------------------------------------------------------------------
    def send(self, call: CallSpec, tx: TxOptions) -> str:
        if not tx.from_address:
            raise ValueError("Transaction has no sender")
        sender = tx.from_address.lower()

        with self.lock:
            self.block_number += 1
            payload = {
                "from": sender,
                "to": call.contract,
                "method": call.method,
                "args": [str(a) for a in call.args],
                "nonce": next(self._nonce),
            }
            tx_hash = "0x" + sha256_hex(json.dumps(payload, sort_keys=True).encode())
            self.transactions[tx_hash] = {"hash": tx_hash, "blockNumber": self.block_number, **payload}

            try:
                events = self.apply_call(call, sender)
                status = "0x1"
            except ValueError as e:
                logger.info(f"{call.method} from {sender} reverted: {e}")
                events = []
                status = "0x0"

            self.receipts[tx_hash] = {
                "transactionHash": tx_hash,
                "blockNumber": hex(self.block_number),
                "from": sender,
                "status": status,
            }

        if self.event_bus:
            for event_type, event in events:
                self.event_bus.emit(event_type, event=event)
        return tx_hash

    def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        with self.lock:
            polls = self._polls.get(tx_hash, 0)
            self._polls[tx_hash] = polls + 1
            if polls < self.receipt_delay:
                return None
            return self.receipts.get(tx_hash)

    def get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return self.transactions.get(tx_hash)

    # ------------------------------------------------------------------
    # Call execution
    # ------------------------------------------------------------------
    def apply_call(self, call: CallSpec, sender: str) -> List[Tuple[EventType, Any]]:
        """Applies a call to state. Raises ValueError (revert) on failure."""
        method, args = call.method, call.args

        if call.contract == "LivepeerToken":
            if method != "approve":
                raise ValueError(f"Unsupported token method {method}")
            spender, amount = args
            self.allowances[(sender, spender.lower())] = int(amount)
            return []

        if method in ("bond", "bondWithHint"):
            return [self._bond(sender, int(args[0]), args[1].lower())]
        elif method in ("unbond", "unbondWithHint"):
            return [self._unbond(sender, int(args[0]))]
        elif method in ("rebond", "rebondWithHint"):
            return [self._rebond(sender, int(args[0]))]
        elif method in ("rebondFromUnbonded", "rebondFromUnbondedWithHint"):
            d = self.delegators.get(sender)
            if d is not None and d.bonded_amount > 0:
                raise ValueError("caller must be unbonded")
            self.set_delegator(sender, delegate_address=args[0], start_round=self.round + 1)
            return [self._rebond(sender, int(args[1]))]
        elif method == "withdrawStake":
            return [self._withdraw_stake(sender, int(args[0]))]
        elif method == "withdrawFees":
            d = self._require_delegator(sender)
            if d.fees == 0:
                raise ValueError("no fees to withdraw")
            d.fees = 0
            return []
        elif method == "claimEarnings":
            self._claim(sender, int(args[0]))
            return []
        elif method == "reward":
            return [self._reward(sender)]
        raise ValueError(f"Unsupported method {method}")

    def _require_delegator(self, address: str) -> ChainDelegator:
        d = self.delegators.get(address)
        if d is None:
            raise ValueError(f"Delegator {address} not found")
        return d

    def _claim(self, address: str, end_round: int):
        if end_round > self.round:
            raise ValueError("end round must be before or equal to current round")
        # Rewards were added to the transcoder's total stake when minted
        stake, fees = self._pending(address, end_round)
        self.set_delegator(address, bonded_amount=stake, fees=fees, last_claim_round=end_round)

    def _bond(self, sender: str, amount: int, to: str) -> Tuple[EventType, BondEvent]:
        if to not in self.transcoders:
            raise ValueError(f"{to} is not a registered transcoder")
        allowance = self.allowances.get((sender, self._bonding_manager), 0)
        if amount > allowance:
            raise ValueError(f"Insufficient allowance: have {allowance}, need {amount}")
        self.allowances[(sender, self._bonding_manager)] = allowance - amount

        self._claim(sender, self.round)
        d = self.delegators[sender]
        old = d.delegate_address
        if old and old != to:
            # Existing stake follows the delegator to the new transcoder
            self.stakes[old] -= d.bonded_amount
            self.stakes[to] = self.stakes.get(to, 0) + d.bonded_amount
        start_round = d.start_round if old == to and d.bonded_amount else self.round + 1
        self.stakes[to] = self.stakes.get(to, 0) + amount
        d = self.set_delegator(sender, delegate_address=to, bonded_amount=d.bonded_amount + amount,
                               start_round=start_round)
        return EventType.BOND, BondEvent(
            delegator=sender, new_delegate=to, old_delegate=old, additional_amount=amount,
            bonded_amount=d.bonded_amount, block_number=self.block_number,
        )

    def _unbond(self, sender: str, amount: int) -> Tuple[EventType, UnbondEvent]:
        d = self._require_delegator(sender)
        if amount <= 0:
            raise ValueError("unbond amount must be greater than 0")
        if amount > d.bonded_amount:
            raise ValueError("amount is greater than bonded amount")
        self._claim(sender, self.round)
        d = self.delegators[sender]

        lock_id = d.next_unbonding_lock_id
        withdraw_round = self.round + self.config.unbonding_period_rounds
        self.locks[(sender, lock_id)] = (amount, withdraw_round)
        self.stakes[d.delegate_address] -= amount
        self.set_delegator(sender, bonded_amount=d.bonded_amount - amount, next_unbonding_lock_id=lock_id + 1)
        return EventType.UNBOND, UnbondEvent(
            delegator=sender, delegate=d.delegate_address, unbonding_lock_id=lock_id,
            amount=amount, withdraw_round=withdraw_round, block_number=self.block_number,
        )

    def _rebond(self, sender: str, lock_id: int) -> Tuple[EventType, RebondEvent]:
        amount, _ = self.locks.get((sender, lock_id), (0, 0))
        if amount == 0:
            raise ValueError("invalid unbonding lock ID")
        d = self._require_delegator(sender)
        self.locks[(sender, lock_id)] = (0, 0)
        self.stakes[d.delegate_address] = self.stakes.get(d.delegate_address, 0) + amount
        self.set_delegator(sender, bonded_amount=d.bonded_amount + amount)
        return EventType.REBOND, RebondEvent(
            delegator=sender, delegate=d.delegate_address, unbonding_lock_id=lock_id,
            amount=amount, block_number=self.block_number,
        )

    def _withdraw_stake(self, sender: str, lock_id: int) -> Tuple[EventType, WithdrawStakeEvent]:
        amount, withdraw_round = self.locks.get((sender, lock_id), (0, 0))
        if amount == 0:
            raise ValueError("invalid unbonding lock ID")
        if withdraw_round > self.round:
            raise ValueError("withdraw round must be before or equal to the current round")
        self.locks[(sender, lock_id)] = (0, 0)
        return EventType.WITHDRAW_STAKE, WithdrawStakeEvent(
            delegator=sender, unbonding_lock_id=lock_id, amount=amount,
            withdraw_round=withdraw_round, block_number=self.block_number,
        )

    def _reward(self, transcoder: str) -> Tuple[EventType, RewardEvent]:
        """Mints this round's reward into the transcoder's earnings pool."""
        t = self.transcoders.get(transcoder)
        if t is None or not self.active.get(transcoder):
            raise ValueError("caller must be an active transcoder")
        if t.last_reward_round == self.round:
            raise ValueError("caller has already called reward for the current round")

        total_bonded = sum(self.stakes.values())
        stake = self.stakes.get(transcoder, 0)
        minted = perc_of_with_denom(self.reward_per_round, stake, total_bonded)

        key = (transcoder, self.round)
        pool = self.pools.get(key) or EarningsPool(
            total_stake=stake, claimable_stake=stake, transcoder_reward_cut=t.reward_cut,
            transcoder_fee_share=t.fee_share,
        )
        if self.block_number >= self.config.formula_upgrade_height:
            transcoder_share = perc_of(minted, t.reward_cut, self.config.percent_denominator)
            pool.reward_pool += minted - transcoder_share
            pool.transcoder_reward_pool += transcoder_share
            pool.has_transcoder_reward_fee_pool = True
        else:
            pool.reward_pool += minted
        self.pools[key] = pool
        self.stakes[transcoder] = stake + minted
        self.transcoders[transcoder] = t.model_copy(update={"last_reward_round": self.round})

        return EventType.REWARD, RewardEvent(
            transcoder=transcoder, block_number=self.block_number, amount=minted, round=self.round,
        )
