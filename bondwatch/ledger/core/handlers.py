"""
Chain event handlers.

Keeps the indexed records in step with BondingManager logs: Bond and Rebond
move stake, Unbond opens a lock, WithdrawStake consumes it, and Reward
computes a share for every delegator bonded to the rewarding transcoder.
"""
from typing import Dict, List
import logging

from ...protocol.types.common import (
    ChainReadFailure, EventType, NotFound, RewardCreditFailure,
)
from ...protocol.types.delegator import IndexedDelegator, Share
from ...protocol.types.events import (
    BondEvent, RebondEvent, RewardEvent, UnbondEvent, WithdrawStakeEvent,
)
from ...protocol.crypto.addresses import normalize_address, same_address
from .events import EventBus
from .records import LedgerRecords
from .rewards import RoundRewardAccountant
from .unbonding import UnbondingLockLedger

logger = logging.getLogger(__name__)


class LedgerEventHandlers:
    def __init__(self, records: LedgerRecords, accountant: RoundRewardAccountant,
                 ledger: UnbondingLockLedger):
        self.records = records
        self.accountant = accountant
        self.ledger = ledger

    def register(self, bus: EventBus) -> None:
        # Reward failures reach whoever fed the event
        bus.subscribe(EventType.REWARD, self.on_reward, isolate=False)
        bus.subscribe(EventType.BOND, self.on_bond)
        bus.subscribe(EventType.UNBOND, self.on_unbond)
        bus.subscribe(EventType.REBOND, self.on_rebond)
        bus.subscribe(EventType.WITHDRAW_STAKE, self.on_withdraw_stake)

    def on_reward(self, event: RewardEvent) -> List[Share]:
        """
        Computes a share for each indexed delegator bonded to the transcoder.

        A failed read for one delegator does not stop the others.

        Raises:
            RewardCreditFailure: after the loop, if any delegator got no share
        """
        shares = []
        failures: Dict[str, ChainReadFailure] = {}
        for delegator in self.records.get_all_delegators():
            if not same_address(delegator.delegate, event.transcoder):
                continue
            try:
                share = self.accountant.compute_share(
                    delegator.address, event.transcoder, event.block_number, event.round,
                )
            except ChainReadFailure as e:
                logger.warning(f"No share for {delegator.address} from {event.transcoder}: {e}")
                failures[delegator.address] = e
                continue
            if share is not None:
                shares.append(share)
        logger.info(f"Reward from {event.transcoder} at block {event.block_number}: "
                    f"{len(shares)} share(s), {len(failures)} failed")
        if failures:
            raise RewardCreditFailure(event.transcoder, failures, shares) \
                from next(iter(failures.values()))
        return shares

    def on_bond(self, event: BondEvent) -> IndexedDelegator:
        address = event.delegator.lower()
        with self.records.locks.hold(address):
            delegator = self.records.find_delegator(address) or IndexedDelegator(address=address)
            delegator.delegate = normalize_address(event.new_delegate)
            delegator.bonded_amount = event.bonded_amount
            self.records.set_delegator(delegator)
        logger.info(f"Bond: {address} -> {delegator.delegate} (+{event.additional_amount})")
        return delegator

    def on_unbond(self, event: UnbondEvent) -> int:
        return self.ledger.create_lock(
            event.delegator, event.amount, event.withdraw_round, event.unbonding_lock_id,
        )

    def on_rebond(self, event: RebondEvent) -> bool:
        address = event.delegator.lower()
        rebonded = self.ledger.consume_lock(address, event.unbonding_lock_id)
        with self.records.locks.hold(address):
            delegator = self.records.get_delegator(address)
            delegator.delegate = normalize_address(event.delegate)
            self.records.set_delegator(delegator)
        return rebonded

    def on_withdraw_stake(self, event: WithdrawStakeEvent) -> bool:
        try:
            return self.ledger.mark_withdrawn(event.delegator, event.unbonding_lock_id)
        except NotFound:
            # Lock opened before indexing started
            logger.info(f"WithdrawStake for unindexed lock "
                        f"{event.delegator.lower()}:{event.unbonding_lock_id}")
            return False
