# MIT License
# Copyright (c) 2025 Hashborn

"""
Unbonding lock ledger.

Lock ids are dense per delegator: [0, next_unbonding_lock_id). Enumeration
walks that range backwards, most recent lock first.
"""
from typing import Callable, Iterator, Optional, Union
import logging

from ...protocol.types.common import (
    DelegatorStatus, InvalidAmount, InvalidState, NothingToWithdraw, NotFound,
    UnbondingPeriodNotElapsed,
)
from ...protocol.types.delegator import IndexedDelegator, UnbondingLock
from ...protocol.types.tx import CallSpec, TxOptions
from ..chain.interfaces import ChainReader, chain_read
from ..observability.metrics import unbonding_locks_created_total
from .records import LedgerRecords
from .tx_receipt import TransactionSubmitter, TxReceipt

logger = logging.getLogger(__name__)


def iter_lock_ids(next_unbonding_lock_id: int) -> Iterator[int]:
    """Ids next_unbonding_lock_id - 1 down to 0."""
    return iter(range(next_unbonding_lock_id - 1, -1, -1))


def latest_lock_id(next_unbonding_lock_id: int) -> int:
    return next_unbonding_lock_id - 1 if next_unbonding_lock_id > 0 else 0


def iter_locks(next_unbonding_lock_id: int,
               fetch: Callable[[int], Optional[UnbondingLock]]) -> Iterator[UnbondingLock]:
    """Lazily fetches each lock, newest first. Re-invoke to enumerate again."""
    for lock_id in iter_lock_ids(next_unbonding_lock_id):
        lock = fetch(lock_id)
        if lock is not None:
            yield lock


def derive_delegator_status(current_round: int, latest_lock: Optional[UnbondingLock],
                            raw_status: DelegatorStatus) -> DelegatorStatus:
    """Unbonding while the most recent lock is still maturing, else the contract's status."""
    if latest_lock is not None and latest_lock.withdraw_round != 0 \
            and current_round < latest_lock.withdraw_round:
        return DelegatorStatus.UNBONDING
    return raw_status


def check_withdrawable(lock: UnbondingLock, current_round: int):
    """
    Raises:
        UnbondingPeriodNotElapsed: withdraw_round still in the future
        NothingToWithdraw: zero amount, or already withdrawn
        InvalidAmount: negative amount
    """
    if lock.withdraw_round > current_round:
        raise UnbondingPeriodNotElapsed(
            f"Delegator must wait through unbonding period "
            f"(withdraw round {lock.withdraw_round}, current round {current_round})"
        )
    if lock.amount == 0 or lock.withdrawn:
        raise NothingToWithdraw("Delegator does not have anything to withdraw")
    if lock.amount < 0:
        raise InvalidAmount("Amount cannot be negative")


class UnbondingLockLedger:
    """Creates, enumerates and withdraws indexed unbonding locks."""

    def __init__(self, records: LedgerRecords, chain: ChainReader,
                 submitter: Optional[TransactionSubmitter] = None):
        self.records = records
        self.chain = chain
        self.submitter = submitter

    def create_lock(self, delegator_id: str, amount: int, withdraw_round: int,
                    lock_id: Optional[int] = None) -> int:
        """
        Index a new lock. The id is the next free one unless the Unbond event
        carried it; ids never move backwards.
        """
        address = delegator_id.lower()
        with self.records.locks.hold(address):
            delegator = self.records.find_delegator(address) or IndexedDelegator(address=address)
            if lock_id is None:
                lock_id = delegator.next_unbonding_lock_id
            elif lock_id < delegator.next_unbonding_lock_id:
                raise InvalidState(
                    f"Unbonding lock {address}:{lock_id} is behind next id "
                    f"{delegator.next_unbonding_lock_id}"
                )
            delegator.next_unbonding_lock_id = lock_id + 1
            delegator.bonded_amount = max(delegator.bonded_amount - amount, 0)
            lock = UnbondingLock(
                id=lock_id,
                delegator=address,
                amount=amount,
                withdraw_round=withdraw_round,
            )
            self.records.save_lock(lock, delegator)

        unbonding_locks_created_total.inc()
        logger.info(f"Created unbonding lock {address}:{lock_id} "
                    f"(amount={amount}, withdraw_round={withdraw_round})")
        return lock_id

    def get_lock(self, delegator_id: str, lock_id: int) -> UnbondingLock:
        lock = self.records.get_lock(delegator_id, lock_id)
        if lock is None:
            raise NotFound(f"Unbonding lock {delegator_id}:{lock_id} not found")
        return lock

    def list_locks(self, delegator_id: str) -> Iterator[UnbondingLock]:
        delegator = self.records.get_delegator(delegator_id)
        return iter_locks(
            delegator.next_unbonding_lock_id,
            lambda lock_id: self.records.get_lock(delegator.address, lock_id),
        )

    def latest_lock(self, delegator_id: str) -> Optional[UnbondingLock]:
        delegator = self.records.get_delegator(delegator_id)
        if delegator.next_unbonding_lock_id == 0:
            return None
        return self.records.get_lock(delegator.address, latest_lock_id(delegator.next_unbonding_lock_id))

    def withdraw(self, delegator_id: str, lock_id: int,
                 tx: Optional[TxOptions] = None) -> Union[TxReceipt, str]:
        """
        Withdraw a matured lock.

        The current round is read from the chain for this call only.
        """
        lock = self.get_lock(delegator_id, lock_id)
        current_round = chain_read("currentRound", self.chain.current_round)
        check_withdrawable(lock, current_round)

        if self.submitter is None:
            raise RuntimeError("No transaction submitter configured")

        result = self.submitter.submit(CallSpec(method="withdrawStake", args=[lock_id]), tx)
        if isinstance(result, TxReceipt):
            self.mark_withdrawn(delegator_id, lock_id)
        return result

    def mark_withdrawn(self, delegator_id: str, lock_id: int) -> bool:
        """Consumes a lock. Returns False if it was already consumed."""
        address = delegator_id.lower()
        with self.records.locks.hold(address):
            lock = self.get_lock(address, lock_id)
            if lock.withdrawn:
                return False
            lock.withdrawn = True
            self.records.save_lock(lock)
        logger.info(f"Unbonding lock {address}:{lock_id} withdrawn")
        return True

    def consume_lock(self, delegator_id: str, lock_id: int) -> bool:
        """Rebond: the lock's stake goes back to bonded and the lock is emptied."""
        address = delegator_id.lower()
        with self.records.locks.hold(address):
            lock = self.get_lock(address, lock_id)
            if lock.withdrawn:
                return False
            delegator = self.records.get_delegator(address)
            delegator.bonded_amount += lock.amount
            rebonded = lock.amount
            lock.amount = 0
            lock.withdrawn = True
            self.records.save_lock(lock, delegator)
        logger.info(f"Unbonding lock {address}:{lock_id} rebonded ({rebonded})")
        return True
