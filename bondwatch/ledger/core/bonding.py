# MIT License
# Copyright (c) 2025 Hashborn

"""
State-changing delegation calls.

Every method builds one contract call and hands it to the
TransactionSubmitter. With tx.return_tx_hash set the hash comes back
immediately; otherwise the confirmed TxReceipt does.
"""

import logging
from typing import Optional, Union

from ...protocol.types.common import InvalidAmount, StakeAction
from ...protocol.types.delegator import UnbondingLock
from ...protocol.types.transcoder import BondHints, Hint
from ...protocol.types.tx import CallSpec, TxOptions
from ...protocol.crypto.addresses import hint_address
from .active_set import get_hint, simulate
from .state import DelegatorStateService
from .tx_receipt import TransactionSubmitter, TxReceipt
from .unbonding import check_withdrawable

logger = logging.getLogger(__name__)

TxResult = Union[TxReceipt, str]


def _amount(amount) -> int:
    value = int(amount)
    if value < 0:
        raise InvalidAmount("Amount cannot be negative")
    return value


class BondingService:
    """Bond, unbond, rebond, withdraw and claim for the sending account."""

    def __init__(self, submitter: TransactionSubmitter, state: DelegatorStateService):
        self.submitter = submitter
        self.state = state

    def _send(self, method: str, *args, tx: Optional[TxOptions] = None,
              contract: str = "BondingManager") -> TxResult:
        call = CallSpec(contract=contract, method=method, args=list(args))
        logger.debug(f"{contract}.{method}{tuple(args)}")
        return self.submitter.submit(call, tx)

    # --- Bond ---
    def approve_token_bond_amount(self, amount, tx: Optional[TxOptions] = None) -> TxResult:
        """Allows the BondingManager to pull `amount` tokens from the sender."""
        return self._send(
            "approve", self.state.chain.bonding_manager_address, _amount(amount),
            tx=tx, contract="LivepeerToken",
        )

    def bond(self, to: str, amount, tx: Optional[TxOptions] = None) -> TxResult:
        """Bonds an already approved amount to `to` (address or name)."""
        return self._send("bond", _amount(amount), self.state.resolve_address(to), tx=tx)

    def bond_with_hint(self, amount, to: str,
                       old_delegate_new_pos_prev: Optional[str] = None,
                       old_delegate_new_pos_next: Optional[str] = None,
                       curr_delegate_new_pos_prev: Optional[str] = None,
                       curr_delegate_new_pos_next: Optional[str] = None,
                       tx: Optional[TxOptions] = None) -> TxResult:
        return self._send(
            "bondWithHint",
            _amount(amount),
            self.state.resolve_address(to),
            hint_address(old_delegate_new_pos_prev),
            hint_address(old_delegate_new_pos_next),
            hint_address(curr_delegate_new_pos_prev),
            hint_address(curr_delegate_new_pos_next),
            tx=tx,
        )

    # --- Unbond / rebond ---
    def unbond(self, amount, tx: Optional[TxOptions] = None) -> TxResult:
        return self._send("unbond", _amount(amount), tx=tx)

    def unbond_with_hint(self, amount, new_pos_prev: Optional[str] = None,
                         new_pos_next: Optional[str] = None,
                         tx: Optional[TxOptions] = None) -> TxResult:
        return self._send(
            "unbondWithHint", _amount(amount), hint_address(new_pos_prev), hint_address(new_pos_next), tx=tx,
        )

    def rebond(self, unbonding_lock_id: int, tx: Optional[TxOptions] = None) -> TxResult:
        return self._send("rebond", int(unbonding_lock_id), tx=tx)

    def rebond_with_hint(self, unbonding_lock_id: int, new_pos_prev: Optional[str] = None,
                         new_pos_next: Optional[str] = None,
                         tx: Optional[TxOptions] = None) -> TxResult:
        return self._send(
            "rebondWithHint", int(unbonding_lock_id), hint_address(new_pos_prev), hint_address(new_pos_next), tx=tx,
        )

    def rebond_from_unbonded(self, to: str, unbonding_lock_id: int,
                             tx: Optional[TxOptions] = None) -> TxResult:
        return self._send("rebondFromUnbonded", self.state.resolve_address(to), int(unbonding_lock_id), tx=tx)

    def rebond_from_unbonded_with_hint(self, to: str, unbonding_lock_id: int,
                                       new_pos_prev: Optional[str] = None,
                                       new_pos_next: Optional[str] = None,
                                       tx: Optional[TxOptions] = None) -> TxResult:
        return self._send(
            "rebondFromUnbondedWithHint",
            self.state.resolve_address(to),
            int(unbonding_lock_id),
            hint_address(new_pos_prev),
            hint_address(new_pos_next),
            tx=tx,
        )

    # --- Withdraw / claim ---
    def withdraw_stake(self, unbonding_lock_id: Optional[int], tx: Optional[TxOptions] = None) -> TxResult:
        if unbonding_lock_id is None:
            raise ValueError("missing argument unbonding_lock_id")
        return self._send("withdrawStake", int(unbonding_lock_id), tx=tx)

    def withdraw_stake_with_unbond_lock(self, lock: UnbondingLock,
                                        tx: Optional[TxOptions] = None) -> TxResult:
        """
        Withdraws a lock after checking it against the current round.

        Raises:
            UnbondingPeriodNotElapsed: lock.withdraw_round > current round
            NothingToWithdraw: lock amount is 0
            InvalidAmount: lock amount is negative
        """
        check_withdrawable(lock, self.state.get_current_round())
        return self._send("withdrawStake", lock.id, tx=tx)

    def withdraw_fees(self, tx: Optional[TxOptions] = None) -> TxResult:
        return self._send("withdrawFees", tx=tx)

    def claim_earnings(self, end_round: Optional[int] = None, tx: Optional[TxOptions] = None) -> TxResult:
        """Claims from last_claim_round + 1 through end_round (current round by default)."""
        if end_round is None:
            end_round = self.state.get_current_round()
        return self._send("claimEarnings", int(end_round), tx=tx)

    # --- Hints ---
    def prepare_bond_hints(self, delegator: str, to: str, amount) -> BondHints:
        """Hints for moving `amount` of the delegator's stake to `to`."""
        old_delegate = self.state.get_delegator(delegator).delegate_address or None
        to = self.state.resolve_address(to)
        reordered = simulate(StakeAction.STAKE, self.state.get_active_set(), _amount(amount), to, old_delegate)
        return BondHints(
            old_delegate=get_hint(old_delegate, reordered) if old_delegate else Hint(),
            curr_delegate=get_hint(to, reordered),
        )

    def prepare_unbond_hints(self, delegator: str, amount) -> Hint:
        """Hint for the delegate's position after `amount` is unbonded from it."""
        delegate = self.state.get_delegator(delegator).delegate_address
        if not delegate:
            return Hint()
        reordered = simulate(StakeAction.UNSTAKE, self.state.get_active_set(), _amount(amount), delegate)
        return get_hint(delegate, reordered)
