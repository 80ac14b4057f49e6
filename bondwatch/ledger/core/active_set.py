# MIT License
# Copyright (c) 2025 Hashborn

"""
Active set reordering.

Simulates how a stake change would reorder the transcoder pool and derives
the neighbour hints a bond/unbond call passes so the contract can insert the
transcoder without walking the list.
"""

from typing import List, Optional, Sequence

from ...protocol.types.common import StakeAction
from ...protocol.types.transcoder import ActiveSetEntry, Hint
from ...protocol.config.params import EMPTY_ADDRESS
from ...protocol.crypto.addresses import same_address


def simulate(action, active_set: Sequence[ActiveSetEntry], amount: int,
             new_delegate: str, old_delegate: Optional[str] = None) -> List[ActiveSetEntry]:
    """
    Apply a stake change to a copy of the active set and re-sort it.

    Args:
        action: StakeAction.STAKE or StakeAction.UNSTAKE
        active_set: Current order, highest stake first
        amount: Stake moved
        new_delegate: Transcoder receiving (stake) or losing (unstake) the amount
        old_delegate: Previous delegate when moving stake between transcoders

    Delegates missing from active_set are left out; the others still change.

    Returns:
        New list sorted by descending stake; equal stakes keep their order
    """
    action = StakeAction(action)
    reordered = [entry.model_copy() for entry in active_set]

    target = _find(reordered, new_delegate)

    if action is StakeAction.STAKE:
        if target is not None:
            target.total_stake += amount
        # Moving to a transcoder outside the set still drains the old one
        if old_delegate and not same_address(old_delegate, new_delegate):
            previous = _find(reordered, old_delegate)
            if previous is not None:
                previous.total_stake -= amount
    elif target is not None:
        target.total_stake -= amount

    # sorted() is stable
    return sorted(reordered, key=lambda e: e.total_stake, reverse=True)


def get_hint(operator_id: str, reordered: Sequence[ActiveSetEntry]) -> Hint:
    """Neighbours of operator_id in the reordered set."""
    for i, entry in enumerate(reordered):
        if same_address(entry.address, operator_id):
            prev_addr = reordered[i - 1].address if i > 0 else EMPTY_ADDRESS
            next_addr = reordered[i + 1].address if i + 1 < len(reordered) else EMPTY_ADDRESS
            return Hint(new_pos_prev=prev_addr, new_pos_next=next_addr)
    return Hint()


def _find(entries: List[ActiveSetEntry], address: str) -> Optional[ActiveSetEntry]:
    for entry in entries:
        if same_address(entry.address, address):
            return entry
    return None
