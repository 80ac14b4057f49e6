# MIT License
# Copyright (c) 2025 Hashborn

"""
Collaborator interfaces.

The engine never talks to a node directly. It calls into these read/write
primitives, which return raw fixed-width values the way contract calls do
(tuples of ints and address strings). Decoding lives in
protocol/types/layouts.py.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Sequence
from ...protocol.types.common import ChainReadFailure, ProtocolError
from ...protocol.types.tx import CallSpec, TxOptions
from ..observability.metrics import chain_read_failures_total

logger = logging.getLogger(__name__)


class ChainReader(ABC):
    """Read-only contract calls. Stateless and idempotent."""

    # --- BondingManager ---
    @abstractmethod
    def get_delegator(self, address: str, block_number: Optional[int] = None) -> Sequence:
        """Raw getDelegator() tuple, in the layout in force at block_number (latest if None)."""

    @abstractmethod
    def get_transcoder(self, address: str) -> Sequence:
        pass

    @abstractmethod
    def get_transcoder_earnings_pool_for_round(self, address: str, round_id: int) -> Sequence:
        pass

    @abstractmethod
    def get_delegator_unbonding_lock(self, address: str, lock_id: int) -> Sequence:
        pass

    @abstractmethod
    def delegator_status(self, address: str) -> int:
        pass

    @abstractmethod
    def transcoder_status(self, address: str) -> int:
        pass

    @abstractmethod
    def is_active_transcoder(self, address: str) -> bool:
        pass

    @abstractmethod
    def transcoder_total_stake(self, address: str) -> int:
        pass

    @abstractmethod
    def pending_stake(self, address: str, end_round: int) -> int:
        pass

    @abstractmethod
    def pending_fees(self, address: str, end_round: int) -> int:
        pass

    @abstractmethod
    def get_first_transcoder_in_pool(self) -> str:
        pass

    @abstractmethod
    def get_next_transcoder_in_pool(self, address: str) -> str:
        pass

    @abstractmethod
    def transcoder_pool_max_size(self) -> int:
        pass

    @abstractmethod
    def total_bonded(self) -> int:
        pass

    @abstractmethod
    def max_earnings_claims_rounds(self) -> int:
        pass

    # --- RoundsManager ---
    @abstractmethod
    def current_round(self) -> int:
        pass

    @abstractmethod
    def current_round_initialized(self) -> bool:
        pass

    @abstractmethod
    def current_round_start_block(self) -> int:
        pass

    @abstractmethod
    def last_initialized_round(self) -> int:
        pass

    @abstractmethod
    def round_length(self) -> int:
        pass

    # --- Token / Minter / Controller ---
    @abstractmethod
    def allowance(self, owner: str, spender: str) -> int:
        pass

    @abstractmethod
    def total_supply(self) -> int:
        pass

    @abstractmethod
    def target_bonding_rate(self) -> int:
        pass

    @abstractmethod
    def paused(self) -> bool:
        pass

    @property
    @abstractmethod
    def bonding_manager_address(self) -> str:
        pass


class ChainWriter(ABC):
    """Submits state-changing calls and exposes their receipts."""

    @abstractmethod
    def send(self, call: CallSpec, tx: TxOptions) -> str:
        """Submits the call, returns the transaction hash."""

    @abstractmethod
    def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Receipt dict with a "status" of "0x1" (success) or "0x0", or None while unmined."""

    @abstractmethod
    def get_transaction(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        pass


class AddressResolver(ABC):
    """Name service. Raises NameNotDefined when a name has no entry."""

    @abstractmethod
    def resolve(self, name: str) -> str:
        pass


def chain_read(call: str, fn: Callable, *args):
    """
    Run one collaborator read. Failures are rethrown as ChainReadFailure
    prefixed with the call name, original exception chained.
    """
    try:
        return fn(*args)
    except ProtocolError:
        raise
    except Exception as e:
        chain_read_failures_total.labels(call=call).inc()
        logger.debug(f"{call}{args} failed: {e}")
        raise ChainReadFailure(call, str(e)) from e
