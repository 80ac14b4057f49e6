from typing import Dict, Iterator, List, Optional
import logging
import threading
from contextlib import contextmanager
from ...protocol.types.delegator import (
    IndexedDelegator, UnbondingLock, Share, make_lock_id, make_share_id,
)
from ...protocol.types.common import NotFound
from ..storage.db import StorageDB

logger = logging.getLogger(__name__)


class KeyedLock:
    """One mutex per key. Serializes read-modify-write of a single delegator."""

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.RLock())
        with lock:
            yield


class LedgerRecords:
    """
    Indexed records keyed by composite string ids:

        del:<delegator>
        share:<delegator>:<round>
        lock:<delegator>:<lockId>

    Writes go straight through to the store; the cache only saves repeat reads.
    """

    def __init__(self, db: StorageDB):
        self.db = db
        self._delegators: Dict[str, IndexedDelegator] = {}
        self.locks = KeyedLock()

    # --- Delegators ---
    def find_delegator(self, address: str) -> Optional[IndexedDelegator]:
        address = address.lower()
        if address in self._delegators:
            return self._delegators[address].model_copy(deep=True)

        raw_json = self.db.get_state(f"del:{address}")
        if raw_json:
            d = IndexedDelegator.model_validate_json(raw_json)
            self._delegators[address] = d
            return d.model_copy(deep=True)
        return None

    def get_delegator(self, address: str) -> IndexedDelegator:
        d = self.find_delegator(address)
        if d is None:
            raise NotFound(f"Delegator {address} not indexed")
        return d

    def set_delegator(self, delegator: IndexedDelegator):
        self.db.set_state(f"del:{delegator.address}", delegator.model_dump_json())
        self._delegators[delegator.address] = delegator.model_copy(deep=True)

    def get_all_delegators(self) -> List[IndexedDelegator]:
        return [
            IndexedDelegator.model_validate_json(v)
            for v in self.db.get_state_by_prefix("del:").values()
        ]

    # --- Shares ---
    def get_share(self, delegator: str, round_id: int) -> Optional[Share]:
        raw_json = self.db.get_state(f"share:{make_share_id(delegator.lower(), round_id)}")
        return Share.model_validate_json(raw_json) if raw_json else None

    def get_shares(self, delegator: str) -> List[Share]:
        rows = self.db.get_state_by_prefix(f"share:{delegator.lower()}:")
        shares = [Share.model_validate_json(v) for v in rows.values()]
        return sorted(shares, key=lambda s: s.round)

    def save_share(self, share: Share, delegator: IndexedDelegator):
        """Share and the delegator it credited are written together."""
        self.db.set_many({
            f"share:{share.id}": share.model_dump_json(),
            f"del:{delegator.address}": delegator.model_dump_json(),
        })
        self._delegators[delegator.address] = delegator.model_copy(deep=True)

    # --- Unbonding locks ---
    def get_lock(self, delegator: str, lock_id: int) -> Optional[UnbondingLock]:
        raw_json = self.db.get_state(f"lock:{make_lock_id(delegator.lower(), lock_id)}")
        return UnbondingLock.model_validate_json(raw_json) if raw_json else None

    def save_lock(self, lock: UnbondingLock, delegator: Optional[IndexedDelegator] = None):
        items = {f"lock:{lock.key}": lock.model_dump_json()}
        if delegator is not None:
            items[f"del:{delegator.address}"] = delegator.model_dump_json()
        self.db.set_many(items)
        if delegator is not None:
            self._delegators[delegator.address] = delegator.model_copy(deep=True)
