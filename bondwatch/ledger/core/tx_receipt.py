"""
Transaction submission and receipt tracking.

Submits a state-changing call through the chain writer, then polls for a
receipt until it reaches a definitive status. Only polling is retried;
a submission is never re-sent.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Union
import time
import logging
from threading import RLock

from ...protocol.types.common import ConfirmationFailure, ConfirmationTimeout
from ...protocol.types.tx import CallSpec, TxOptions
from ...protocol.config.params import CURRENT_NETWORK, NetworkConfig
from ..chain.interfaces import ChainWriter
from ..observability.metrics import (
    transactions_submitted_total, tx_confirmation_time_seconds, receipt_polls_total,
)

logger = logging.getLogger(__name__)

RECEIPT_STATUS_SUCCESS = "0x1"


@dataclass
class TxReceipt:
    """
    Transaction receipt containing confirmation status.

    Attributes:
        tx_hash: Transaction hash
        status: 'pending', 'confirmed' or 'failed'
        method: Contract method the transaction called
        block_height: Block the transaction was mined in (None while pending)
        timestamp: When the receipt last changed (unix timestamp)
        error: Error message if the transaction failed
        raw: Receipt as returned by the chain writer
    """
    tx_hash: str
    status: str
    method: str = ""
    block_height: Optional[int] = None
    timestamp: float = 0
    error: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.timestamp == 0:
            self.timestamp = time.time()

    def to_dict(self) -> dict:
        """Convert receipt to dictionary for API response."""
        return {
            "tx_hash": self.tx_hash,
            "status": self.status,
            "method": self.method,
            "block_height": self.block_height,
            "timestamp": int(self.timestamp),
            "error": self.error,
        }


class TxReceiptStore:
    """
    In-memory store for transaction receipts.

    Thread-safe; oldest receipts are dropped past max_receipts.
    """

    def __init__(self, max_receipts: int = 10000):
        self.receipts: Dict[str, TxReceipt] = {}
        self.max_receipts = max_receipts
        self.lock = RLock()

    def add_pending(self, tx_hash: str, method: str = "") -> TxReceipt:
        with self.lock:
            receipt = TxReceipt(tx_hash=tx_hash, status='pending', method=method)
            self.receipts[tx_hash] = receipt
            if len(self.receipts) > self.max_receipts:
                self._cleanup_old_receipts()
            logger.debug(f"Added pending receipt: {tx_hash[:18]}...")
            return receipt

    def mark_confirmed(self, tx_hash: str, raw: Dict[str, Any]) -> TxReceipt:
        with self.lock:
            receipt = self.receipts.get(tx_hash) or TxReceipt(tx_hash=tx_hash, status='pending')
            receipt.status = 'confirmed'
            receipt.block_height = _block_number(raw)
            receipt.raw = raw
            receipt.timestamp = time.time()
            self.receipts[tx_hash] = receipt
            logger.debug(f"Marked confirmed: {tx_hash[:18]}... at height {receipt.block_height}")
            return receipt

    def mark_failed(self, tx_hash: str, error: str, raw: Optional[Dict[str, Any]] = None) -> TxReceipt:
        with self.lock:
            receipt = self.receipts.get(tx_hash) or TxReceipt(tx_hash=tx_hash, status='pending')
            receipt.status = 'failed'
            receipt.error = error
            if raw:
                receipt.raw = raw
                receipt.block_height = _block_number(raw)
            receipt.timestamp = time.time()
            self.receipts[tx_hash] = receipt
            logger.debug(f"Marked failed: {tx_hash[:18]}... - {error}")
            return receipt

    def get(self, tx_hash: str) -> Optional[TxReceipt]:
        with self.lock:
            return self.receipts.get(tx_hash)

    def _cleanup_old_receipts(self) -> None:
        """Removes the oldest 10% of receipts."""
        num_to_remove = len(self.receipts) // 10
        oldest = sorted(self.receipts.items(), key=lambda x: x[1].timestamp)
        for tx_hash, _ in oldest[:num_to_remove]:
            del self.receipts[tx_hash]
        logger.info(f"Cleaned up {num_to_remove} old receipts (total: {len(self.receipts)})")

    def clear(self) -> None:
        with self.lock:
            self.receipts.clear()


def _block_number(raw: Dict[str, Any]) -> Optional[int]:
    value = raw.get("blockNumber")
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return value


class TransactionSubmitter:
    """Sends calls through a ChainWriter and waits for their receipts."""

    def __init__(self, writer: ChainWriter,
                 default_tx: Optional[TxOptions] = None,
                 config: NetworkConfig = CURRENT_NETWORK,
                 receipt_store: Optional[TxReceiptStore] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.writer = writer
        self.default_tx = default_tx or TxOptions()
        self.poll_interval = config.receipt_poll_interval
        self.default_timeout = config.receipt_timeout
        self.receipt_store = receipt_store or TxReceiptStore()
        self._sleep = sleep
        self._clock = clock

    def submit(self, call: CallSpec, tx: Optional[TxOptions] = None) -> Union[TxReceipt, str]:
        """
        Submit a call and wait for its receipt.

        Args:
            call: Contract call to send
            tx: Per-call options, applied over the default transaction options

        Returns:
            The confirmed receipt, or the transaction hash in fire-and-forget mode

        Raises:
            ConfirmationFailure: Mined with failure status
            ConfirmationTimeout: No receipt before the timeout
        """
        options = self.default_tx.merged(tx)
        tx_hash = self.writer.send(call, options)
        self.receipt_store.add_pending(tx_hash, call.method)
        logger.info(f"Submitted {call.contract}.{call.method}: {tx_hash}")

        if options.return_tx_hash:
            transactions_submitted_total.labels(method=call.method, outcome="sent").inc()
            return tx_hash

        return self.wait_for_receipt(tx_hash, call, options.timeout)

    def wait_for_receipt(self, tx_hash: str, call: Optional[CallSpec] = None,
                         timeout: Optional[float] = None) -> TxReceipt:
        """Polls immediately, then every poll_interval, until a definitive receipt."""
        method = call.method if call else ""
        timeout = self.default_timeout if timeout is None else timeout
        started = self._clock()

        while True:
            receipt_polls_total.inc()
            raw = self.writer.get_transaction_receipt(tx_hash)
            if raw:
                tx_confirmation_time_seconds.observe(self._clock() - started)
                if raw.get("status") == RECEIPT_STATUS_SUCCESS:
                    transactions_submitted_total.labels(method=method, outcome="confirmed").inc()
                    return self.receipt_store.mark_confirmed(tx_hash, raw)

                transaction = self.writer.get_transaction(raw.get("transactionHash", tx_hash))
                self.receipt_store.mark_failed(tx_hash, "Transaction reverted", raw)
                transactions_submitted_total.labels(method=method, outcome="failed").inc()
                logger.warning(f"Transaction {tx_hash} ({method}) failed with status {raw.get('status')}")
                raise ConfirmationFailure(
                    f"Transaction {tx_hash} failed",
                    receipt=raw,
                    transaction=transaction,
                )

            if self._clock() - started >= timeout:
                transactions_submitted_total.labels(method=method, outcome="timeout").inc()
                raise ConfirmationTimeout(
                    f"No receipt for {tx_hash} after {timeout}s",
                    transaction={"hash": tx_hash, "call": call.model_dump() if call else None},
                )
            self._sleep(self.poll_interval)
