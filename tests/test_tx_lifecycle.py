"""
Tests for transaction submission and receipt tracking

Tests:
- EventBus pub/sub mechanism
- TxReceipt storage and tracking
- Submission, receipt polling, failure and timeout
- Fire-and-forget submissions
"""
import itertools
import pytest
from unittest.mock import Mock

from bondwatch.protocol.types.common import ConfirmationFailure, ConfirmationTimeout
from bondwatch.protocol.types.tx import CallSpec, TxOptions
from bondwatch.ledger.core.events import EventBus
from bondwatch.ledger.core.tx_receipt import TransactionSubmitter, TxReceiptStore

DELEGATOR = "0x" + "d" * 40
TX = TxOptions(from_address=DELEGATOR)


# ═══════════════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════════════

@pytest.fixture
def clean_receipt_store():
    """Provide a clean TxReceiptStore for each test."""
    store = TxReceiptStore()
    yield store
    store.clear()


@pytest.fixture
def writer():
    """ChainWriter double that never produces a receipt."""
    w = Mock()
    w.send.return_value = "0xabc"
    w.get_transaction_receipt.return_value = None
    return w


# ═══════════════════════════════════════════════════════════════════
# EVENTBUS TESTS
# ═══════════════════════════════════════════════════════════════════

def test_eventbus_subscribe_and_emit(bus):
    received = []
    bus.subscribe('test_event', lambda **data: received.append(data))

    assert bus.emit('test_event', value=42) == 1
    assert received == [{'value': 42}]


def test_eventbus_failing_listener_is_isolated(bus):
    received = []

    def broken(**data):
        raise RuntimeError("listener failed")

    bus.subscribe('test_event', broken)
    bus.subscribe('test_event', lambda **data: received.append(data))

    assert bus.emit('test_event', value=1) == 1
    assert received == [{'value': 1}]


def test_eventbus_non_isolated_error_reaches_emitter(bus):
    received = []
    cause = RuntimeError("listener failed")

    def broken(**data):
        raise cause

    bus.subscribe('test_event', broken, isolate=False)
    bus.subscribe('test_event', lambda **data: received.append(data))

    with pytest.raises(RuntimeError) as exc:
        bus.emit('test_event', value=1)

    assert exc.value is cause
    # Later listeners still ran
    assert received == [{'value': 1}]


def test_eventbus_unsubscribed_listener_no_longer_raises(bus):
    def broken(**data):
        raise RuntimeError("listener failed")

    bus.subscribe('test_event', broken, isolate=False)
    bus.unsubscribe('test_event', broken)
    bus.subscribe('test_event', broken)

    assert bus.emit('test_event') == 0


def test_eventbus_unsubscribe_and_clear():
    bus = EventBus()
    cb = Mock()
    bus.subscribe('a', cb)
    bus.subscribe('b', cb)

    bus.unsubscribe('a', cb)
    assert bus.emit('a') == 0

    bus.clear()
    assert bus.emit('b') == 0
    cb.assert_not_called()


# ═══════════════════════════════════════════════════════════════════
# RECEIPT STORE TESTS
# ═══════════════════════════════════════════════════════════════════

def test_receipt_pending_to_confirmed(clean_receipt_store):
    store = clean_receipt_store
    store.add_pending("0x01", "bond")
    assert store.get("0x01").status == 'pending'

    store.mark_confirmed("0x01", {"status": "0x1", "blockNumber": "0x10"})
    receipt = store.get("0x01")
    assert receipt.status == 'confirmed'
    assert receipt.block_height == 16
    assert receipt.to_dict()["method"] == "bond"


def test_receipt_failed(clean_receipt_store):
    store = clean_receipt_store
    store.add_pending("0x02")
    store.mark_failed("0x02", "Transaction reverted", {"status": "0x0", "blockNumber": 7})

    receipt = store.get("0x02")
    assert receipt.status == 'failed'
    assert receipt.error == "Transaction reverted"
    assert receipt.block_height == 7


def test_receipt_store_drops_oldest():
    store = TxReceiptStore(max_receipts=10)
    for i in range(11):
        store.add_pending(f"0x{i:02x}")
    assert len(store.receipts) == 10


# ═══════════════════════════════════════════════════════════════════
# SUBMITTER TESTS
# ═══════════════════════════════════════════════════════════════════

def approve_call(chain, amount=100):
    return CallSpec(contract="LivepeerToken", method="approve",
                    args=[chain.bonding_manager_address, amount])


def test_submit_waits_for_confirmation(chain, submitter, sleeps):
    chain.receipt_delay = 2

    receipt = submitter.submit(approve_call(chain), TX)

    assert receipt.status == 'confirmed'
    assert receipt.method == "approve"
    # Polled at once, then twice more at the poll interval
    assert sleeps == [0.3, 0.3]
    assert submitter.receipt_store.get(receipt.tx_hash).status == 'confirmed'
    assert chain.allowance(DELEGATOR, chain.bonding_manager_address) == 100


def test_submit_immediate_receipt_does_not_sleep(chain, submitter, sleeps):
    submitter.submit(approve_call(chain), TX)
    assert sleeps == []


def test_failed_transaction_carries_receipt_and_transaction(chain, submitter):
    # No allowance: the bond reverts
    chain.set_transcoder("0x" + "a" * 40)
    call = CallSpec(method="bond", args=[100, "0x" + "a" * 40])

    with pytest.raises(ConfirmationFailure) as exc:
        submitter.submit(call, TX)

    assert exc.value.receipt["status"] == "0x0"
    assert exc.value.transaction["method"] == "bond"
    assert exc.value.transaction["from"] == DELEGATOR

    tx_hash = exc.value.receipt["transactionHash"]
    assert submitter.receipt_store.get(tx_hash).status == 'failed'


def test_return_tx_hash_skips_polling(chain, submitter):
    tx_hash = submitter.submit(approve_call(chain), TxOptions(from_address=DELEGATOR, return_tx_hash=True))

    assert isinstance(tx_hash, str)
    assert submitter.receipt_store.get(tx_hash).status == 'pending'


def test_timeout(writer, config):
    ticks = itertools.count()
    submitter = TransactionSubmitter(writer, config=config, sleep=lambda s: None,
                                     clock=lambda: next(ticks))

    with pytest.raises(ConfirmationTimeout) as exc:
        submitter.submit(CallSpec(method="withdrawFees"), TxOptions(timeout=3))

    assert isinstance(exc.value, ConfirmationFailure)
    assert writer.get_transaction_receipt.call_count == 3
    # Submission is never retried
    writer.send.assert_called_once()


def test_default_tx_options_are_merged(writer, config):
    writer.get_transaction_receipt.return_value = {"status": "0x1", "blockNumber": 1}
    submitter = TransactionSubmitter(writer, default_tx=TxOptions(from_address=DELEGATOR, gas=100_000),
                                     config=config, sleep=lambda s: None)

    submitter.submit(CallSpec(method="withdrawFees"), TxOptions(gas=250_000))

    sent = writer.send.call_args[0][1]
    assert sent.from_address == DELEGATOR
    assert sent.gas == 250_000
