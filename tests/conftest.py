import pytest

from bondwatch.protocol.config.params import NetworkConfig
from bondwatch.ledger.chain.memory import InMemoryChain
from bondwatch.ledger.core.events import EventBus
from bondwatch.ledger.core.handlers import LedgerEventHandlers
from bondwatch.ledger.core.records import LedgerRecords
from bondwatch.ledger.core.rewards import RoundRewardAccountant
from bondwatch.ledger.core.state import DelegatorStateService
from bondwatch.ledger.core.tx_receipt import TransactionSubmitter
from bondwatch.ledger.core.unbonding import UnbondingLockLedger
from bondwatch.ledger.storage.db import StorageDB

DELEGATOR = "0x" + "d" * 40
TRANSCODER = "0x" + "a" * 40
TRANSCODER_B = "0x" + "b" * 40
TRANSCODER_C = "0x" + "c" * 40

START_BLOCK = 2_000
START_ROUND = 100


@pytest.fixture
def config():
    """Small network: formula switch at 1000, genesis layout below 500, 10_000 percent base."""
    return NetworkConfig(
        network_id="test",
        chain_id=1337,
        formula_upgrade_height=1_000,
        lock_layout_height=500,
        percent_denominator=10_000,
        receipt_poll_interval=0.3,
        receipt_timeout=5.0,
        max_read_workers=4,
        unbonding_period_rounds=2,
        transcoder_pool_max_size=10,
        round_length_blocks=10,
    )


@pytest.fixture
def bus():
    bus = EventBus()
    yield bus
    bus.clear()


@pytest.fixture
def chain(config, bus):
    return InMemoryChain(
        config,
        block_number=START_BLOCK,
        current_round=START_ROUND,
        reward_per_round=1_000,
        event_bus=bus,
    )


@pytest.fixture
def db(tmp_path):
    db = StorageDB(str(tmp_path / "ledger.db"))
    yield db
    db.close()


@pytest.fixture
def records(db):
    return LedgerRecords(db)


@pytest.fixture
def sleeps():
    """Collects the intervals the submitter slept for."""
    return []


@pytest.fixture
def submitter(chain, config, sleeps):
    return TransactionSubmitter(chain, config=config, sleep=sleeps.append)


@pytest.fixture
def accountant(records, chain, config, bus):
    return RoundRewardAccountant(records, chain, config, event_bus=bus)


@pytest.fixture
def ledger(records, chain, submitter):
    return UnbondingLockLedger(records, chain, submitter)


@pytest.fixture
def state(chain, config):
    return DelegatorStateService(chain, resolver=chain, config=config)


@pytest.fixture
def indexer(records, accountant, ledger, bus):
    """Handlers subscribed to the chain's event bus."""
    handlers = LedgerEventHandlers(records, accountant, ledger)
    handlers.register(bus)
    return handlers
