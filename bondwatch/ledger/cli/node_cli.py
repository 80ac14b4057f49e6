import argparse
import os
import logging
import asyncio
from uvicorn import Config, Server
from ...protocol.types.tx import CallSpec, TxOptions
from ...protocol.config.params import CURRENT_NETWORK, DECIMALS
from ..chain.memory import InMemoryChain
from ..core.bonding import BondingService
from ..core.events import EventBus
from ..core.handlers import LedgerEventHandlers
from ..core.records import LedgerRecords
from ..core.rewards import RoundRewardAccountant
from ..core.state import DelegatorStateService
from ..core.tx_receipt import TransactionSubmitter, TxReceiptStore
from ..core.unbonding import UnbondingLockLedger
from ..storage.db import StorageDB
from ..rpc import api # import module to set globals

logger = logging.getLogger(__name__)

# (address, reward cut, fee share) in parts of the devnet percent denominator
DEVNET_TRANSCODERS = [
    ("0x1111111111111111111111111111111111111111", 500, 1_000),
    ("0x2222222222222222222222222222222222222222", 1_000, 2_500),
    ("0x3333333333333333333333333333333333333333", 2_500, 5_000),
]
DEVNET_DELEGATOR = "0xdddddddddddddddddddddddddddddddddddddddd"


def build_node(db_path: str):
    """Wires the indexer and query services over a devnet chain."""
    bus = EventBus()
    chain = InMemoryChain(CURRENT_NETWORK, event_bus=bus)
    records = LedgerRecords(StorageDB(db_path))
    receipts = TxReceiptStore()
    submitter = TransactionSubmitter(chain, config=CURRENT_NETWORK, receipt_store=receipts)

    accountant = RoundRewardAccountant(records, chain, CURRENT_NETWORK, event_bus=bus)
    ledger = UnbondingLockLedger(records, chain, submitter)
    LedgerEventHandlers(records, accountant, ledger).register(bus)

    state = DelegatorStateService(chain, resolver=chain, config=CURRENT_NETWORK)
    return chain, records, accountant, state, submitter, receipts


def seed_devnet(chain: InMemoryChain, submitter: TransactionSubmitter, state: DelegatorStateService):
    """Registers a few transcoders, bonds a delegator and runs one reward round."""
    for i, (addr, reward_cut, fee_share) in enumerate(DEVNET_TRANSCODERS, start=1):
        chain.set_transcoder(addr, reward_cut=reward_cut, fee_share=fee_share)
        chain.register_name(f"transcoder{i}.eth", addr)

    bonding = BondingService(submitter, state)
    for addr, _, _ in DEVNET_TRANSCODERS:
        self_bond = 10_000 * 10**DECIMALS
        tx = TxOptions(from_address=addr)
        bonding.approve_token_bond_amount(self_bond, tx)
        bonding.bond(addr, self_bond, tx)

    tx = TxOptions(from_address=DEVNET_DELEGATOR)
    amount = 1_000 * 10**DECIMALS
    bonding.approve_token_bond_amount(amount, tx)
    bonding.bond(DEVNET_TRANSCODERS[0][0], amount, tx)

    chain.advance_round()
    for addr, _, _ in DEVNET_TRANSCODERS:
        submitter.submit(CallSpec(method="reward"), TxOptions(from_address=addr))
    logger.info(f"Seeded devnet: {len(DEVNET_TRANSCODERS)} transcoders, delegator {DEVNET_DELEGATOR}")


async def run_node_async(args):
    os.makedirs(args.datadir, exist_ok=True)
    db_path = os.path.join(args.datadir, "ledger.db")

    print(f"Starting bondwatch node ({CURRENT_NETWORK.network_id})...")
    print(f"Data DB: {db_path}")
    print(f"RPC: {args.host}:{args.port}")

    chain, records, accountant, state, submitter, receipts = build_node(db_path)
    if args.seed:
        seed_devnet(chain, submitter, state)

    api.state = state
    api.records = records
    api.accountant = accountant
    api.receipt_store = receipts

    config = Config(app=api.app, host=args.host, port=args.port, log_level="info")
    server = Server(config)
    try:
        await server.serve()
    finally:
        records.db.close()


def cmd_start(args):
    """Wrapper to run async main."""
    try:
        asyncio.run(run_node_async(args))
    except KeyboardInterrupt:
        pass


def main():
    parser = argparse.ArgumentParser(description="bondwatch node CLI")
    parser.add_argument("--datadir", default="./.bondwatch", help="Data directory")

    subparsers = parser.add_subparsers(dest="command", required=True)

    start_parser = subparsers.add_parser("start", help="Serve the query API over a devnet chain")
    start_parser.add_argument("--host", default="0.0.0.0", help="RPC Host")
    start_parser.add_argument("--port", type=int, default=8000, help="RPC Port")
    start_parser.add_argument("--seed", action="store_true", help="Populate devnet with demo stake")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    if args.command == "start":
        cmd_start(args)


if __name__ == "__main__":
    main()
