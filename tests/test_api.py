"""
Tests for the query API

Tests:
- Service wiring and 503 before initialization
- Error mapping (404 / 409 / 502)
- Hint simulation endpoint
- Receipts and metrics
"""
import pytest
from fastapi.testclient import TestClient

from bondwatch.protocol.types.delegator import IndexedDelegator, Share
from bondwatch.protocol.types.common import RewardFormula
from bondwatch.protocol.config.params import EMPTY_ADDRESS
from bondwatch.ledger.rpc import api
from bondwatch.ledger.core.tx_receipt import TxReceiptStore

DELEGATOR = "0x" + "d" * 40
A = "0x" + "a" * 40
B = "0x" + "b" * 40


@pytest.fixture
def client():
    return TestClient(api.app)


@pytest.fixture
def node(monkeypatch, state, records, accountant):
    """API globals wired to the test services; restored afterwards."""
    store = TxReceiptStore()
    monkeypatch.setattr(api, "state", state)
    monkeypatch.setattr(api, "records", records)
    monkeypatch.setattr(api, "accountant", accountant)
    monkeypatch.setattr(api, "receipt_store", store)
    return store


def test_uninitialized_node(client, monkeypatch):
    monkeypatch.setattr(api, "state", None)
    monkeypatch.setattr(api, "accountant", None)

    assert client.get("/status").status_code == 503
    assert client.get(f"/delegator/{DELEGATOR}").status_code == 503
    assert client.get(f"/delegator/{DELEGATOR}/shares").status_code == 503


def test_status(client, node):
    body = client.get("/status").json()
    assert body["current_round"] == 100
    assert body["indexed_delegators"] == 0


def test_get_delegator(client, node, chain):
    chain.set_transcoder(A, total_stake=100)
    chain.set_delegator(DELEGATOR, bonded_amount=100, delegate_address=A, start_round=50)

    body = client.get(f"/delegator/{DELEGATOR}").json()
    assert body["status"] == "Bonded"
    assert body["delegate_address"] == A
    assert body["bonded_amount"] == 100


def test_chain_read_failure_is_bad_gateway(client, node, chain):
    chain.fail_reads["getDelegator"] = RuntimeError("node unavailable")

    resp = client.get(f"/delegator/{DELEGATOR}")
    assert resp.status_code == 502
    assert resp.json()["detail"].startswith("Error: getDelegator")


def test_pending_stake(client, node, chain):
    chain.set_delegator(DELEGATOR, bonded_amount=100, delegate_address=A, last_claim_round=100)
    body = client.get(f"/delegator/{DELEGATOR}/pending-stake").json()
    assert body == {"delegator": DELEGATOR, "pending_stake": 100}


def test_shares_for_unindexed_delegator(client, node):
    assert client.get(f"/delegator/{DELEGATOR}/shares").status_code == 404


def test_shares_total(client, node, records):
    d = IndexedDelegator(address=DELEGATOR, delegate=A)
    records.set_delegator(d)
    for round_id, tokens in ((100, 10), (101, 30)):
        records.save_share(Share(id=f"{DELEGATOR}:{round_id}", delegator=DELEGATOR, round=round_id,
                                 pool=f"{A}:{round_id}", reward_tokens=tokens,
                                 formula=RewardFormula.CURRENT), d)

    body = client.get(f"/delegator/{DELEGATOR}/shares").json()
    assert [s["round"] for s in body["shares"]] == [100, 101]
    assert body["total_reward_tokens"] == 40


def test_transcoders(client, node, chain):
    chain.set_transcoder(A, total_stake=100)
    chain.set_transcoder(B, total_stake=300)

    body = client.get("/transcoders").json()
    assert [t["address"] for t in body["transcoders"]] == [B, A]


def test_hint_with_explicit_active_set(client, node):
    resp = client.post("/active-set/hint", json={
        "action": "stake",
        "amount": 30,
        "new_delegate": B,
        "active_set": [
            {"address": A, "total_stake": 100},
            {"address": B, "total_stake": 80},
        ],
    })

    body = resp.json()
    assert [e["address"] for e in body["order"]] == [B, A]
    assert body["hint"] == {"new_pos_prev": EMPTY_ADDRESS, "new_pos_next": A}
    assert body["old_delegate_hint"] is None


def test_hint_uses_live_active_set(client, node, chain):
    chain.set_transcoder(A, total_stake=100)
    chain.set_transcoder(B, total_stake=80)

    body = client.post("/active-set/hint", json={
        "action": "unstake", "amount": 50, "new_delegate": A,
    }).json()
    assert body["hint"] == {"new_pos_prev": B, "new_pos_next": EMPTY_ADDRESS}


def test_hint_rejects_negative_amount(client, node):
    resp = client.post("/active-set/hint", json={"action": "stake", "amount": -1, "new_delegate": A})
    assert resp.status_code == 422


def test_tx_receipt(client, node):
    assert client.get("/tx/0x01/receipt").status_code == 404

    node.add_pending("0x01", "bond")
    body = client.get("/tx/0x01/receipt").json()
    assert body["status"] == "pending"
    assert body["method"] == "bond"


def test_metrics(client, node):
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "bondwatch_indexed_delegators" in resp.text
