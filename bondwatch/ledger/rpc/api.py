from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, Field
from typing import List, Optional
from ...protocol.types.common import (
    ChainReadFailure, InvalidState, NotFound, ProtocolError, StakeAction,
)
from ...protocol.types.transcoder import ActiveSetEntry
from ...protocol.config.params import CURRENT_NETWORK
from ..core.active_set import get_hint, simulate
from ..core.records import LedgerRecords
from ..core.rewards import RoundRewardAccountant
from ..core.state import DelegatorStateService
from ..core.tx_receipt import TxReceiptStore
import logging

logger = logging.getLogger(__name__)

app = FastAPI(title="bondwatch query API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Injected by node_cli (or tests)
state: Optional[DelegatorStateService] = None
records: Optional[LedgerRecords] = None
accountant: Optional[RoundRewardAccountant] = None
receipt_store: Optional[TxReceiptStore] = None


class HintRequest(BaseModel):
    action: StakeAction
    amount: int = Field(ge=0)
    new_delegate: str
    old_delegate: Optional[str] = None
    # Defaults to the live active set
    active_set: Optional[List[ActiveSetEntry]] = None


def _require_state() -> DelegatorStateService:
    if not state:
        raise HTTPException(status_code=503, detail="Node not initialized")
    return state


def _call(fn, *args):
    """Runs a service call, mapping protocol errors to HTTP status codes."""
    try:
        return fn(*args)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ChainReadFailure as e:
        logger.warning(f"Chain read failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except (ProtocolError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/status")
async def get_status():
    svc = _require_state()
    return {
        "network": CURRENT_NETWORK.network_id,
        "current_round": _call(svc.get_current_round),
        "indexed_delegators": len(records.get_all_delegators()) if records else 0,
    }


@app.get("/round")
async def get_round():
    return _call(_require_state().get_current_round_info)


@app.get("/protocol")
async def get_protocol():
    return _call(_require_state().get_protocol)


@app.get("/delegator/{address}")
async def get_delegator(address: str):
    return _call(_require_state().get_delegator, address)


@app.get("/delegator/{address}/locks")
async def get_delegator_locks(address: str):
    svc = _require_state()
    locks = _call(svc.get_delegator_unbonding_locks, address)
    return {"delegator": address.lower(), "locks": locks}


@app.get("/delegator/{address}/pending-stake")
async def get_pending_stake(address: str, end_round: Optional[int] = None):
    amount = _call(_require_state().get_pending_stake, address, end_round)
    return {"delegator": address.lower(), "pending_stake": amount}


@app.get("/delegator/{address}/pending-fees")
async def get_pending_fees(address: str, end_round: Optional[int] = None):
    amount = _call(_require_state().get_pending_fees, address, end_round)
    return {"delegator": address.lower(), "pending_fees": amount}


@app.get("/delegator/{address}/shares")
async def get_delegator_shares(address: str):
    """Reward shares computed for an indexed delegator, oldest round first."""
    if not accountant:
        raise HTTPException(status_code=503, detail="Indexer not initialized")
    shares = _call(accountant.get_shares, address)
    return {
        "delegator": address.lower(),
        "shares": shares,
        "total_reward_tokens": sum(s.reward_tokens for s in shares),
    }


@app.get("/transcoder/{address}")
async def get_transcoder(address: str):
    return _call(_require_state().get_transcoder, address)


@app.get("/transcoders")
async def get_transcoders():
    return {"transcoders": _call(_require_state().get_transcoders)}


@app.post("/active-set/hint")
async def post_active_set_hint(req: HintRequest):
    """Simulates a stake change and returns the reordered set with the new delegate's hint."""
    active_set = req.active_set
    if active_set is None:
        active_set = _call(_require_state().get_active_set)
    reordered = simulate(req.action, active_set, req.amount, req.new_delegate, req.old_delegate)
    return {
        "order": reordered,
        "hint": get_hint(req.new_delegate, reordered),
        "old_delegate_hint": get_hint(req.old_delegate, reordered) if req.old_delegate else None,
    }


@app.get("/tx/{tx_hash}/receipt")
async def get_tx_receipt(tx_hash: str):
    if not receipt_store:
        raise HTTPException(status_code=503, detail="Node not initialized")
    receipt = receipt_store.get(tx_hash)
    if not receipt:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return receipt.to_dict()


@app.get("/metrics")
async def get_metrics():
    """Prometheus metrics in text format."""
    try:
        from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
        from ..observability.metrics import metrics_registry, update_metrics

        if records:
            update_metrics(records, state.get_current_round() if state else None)

        return Response(
            content=generate_latest(metrics_registry),
            media_type=CONTENT_TYPE_LATEST
        )
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Metrics error: {str(e)}")
