# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import sys
import json
import requests
import os
from ..protocol.config.params import DENOM
from ..ledger.core.numeric import from_wei, to_wei

DEFAULT_NODE = "http://localhost:8000"

def get_node_url(args):
    return args.node or os.environ.get("BONDWATCH_NODE", DEFAULT_NODE)

def fetch(args, path, method="get", **kwargs):
    url = get_node_url(args)
    try:
        resp = getattr(requests, method)(f"{url}{path}", timeout=30, **kwargs)
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    if resp.status_code != 200:
        print(f"Error: {resp.text}")
        sys.exit(1)
    return resp.json()

def fmt_lpt(value) -> str:
    return f"{from_wei(int(value))} {DENOM}"

# --- Query Commands ---
def cmd_query_delegator(args):
    d = fetch(args, f"/delegator/{args.address}")
    print(f"Address:        {d['address']}")
    print(f"Status:         {d['status']}")
    print(f"Delegate:       {d['delegate_address'] or '-'}")
    print(f"Bonded:         {fmt_lpt(d['bonded_amount'])}")
    print(f"Pending stake:  {fmt_lpt(d['pending_stake'])}")
    print(f"Pending fees:   {d['pending_fees']}")
    print(f"Last claim:     round {d['last_claim_round']}")
    if d['withdraw_round']:
        print(f"Unbonding:      {fmt_lpt(d['withdraw_amount'])} at round {d['withdraw_round']}")

def cmd_query_locks(args):
    data = fetch(args, f"/delegator/{args.address}/locks")
    if not data['locks']:
        print("No unbonding locks.")
        return
    print(f"{'ID':<6} {'Amount':<30} {'Withdraw round'}")
    print("-" * 55)
    for lock in data['locks']:
        print(f"{lock['id']:<6} {fmt_lpt(lock['amount']):<30} {lock['withdraw_round']}")

def cmd_query_shares(args):
    data = fetch(args, f"/delegator/{args.address}/shares")
    print(f"{'Round':<8} {'Pool':<55} {'Formula':<9} {'Reward'}")
    print("-" * 100)
    for s in data['shares']:
        print(f"{s['round']:<8} {s['pool']:<55} {s['formula']:<9} {fmt_lpt(s['reward_tokens'])}")
    print(f"Total: {fmt_lpt(data['total_reward_tokens'])}")

def cmd_query_round(args):
    print(json.dumps(fetch(args, "/round"), indent=2))

def cmd_query_transcoder(args):
    print(json.dumps(fetch(args, f"/transcoder/{args.address}"), indent=2))

def cmd_query_transcoders(args):
    data = fetch(args, "/transcoders")
    print(f"{'Address':<45} {'Stake':<30} {'Active'}")
    print("-" * 85)
    for t in data['transcoders']:
        print(f"{t['address']:<45} {fmt_lpt(t['total_stake']):<30} {t['active']}")

def cmd_query_hint(args):
    body = {
        "action": args.action,
        "amount": to_wei(args.amount),
        "new_delegate": args.delegate,
        "old_delegate": args.old_delegate,
    }
    data = fetch(args, "/active-set/hint", method="post", json=body)
    print(f"newPosPrev: {data['hint']['new_pos_prev']}")
    print(f"newPosNext: {data['hint']['new_pos_next']}")
    if data.get('old_delegate_hint'):
        print(f"oldDelegateNewPosPrev: {data['old_delegate_hint']['new_pos_prev']}")
        print(f"oldDelegateNewPosNext: {data['old_delegate_hint']['new_pos_next']}")

def main():
    parser = argparse.ArgumentParser(prog="bondwatch", description="bondwatch query CLI")
    parser.add_argument("--node", help="Node URL (default: http://localhost:8000)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_query = subparsers.add_parser("query", help="Query delegation state")
    sp_query = p_query.add_subparsers(dest="subcommand", required=True)

    pq_del = sp_query.add_parser("delegator", help="Delegator summary")
    pq_del.add_argument("address", help="Delegator address or ENS name")
    pq_del.set_defaults(func=cmd_query_delegator)

    pq_locks = sp_query.add_parser("locks", help="Unbonding locks, newest first")
    pq_locks.add_argument("address", help="Delegator address or ENS name")
    pq_locks.set_defaults(func=cmd_query_locks)

    pq_shares = sp_query.add_parser("shares", help="Indexed reward shares")
    pq_shares.add_argument("address", help="Delegator address")
    pq_shares.set_defaults(func=cmd_query_shares)

    pq_round = sp_query.add_parser("round", help="Current round info")
    pq_round.set_defaults(func=cmd_query_round)

    pq_tc = sp_query.add_parser("transcoder", help="Transcoder details")
    pq_tc.add_argument("address", help="Transcoder address or ENS name")
    pq_tc.set_defaults(func=cmd_query_transcoder)

    pq_tcs = sp_query.add_parser("transcoders", help="Transcoder pool, highest stake first")
    pq_tcs.set_defaults(func=cmd_query_transcoders)

    pq_hint = sp_query.add_parser("hint", help="Position hints for a bond or unbond")
    pq_hint.add_argument("action", choices=["stake", "unstake"])
    pq_hint.add_argument("delegate", help="Transcoder receiving or losing stake")
    pq_hint.add_argument("amount", help=f"Amount in {DENOM}")
    pq_hint.add_argument("--old-delegate", help="Current delegate when moving stake")
    pq_hint.set_defaults(func=cmd_query_hint)

    args = parser.parse_args()
    args.func(args)

if __name__ == "__main__":
    main()
