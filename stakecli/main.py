# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import sys
import json
import os
from decimal import Decimal, InvalidOperation
from datetime import datetime
import requests
from stakeproto.config.params import DECIMALS, DENOM
from stakeproto.crypto.addresses import decode_address
from stakeproto.types.requests import sign_request
from .keystore import KeyStore, KEYSTORE_DIR

DEFAULT_NODE = "http://localhost:8000"

def get_node_url(args):
    return args.node or os.environ.get("STAKE_NODE", DEFAULT_NODE)

def to_units(amount: str) -> int:
    """'1.5' -> 1.5 * 10**DECIMALS minimal units."""
    try:
        return int(Decimal(amount) * 10**DECIMALS)
    except InvalidOperation:
        print(f"Error: invalid amount '{amount}'")
        sys.exit(1)

def from_units(units) -> str:
    return f"{Decimal(int(units)) / 10**DECIMALS:f} {DENOM}"

def node_get(url, path):
    try:
        resp = requests.get(f"{url}{path}")
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    if resp.status_code != 200:
        print(f"Error: {resp.text}")
        sys.exit(1)
    return resp.json()

def node_post(url, path, body):
    try:
        resp = requests.post(f"{url}{path}", json=body)
    except requests.RequestException as e:
        print(f"Connection error: {e}")
        sys.exit(1)
    data = resp.json()
    if resp.status_code != 200:
        # Ledger rejections carry {"error": code, "detail": message}
        if "error" in data:
            print(f"Rejected: {data['error']} ({data['detail']})")
        else:
            print(f"Error: {data.get('detail', resp.text)}")
        sys.exit(1)
    return data

def get_keystore(args) -> KeyStore:
    return KeyStore(args.keydir) if getattr(args, "keydir", None) else KeyStore()

def load_signer(args):
    """Returns (private_key, address) of the --from key."""
    data = get_keystore(args).get_key(args.from_key)
    if data is None:
        print(f"Error: key '{args.from_key}' not found. Use 'keys add' or 'keys import'.")
        sys.exit(1)
    return bytes.fromhex(data["private_key"]), data["address"]

def signed_post(args, path, body, signer=None):
    priv, address = signer or load_signer(args)
    prefix, _ = decode_address(address)
    return node_post(get_node_url(args), path, sign_request(body, priv, prefix=prefix))

# --- Key Commands ---
def cmd_keys_add(args):
    try:
        data = get_keystore(args).create_key(args.name)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"Key '{data['name']}' created")
    print(f"Address: {data['address']}")

def cmd_keys_import(args):
    try:
        data = get_keystore(args).import_key(args.name, args.private_key)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"Key '{data['name']}' imported")
    print(f"Address: {data['address']}")

def cmd_keys_list(args):
    keys = get_keystore(args).list_keys()
    if not keys:
        print("No keys found.")
        return
    for k in keys:
        print(f"{k['name']:<16} {k['address']}")

def cmd_keys_show(args):
    data = get_keystore(args).get_key(args.name)
    if data is None:
        print(f"Error: key '{args.name}' not found")
        sys.exit(1)
    print(f"Name:       {data['name']}")
    print(f"Address:    {data['address']}")
    print(f"Public key: {data['public_key']}")

# --- Query Commands ---
def cmd_query_status(args):
    print(json.dumps(node_get(get_node_url(args), "/status"), indent=2))

def cmd_query_balance(args):
    data = node_get(get_node_url(args), f"/token/balance/{args.address}")
    print(f"Balance:   {from_units(data['balance'])}")
    print(f"Allowance: {from_units(data['allowance'])}")

def cmd_query_stakes(args):
    data = node_get(get_node_url(args), f"/stakes/{args.address}")
    stakes = data["stakes"]
    if not args.all:
        stakes = [s for s in stakes if int(s["amount"]) > 0]
    if not stakes:
        print("No stakes found.")
        return

    print(f"{'ID':<5} {'Amount':<28} {'Unlocks':<20} {'Pending reward':<28} {'Withdrawable'}")
    print("-" * 95)
    for s in stakes:
        unlocks = datetime.fromtimestamp(s["unlock_time"]).strftime("%Y-%m-%d %H:%M:%S")
        print(f"{s['stake_id']:<5} {from_units(s['amount']):<28} {unlocks:<20} {from_units(s['pending_reward']):<28} {s['can_withdraw']}")
    print(f"\nActive stakes: {data['active_count']}")

def cmd_query_rewards(args):
    data = node_get(get_node_url(args), f"/rewards/{args.address}")
    print(f"Claimable:     {from_units(data['claimable'])}")
    print(f"Total claimed: {from_units(data['total_claimed'])}")

def cmd_query_events(args):
    path = f"/events?limit={args.limit}"
    if args.address:
        path += f"&address={args.address}"
    for event in node_get(get_node_url(args), path)["events"]:
        print(json.dumps(event))

# --- Tx Commands ---
def cmd_faucet(args):
    data = signed_post(args, "/faucet", {})
    print(f"Received {from_units(data['amount'])}")

def cmd_tx_approve(args):
    signer = load_signer(args)
    signed_post(args, "/token/approve", {"amount": to_units(args.amount)}, signer)
    print(f"Ledger may now pull up to {args.amount} {DENOM} from {signer[1]}")

def cmd_tx_stake(args):
    signer = load_signer(args)
    amount = to_units(args.amount)
    if args.approve:
        signed_post(args, "/token/approve", {"amount": amount}, signer)
    print(f"Staking {args.amount} {DENOM} from {signer[1]}...")
    data = signed_post(args, "/stake", {"amount": amount}, signer)
    print(f"Success! Stake ID: {data['stake_id']}")

def cmd_tx_withdraw(args):
    url = get_node_url(args)
    signer = load_signer(args)
    if args.ids:
        stake_ids = [int(i) for i in args.ids.split(",") if i.strip()]
    else:
        # Unlocked stakes, oldest first, up to the node's batch limit
        max_batch = node_get(url, "/status")["params"]["max_batch_size"]
        stakes = node_get(url, f"/stakes/{signer[1]}")["stakes"]
        stake_ids = [s["stake_id"] for s in stakes if s["can_withdraw"]][:max_batch]

    print(f"Withdrawing {args.amount} {DENOM} from stakes {stake_ids}...")
    data = signed_post(args, "/withdraw", {
        "stake_ids": stake_ids,
        "total_amount": to_units(args.amount),
    }, signer)
    print(f"Success! Received {from_units(data['amount'])}")

def cmd_tx_withdraw_stake(args):
    data = signed_post(args, "/withdraw/stake", {"stake_id": args.stake_id})
    print(f"Success! Received {from_units(data['amount'])}")

def cmd_tx_claim(args):
    data = signed_post(args, "/claim", {})
    print(f"Success! Claimed {from_units(data['amount'])}")

# --- Admin Commands ---
def cmd_admin_fund(args):
    signer = load_signer(args)
    amount = to_units(args.amount)
    signed_post(args, "/token/approve", {"amount": amount}, signer)
    signed_post(args, "/admin/fund", {"amount": amount}, signer)
    print(f"Reward reserve funded with {args.amount} {DENOM}")

def cmd_admin_set_rate(args):
    signed_post(args, "/admin/reward_rate", {"rate_percent": args.rate})
    print(f"Reward rate set to {args.rate}%")

def cmd_admin_set_lock(args):
    signed_post(args, "/admin/lock_duration", {"seconds": args.seconds})
    print(f"Lock duration set to {args.seconds}s")

def cmd_admin_pause(args):
    signed_post(args, "/admin/pause", {})
    print("Ledger paused")

def cmd_admin_unpause(args):
    signed_post(args, "/admin/unpause", {})
    print("Ledger unpaused")

def main():
    parser = argparse.ArgumentParser(prog="stakeledger-cli", description="StakeLedger Client CLI")
    parser.add_argument("--node", help="Node URL (default: http://localhost:8000)")
    parser.add_argument("--keydir", help=f"Keystore directory (default: {KEYSTORE_DIR})")

    subparsers = parser.add_subparsers(dest="command", help="Sub-commands")

    # keys
    p_keys = subparsers.add_parser("keys", help="Manage signing keys")
    sp_keys = p_keys.add_subparsers(dest="subcommand")

    pk_add = sp_keys.add_parser("add", help="Generate a new key")
    pk_add.add_argument("name", help="Key name")

    pk_imp = sp_keys.add_parser("import", help="Import a hex private key")
    pk_imp.add_argument("name", help="Key name")
    pk_imp.add_argument("private_key", help="32-byte private key in hex")

    sp_keys.add_parser("list", help="List keys")

    pk_show = sp_keys.add_parser("show", help="Show key address and public key")
    pk_show.add_argument("name", help="Key name")

    # query
    p_query = subparsers.add_parser("query", help="Query ledger state")
    sp_query = p_query.add_subparsers(dest="subcommand")

    sp_query.add_parser("status", help="Node status and parameters")

    pq_bal = sp_query.add_parser("balance", help="Token balance and allowance")
    pq_bal.add_argument("address", help="Account address")

    pq_stakes = sp_query.add_parser("stakes", help="Stakes of an account")
    pq_stakes.add_argument("address", help="Account address")
    pq_stakes.add_argument("--all", action="store_true", help="Include withdrawn stakes")

    pq_rew = sp_query.add_parser("rewards", help="Claimable rewards of an account")
    pq_rew.add_argument("address", help="Account address")

    pq_ev = sp_query.add_parser("events", help="Recent ledger events")
    pq_ev.add_argument("--address", help="Only events of this account")
    pq_ev.add_argument("--limit", type=int, default=20)

    # faucet
    p_faucet = subparsers.add_parser("faucet", help="Request devnet tokens")
    p_faucet.add_argument("--from", dest="from_key", required=True, help="Recipient key name")

    # tx
    p_tx = subparsers.add_parser("tx", help="Send ledger operations")
    sp_tx = p_tx.add_subparsers(dest="subcommand")

    pt_appr = sp_tx.add_parser("approve", help="Allow the ledger to pull tokens")
    pt_appr.add_argument("amount", help=f"Amount in {DENOM}")
    pt_appr.add_argument("--from", dest="from_key", required=True, help="Holder key name")

    pt_stake = sp_tx.add_parser("stake", help="Create a new stake")
    pt_stake.add_argument("amount", help=f"Amount in {DENOM}")
    pt_stake.add_argument("--from", dest="from_key", required=True, help="Staker key name")
    pt_stake.add_argument("--approve", action="store_true", help="Approve the amount first")

    pt_wd = sp_tx.add_parser("withdraw", help="Withdraw principal across stakes")
    pt_wd.add_argument("amount", help=f"Amount in {DENOM}")
    pt_wd.add_argument("--ids", help="Comma-separated stake ids (default: unlocked, up to the batch limit)")
    pt_wd.add_argument("--from", dest="from_key", required=True, help="Staker key name")

    pt_wds = sp_tx.add_parser("withdraw-stake", help="Withdraw one whole stake")
    pt_wds.add_argument("stake_id", type=int, help="Stake id")
    pt_wds.add_argument("--from", dest="from_key", required=True, help="Staker key name")

    pt_claim = sp_tx.add_parser("claim", help="Claim accrued rewards")
    pt_claim.add_argument("--from", dest="from_key", required=True, help="Staker key name")

    # admin
    p_admin = subparsers.add_parser("admin", help="Owner-only operations")
    sp_admin = p_admin.add_subparsers(dest="subcommand")

    pa_fund = sp_admin.add_parser("fund", help="Deposit reward reserve")
    pa_fund.add_argument("amount", help=f"Amount in {DENOM}")
    pa_fund.add_argument("--from", dest="from_key", required=True, help="Owner key name")

    pa_rate = sp_admin.add_parser("set-rate", help="Set annual reward rate")
    pa_rate.add_argument("rate", type=int, help="Percent per year")
    pa_rate.add_argument("--from", dest="from_key", required=True, help="Owner key name")

    pa_lock = sp_admin.add_parser("set-lock", help="Set lock duration")
    pa_lock.add_argument("seconds", type=int, help="Lock duration in seconds")
    pa_lock.add_argument("--from", dest="from_key", required=True, help="Owner key name")

    pa_pause = sp_admin.add_parser("pause", help="Pause stake/withdraw/claim")
    pa_pause.add_argument("--from", dest="from_key", required=True, help="Owner key name")

    pa_unpause = sp_admin.add_parser("unpause", help="Resume operations")
    pa_unpause.add_argument("--from", dest="from_key", required=True, help="Owner key name")

    args = parser.parse_args()

    if args.command == "keys":
        if args.subcommand == "add": cmd_keys_add(args)
        elif args.subcommand == "import": cmd_keys_import(args)
        elif args.subcommand == "list": cmd_keys_list(args)
        elif args.subcommand == "show": cmd_keys_show(args)
        else: p_keys.print_help()

    elif args.command == "query":
        if args.subcommand == "status": cmd_query_status(args)
        elif args.subcommand == "balance": cmd_query_balance(args)
        elif args.subcommand == "stakes": cmd_query_stakes(args)
        elif args.subcommand == "rewards": cmd_query_rewards(args)
        elif args.subcommand == "events": cmd_query_events(args)
        else: p_query.print_help()

    elif args.command == "faucet":
        cmd_faucet(args)

    elif args.command == "tx":
        if args.subcommand == "approve": cmd_tx_approve(args)
        elif args.subcommand == "stake": cmd_tx_stake(args)
        elif args.subcommand == "withdraw": cmd_tx_withdraw(args)
        elif args.subcommand == "withdraw-stake": cmd_tx_withdraw_stake(args)
        elif args.subcommand == "claim": cmd_tx_claim(args)
        else: p_tx.print_help()

    elif args.command == "admin":
        if args.subcommand == "fund": cmd_admin_fund(args)
        elif args.subcommand == "set-rate": cmd_admin_set_rate(args)
        elif args.subcommand == "set-lock": cmd_admin_set_lock(args)
        elif args.subcommand == "pause": cmd_admin_pause(args)
        elif args.subcommand == "unpause": cmd_admin_unpause(args)
        else: p_admin.print_help()

    else:
        parser.print_help()

if __name__ == "__main__":
    main()
