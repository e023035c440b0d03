import argparse
import os
import sys
import json
import logging
from uvicorn import Config, Server
from stakeproto.crypto.addresses import address_from_bytes, is_valid_address
from stakeproto.config.params import NETWORKS, CUSTODY_ADDRESS_LABEL, DECIMALS, DENOM
from stakecli.keystore import KeyStore
from ..storage.db import StorageDB
from ..core.ledger import StakingLedger
from ..core.token import TokenLedger, TokenCustody
from ..rpc import api # import module to set globals

logger = logging.getLogger(__name__)

NODE_CONFIG = "node.json"
OWNER_KEY_NAME = "owner"


def load_node(data_dir: str):
    """Opens the ledger stored in `data_dir`. Returns (ledger, token)."""
    config_path = os.path.join(data_dir, NODE_CONFIG)
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"{config_path} not found, run 'init' first")

    with open(config_path, "r") as f:
        node_cfg = json.load(f)

    network = NETWORKS[node_cfg["network"]]
    prefix = network.bech32_prefix_acc

    db = StorageDB(os.path.join(data_dir, "ledger.db"))
    token = TokenLedger(db)
    custody = TokenCustody(token, address_from_bytes(CUSTODY_ADDRESS_LABEL, prefix=prefix))
    ledger = StakingLedger(db, custody, owner=node_cfg["owner"], config=network)
    return ledger, token


def cmd_init(args):
    """Initialize node: owner address, network selection, ledger database."""
    data_dir = args.datadir
    os.makedirs(data_dir, exist_ok=True)

    config_path = os.path.join(data_dir, NODE_CONFIG)
    if os.path.exists(config_path):
        print(f"Node already initialized at {config_path}")
        return

    network = NETWORKS[args.network]

    owner = args.owner
    if owner:
        if not is_valid_address(owner, network.bech32_prefix_acc):
            print(f"Error: invalid owner address {owner}")
            sys.exit(1)
    else:
        keys_dir = os.path.join(data_dir, "keys")
        key = KeyStore(keys_dir, prefix=network.bech32_prefix_acc).create_key(OWNER_KEY_NAME)
        owner = key["address"]
        print(f"Generated owner key in {keys_dir}")
        print(f"Sign admin calls with: stakeledger-cli --keydir {keys_dir} admin ... --from {OWNER_KEY_NAME}")

    with open(config_path, "w") as f:
        json.dump({"network": network.network_id, "owner": owner}, f, indent=2)

    ledger, _ = load_node(data_dir)
    params = ledger.params
    print(f"Owner:        {params.owner}")
    print(f"Custody:      {ledger.custody.address}")
    print(f"Reward rate:  {params.reward_rate_percent}% APR")
    print(f"Lock period:  {params.lock_duration}s")
    if network.faucet_amount:
        print(f"Faucet:       {network.faucet_amount / 10**DECIMALS} {DENOM} per request")
    ledger.db.close()
    print(f"\nNode initialized in {data_dir}")


def cmd_run(args):
    ledger, token = load_node(args.datadir)

    print(f"Starting StakeLedger node...")
    print(f"Data dir: {args.datadir}")
    print(f"RPC: {args.host}:{args.port}")

    # Inject into RPC module (global vars)
    api.ledger = ledger
    api.token = token

    config = Config(app=api.app, host=args.host, port=args.port, log_level=args.log_level.lower())
    server = Server(config)
    try:
        server.run()
    except KeyboardInterrupt:
        pass
    finally:
        ledger.db.close()


def main():
    parser = argparse.ArgumentParser(description="StakeLedger Node CLI")
    parser.add_argument("--datadir", default="./.stakeledger", help="Data directory")
    parser.add_argument("--log-level", default="INFO", help="Logging level")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Init command
    init_parser = subparsers.add_parser("init", help="Initialize node configuration")
    init_parser.add_argument("--network", default="devnet", choices=sorted(NETWORKS), help="Network preset")
    init_parser.add_argument("--owner", default=None, help="Owner address (generated if omitted)")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run the node")
    run_parser.add_argument("--host", default="0.0.0.0", help="RPC Host")
    run_parser.add_argument("--port", type=int, default=8000, help="RPC Port")

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    if args.command == "init":
        cmd_init(args)
    elif args.command == "run":
        cmd_run(args)

if __name__ == "__main__":
    main()
