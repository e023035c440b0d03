# MIT License
# Copyright (c) 2025 Hashborn

from typing import Dict

# Global Constants
DENOM = "stk"
DECIMALS = 18

# Fixed-point scale applied to reward math before the final division
PRECISION = 10**12
SECONDS_PER_YEAR = 365 * 86400

DAY = 86400
WEEK = 7 * DAY

# Address that holds staked principal and reward reserve
CUSTODY_ADDRESS_LABEL = b"stakeledger/custody"


class NetworkConfig:
    def __init__(self,
                 network_id: str,
                 reward_rate_percent: int,
                 lock_duration: int,
                 max_batch_size: int = 50,
                 bech32_prefix_acc: str = "stk",
                 # Devnet faucet (0 = disabled)
                 faucet_amount: int = 0,
                 # Owner of a freshly initialized ledger (None = set on init)
                 owner: str = None):
        self.network_id = network_id
        self.reward_rate_percent = reward_rate_percent
        self.lock_duration = lock_duration
        self.max_batch_size = max_batch_size
        self.bech32_prefix_acc = bech32_prefix_acc
        self.faucet_amount = faucet_amount
        self.owner = owner

NETWORKS: Dict[str, NetworkConfig] = {
    "devnet": NetworkConfig(
        network_id="devnet",
        reward_rate_percent=10,
        lock_duration=60,               # 1 minute locks for local testing
        max_batch_size=50,
        faucet_amount=1_000 * 10**DECIMALS,
    ),
    "testnet": NetworkConfig(
        network_id="testnet",
        reward_rate_percent=10,
        lock_duration=DAY,
        max_batch_size=50,
        faucet_amount=100 * 10**DECIMALS,
    ),
    "mainnet": NetworkConfig(
        network_id="mainnet",
        reward_rate_percent=5,
        lock_duration=WEEK,
        max_batch_size=50,
    ),
}

# Default to devnet for now
CURRENT_NETWORK = NETWORKS["devnet"]
