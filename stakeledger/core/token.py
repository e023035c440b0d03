# MIT License
# Copyright (c) 2025 Hashborn

"""
Staked Asset

TokenLedger is the fungible asset the node takes into custody: balances,
allowances and a devnet mint, persisted next to the ledger state.

TokenCustody is the narrow interface the staking ledger consumes:

    pull_from(payer, amount) -> bool   # uses payer's allowance to custody
    push_to(payee, amount) -> bool
    balance() -> int

Both transfer calls report failure by returning False; they never partially
apply.
"""

import logging
from typing import Callable, List

from ..storage.db import StorageDB

logger = logging.getLogger(__name__)

# Runs before a transfer moves balances: hook(sender, recipient, amount)
TransferHook = Callable[[str, str, int], None]


class TokenLedger:
    def __init__(self, db: StorageDB, symbol: str = "STK"):
        self.db = db
        self.symbol = symbol
        self.hooks: List[TransferHook] = []

    def balance_of(self, address: str) -> int:
        raw = self.db.get_state(f"bal:{address}")
        return int(raw) if raw else 0

    def allowance(self, owner: str, spender: str) -> int:
        raw = self.db.get_state(f"allow:{owner}:{spender}")
        return int(raw) if raw else 0

    def total_supply(self) -> int:
        return sum(int(v) for v in self.db.get_state_by_prefix("bal:").values())

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        if amount < 0:
            return False
        self.db.set_state(f"allow:{owner}:{spender}", str(amount))
        return True

    def mint(self, to: str, amount: int) -> None:
        if amount <= 0:
            raise ValueError(f"Mint amount must be positive, got {amount}")
        self.db.set_state(f"bal:{to}", str(self.balance_of(to) + amount))
        logger.info(f"Minted {amount} {self.symbol} to {to}")

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        if amount < 0:
            return False

        sender_balance = self.balance_of(sender)
        if sender_balance < amount:
            logger.warning(f"Transfer rejected: {sender} has {sender_balance}, needs {amount}")
            return False

        self._move(sender, recipient, amount, {})
        return True

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> bool:
        if amount < 0:
            return False

        allowed = self.allowance(owner, spender)
        if allowed < amount:
            logger.warning(f"Transfer rejected: allowance {owner}->{spender} is {allowed}, needs {amount}")
            return False

        if self.balance_of(owner) < amount:
            logger.warning(f"Transfer rejected: {owner} balance below {amount}")
            return False

        self._move(owner, recipient, amount, {f"allow:{owner}:{spender}": str(allowed - amount)})
        return True

    def _move(self, sender: str, recipient: str, amount: int, extra: dict):
        # Hooks run before any balance changes; a raising hook aborts the transfer
        for hook in self.hooks:
            hook(sender, recipient, amount)

        items = dict(extra)
        if sender != recipient:
            items[f"bal:{sender}"] = str(self.balance_of(sender) - amount)
            items[f"bal:{recipient}"] = str(self.balance_of(recipient) + amount)
        self.db.set_states(items)

class TokenCustody:
    """Custody account of the staking ledger on a TokenLedger."""

    def __init__(self, token: TokenLedger, address: str):
        self.token = token
        self.address = address

    def pull_from(self, payer: str, amount: int) -> bool:
        return self.token.transfer_from(self.address, payer, self.address, amount)

    def push_to(self, payee: str, amount: int) -> bool:
        return self.token.transfer(self.address, payee, amount)

    def balance(self) -> int:
        return self.token.balance_of(self.address)
