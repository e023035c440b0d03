from typing import Dict, Optional, List
import logging
from .accounts import UserAccount, LedgerParams
from ..storage.db import StorageDB

logger = logging.getLogger(__name__)

PARAMS_KEY = "params"


class LedgerState:
    def __init__(self, db: StorageDB, accounts: Dict[str, UserAccount] = None, params: Optional[LedgerParams] = None):
        self.db = db
        # Cache for modified/accessed accounts: address -> UserAccount
        self._accounts: Dict[str, UserAccount] = accounts if accounts is not None else {}
        # Global parameters (loaded lazily from DB)
        self._params: Optional[LedgerParams] = params
        # Addresses changed since the last persist
        self._dirty: set = set()

    def clone(self) -> 'LedgerState':
        """Creates a copy of the state (for all-or-nothing operations)."""
        new_accounts = {k: v.model_copy(deep=True) for k, v in self._accounts.items()}
        new_params = self._params.model_copy() if self._params else None
        cloned = LedgerState(self.db, new_accounts, new_params)
        cloned._dirty = set(self._dirty)
        return cloned

    # --- Accounts ---
    def get_account(self, address: str) -> UserAccount:
        if address in self._accounts:
            return self._accounts[address]

        # Try load from DB
        raw_json = self.db.get_state(f"acc:{address}")
        if raw_json:
            acc = UserAccount.model_validate_json(raw_json)
            self._accounts[address] = acc
            return acc

        # Return generic new account (stored only once set_account is called)
        return UserAccount(address=address)

    def set_account(self, account: UserAccount):
        """Updates account in local cache."""
        self._accounts[account.address] = account
        self._dirty.add(account.address)

    def get_all_accounts(self) -> List[UserAccount]:
        """Loads all accounts from DB + cache overlay."""
        all_db_data = self.db.get_state_by_prefix("acc:")
        final_accounts: Dict[str, UserAccount] = {}

        for k, v in all_db_data.items():
            addr = k.split(":", 1)[1]
            final_accounts[addr] = UserAccount.model_validate_json(v)

        # Overlay cache
        for addr, acc in self._accounts.items():
            final_accounts[addr] = acc

        return list(final_accounts.values())

    def total_staked(self) -> int:
        return sum(acc.staked_balance for acc in self.get_all_accounts())

    # --- Params ---
    @property
    def params(self) -> Optional[LedgerParams]:
        if self._params is None:
            raw_json = self.db.get_state(PARAMS_KEY)
            if raw_json:
                self._params = LedgerParams.model_validate_json(raw_json)
        return self._params

    def set_params(self, params: LedgerParams):
        self._params = params

    def persist(self):
        """Writes modified accounts and params to DB in a single commit."""
        items = {f"acc:{addr}": self._accounts[addr].model_dump_json() for addr in self._dirty}
        if self._params is not None:
            items[PARAMS_KEY] = self._params.model_dump_json()
        self.db.set_states(items)
        logger.debug(f"Persisted {len(self._dirty)} account(s)")
        self._dirty.clear()

