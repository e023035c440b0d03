from pydantic import BaseModel, Field
from typing import List


class StakeRecord(BaseModel):
    """One deposit. The position in UserAccount.stakes is its stake id."""
    amount: int                 # Remaining principal (0 = closed)
    deposited_at: int           # Unix time of deposit, immutable
    reward_debt: int = 0        # Scaled reward checkpointed so far
    last_checkpoint: int = 0    # Reward for `amount` settled up to here

    @property
    def is_active(self) -> bool:
        return self.amount > 0


class UserAccount(BaseModel):
    address: str

    # Append-only; closed records are zeroed, never removed
    stakes: List[StakeRecord] = Field(default_factory=list)

    # Scaled reward settled from any stake but not yet paid out
    unclaimed_reward: int = 0

    # Whole-unit reward paid out over the account's lifetime
    total_claimed: int = 0

    def get_stake(self, stake_id: int):
        if 0 <= stake_id < len(self.stakes):
            return self.stakes[stake_id]
        return None

    def active_stakes(self) -> List[StakeRecord]:
        return [s for s in self.stakes if s.is_active]

    @property
    def staked_balance(self) -> int:
        return sum(s.amount for s in self.stakes)


class LedgerParams(BaseModel):
    owner: str
    reward_rate_percent: int
    lock_duration: int
    max_batch_size: int = 50
    paused: bool = False
