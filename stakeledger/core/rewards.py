# MIT License
# Copyright (c) 2025 Hashborn

"""
Reward Accrual

Linear, time-proportional reward per stake record:

    reward = amount * rate_percent * duration / (100 * SECONDS_PER_YEAR)

Amounts are kept in fixed-point (scaled by PRECISION) until payout, so
integer division never loses more than one scaled unit per evaluation.

Each record carries a checkpoint (`last_checkpoint`). Settling moves the
reward earned since the checkpoint into the owner's unclaimed pool and
advances the checkpoint to `now`, so the same interval is never credited
twice. Settling must happen before a record's amount changes; after that the
record accrues on its new amount starting from `now`.
"""

import logging
from typing import List

from stakeproto.config.params import PRECISION, SECONDS_PER_YEAR
from .accounts import StakeRecord, UserAccount

logger = logging.getLogger(__name__)


def calculate_reward(amount: int, rate_percent: int, duration: int) -> int:
    """
    Scaled reward for `amount` held `duration` seconds at `rate_percent` APR.

    Args:
        amount: Principal in minimal units
        rate_percent: Annual rate as an integer percent
        duration: Elapsed seconds

    Returns:
        Reward in minimal units multiplied by PRECISION
    """
    if amount <= 0 or duration <= 0:
        return 0
    return (amount * rate_percent * duration * PRECISION) // (100 * SECONDS_PER_YEAR)


def to_whole_units(scaled: int) -> int:
    """Removes the fixed-point scaling (truncates sub-unit dust)."""
    return scaled // PRECISION


def pending_reward(record: StakeRecord, rate_percent: int, now: int) -> int:
    """Scaled reward earned by `record` since its last checkpoint."""
    if not record.is_active or now <= record.last_checkpoint:
        return 0
    return calculate_reward(record.amount, rate_percent, now - record.last_checkpoint)


def settle(account: UserAccount, rate_percent: int, now: int) -> int:
    """
    Checkpoints every active stake of `account` (mutates in place).

    Returns:
        Scaled reward newly added to account.unclaimed_reward
    """
    settled = 0
    for record in account.stakes:
        if not record.is_active or now <= record.last_checkpoint:
            continue

        increment = calculate_reward(record.amount, rate_percent, now - record.last_checkpoint)
        record.reward_debt += increment
        record.last_checkpoint = now
        settled += increment

    if settled:
        account.unclaimed_reward += settled
        logger.debug(f"Settled {settled} scaled reward for {account.address}")

    return settled


def accrued_rewards(account: UserAccount, rate_percent: int, now: int) -> int:
    """Scaled unclaimed + pending reward; never mutates the account."""
    return account.unclaimed_reward + sum(
        pending_reward(record, rate_percent, now) for record in account.stakes
    )


def per_stake_pending(account: UserAccount, rate_percent: int, now: int) -> List[int]:
    """Scaled pending reward for each stake id (0 for closed records)."""
    return [pending_reward(record, rate_percent, now) for record in account.stakes]
