from enum import Enum


class OpType(str, Enum):
    STAKE = "STAKE"
    WITHDRAW = "WITHDRAW"
    CLAIM = "CLAIM"
    CHECKPOINT = "CHECKPOINT"
    FUND = "FUND"

    # Owner-only
    SET_LOCK_DURATION = "SET_LOCK_DURATION"
    SET_REWARD_RATE = "SET_REWARD_RATE"
    PAUSE = "PAUSE"
    UNPAUSE = "UNPAUSE"


class EventType(str, Enum):
    STAKED = "Staked"
    WITHDRAWN = "Withdrawn"
    REWARDS_CLAIMED = "RewardsClaimed"
    REWARDS_FUNDED = "RewardsFunded"
    PAUSED = "Paused"
    UNPAUSED = "Unpaused"
    REWARD_RATE_UPDATED = "RewardRateUpdated"
    LOCK_DURATION_UPDATED = "LockDurationUpdated"
