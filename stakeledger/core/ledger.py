# MIT License
# Copyright (c) 2025 Hashborn

from contextlib import contextmanager
from typing import Callable, List, Optional, Tuple
import logging
import threading
import time

from stakeproto.config.params import CURRENT_NETWORK, NetworkConfig
from stakeproto.types.common import EventType, OpType
from stakeproto.types.errors import (
    LedgerError, InvalidAmount, NoIdsProvided, BatchTooLarge, DuplicateId,
    InvalidId, AlreadyWithdrawn, LockNotEnded, InsufficientStakedBalance,
    ZeroWithdrawal, NoRewardsToClaim, InsufficientRewardReserve, InvalidRate,
    InvalidLockDuration, Unauthorized, AlreadyPaused, NotPaused,
    ContractPaused, TransferFailed, ReentrantCall,
)
from ..storage.db import StorageDB
from ..observability import metrics
from .accounts import StakeRecord, UserAccount, LedgerParams
from .events import EventBus, LedgerEvent, event_bus
from .rewards import settle, accrued_rewards, to_whole_units
from .state import LedgerState
from .token import TokenCustody

logger = logging.getLogger(__name__)


class StakingLedger:
    """
    Custody ledger of per-user, per-deposit stakes.

    Every mutating operation runs on a clone of the state and is committed
    (swapped in, persisted, events published) only if it completes; any
    rejection leaves the ledger untouched.
    """

    def __init__(self,
                 db: StorageDB,
                 custody: TokenCustody,
                 owner: Optional[str] = None,
                 config: NetworkConfig = CURRENT_NETWORK,
                 clock: Optional[Callable[[], int]] = None,
                 bus: Optional[EventBus] = None):
        self.db = db
        self.custody = custody
        self.config = config
        self.clock = clock or (lambda: int(time.time()))
        self.bus = bus or event_bus

        self._lock = threading.RLock()
        # Call-in-progress flag shared by every mutating entry point
        self._entered = False

        self.state = LedgerState(db)
        if self.state.params is None:
            owner = owner or config.owner
            if not owner:
                raise ValueError("A new ledger needs an owner address")
            self.state.set_params(LedgerParams(
                owner=owner,
                reward_rate_percent=config.reward_rate_percent,
                lock_duration=config.lock_duration,
                max_batch_size=config.max_batch_size,
            ))
            self.state.persist()
            logger.info(f"Ledger initialized on {config.network_id} (owner {owner})")
        else:
            logger.info(f"Ledger loaded: {self.state.params.model_dump()}")

    # --- Internal helpers ---
    @contextmanager
    def _operation(self, op: OpType):
        with self._lock:
            if self._entered:
                metrics.operations_total.labels(op=op.value, result=ReentrantCall.code).inc()
                raise ReentrantCall(f"{op.value} called while another operation is in progress")
            self._entered = True

            tmp_state = self.state.clone()
            events: List[LedgerEvent] = []
            try:
                # Token moves, accounts, params and event rows share one commit
                with self.db.atomic():
                    yield tmp_state, events
                    tmp_state.persist()
                    self.db.append_events([e.to_row() for e in events])
            except LedgerError as e:
                metrics.operations_total.labels(op=op.value, result=e.code).inc()
                logger.info(f"{op.value} rejected: {e.code}: {e}")
                raise
            except Exception as e:
                metrics.operations_total.labels(op=op.value, result="error").inc()
                logger.error(f"{op.value} aborted: {e}")
                raise
            finally:
                self._entered = False

            self.state = tmp_state
            metrics.operations_total.labels(op=op.value, result="ok").inc()

        for event in events:
            self.bus.publish(event)

    def _checkpoint(self, state: LedgerState, user: str, now: int) -> UserAccount:
        """Settles all of `user`'s stakes; runs before any state change."""
        account = state.get_account(user)
        if settle(account, state.params.reward_rate_percent, now):
            state.set_account(account)
        return account

    def _require_not_paused(self, state: LedgerState):
        if state.params.paused:
            raise ContractPaused("Ledger is paused")

    def _require_owner(self, state: LedgerState, caller: str):
        if caller != state.params.owner:
            raise Unauthorized(f"{caller} is not the owner")

    # --- Stake Ledger ---
    def stake(self, caller: str, amount: int) -> int:
        """Deposits `amount` into a new stake record. Returns its stake id."""
        with self._operation(OpType.STAKE) as (state, events):
            self._require_not_paused(state)
            if amount <= 0:
                raise InvalidAmount(f"Cannot stake {amount}")

            now = self.clock()
            account = self._checkpoint(state, caller, now)

            if not self.custody.pull_from(caller, amount):
                raise TransferFailed(f"Could not pull {amount} from {caller}")

            stake_id = len(account.stakes)
            account.stakes.append(StakeRecord(amount=amount, deposited_at=now, last_checkpoint=now))
            state.set_account(account)

            events.append(LedgerEvent(EventType.STAKED.value, caller, now, {"amount": amount, "stake_id": stake_id}))

        logger.info(f"{caller} staked {amount} (stake #{stake_id})")
        return stake_id

    def withdraw(self, caller: str, stake_ids: List[int], total_amount: int) -> int:
        """
        Withdraws `total_amount` of principal across `stake_ids`, in order.

        Records are drained one after another until the requested amount is
        met; ids after that point are not examined. Pays out with a single
        transfer.

        Returns:
            Amount paid out (always `total_amount`)
        """
        with self._operation(OpType.WITHDRAW) as (state, events):
            self._require_not_paused(state)
            params = state.params

            if not stake_ids:
                raise NoIdsProvided("No stake ids provided")
            if len(stake_ids) > params.max_batch_size:
                raise BatchTooLarge(f"{len(stake_ids)} ids exceed batch limit {params.max_batch_size}")
            if total_amount <= 0:
                raise ZeroWithdrawal("Cannot withdraw 0")

            now = self.clock()
            account = self._checkpoint(state, caller, now)

            remaining = total_amount
            seen = set()
            for stake_id in stake_ids:
                # Ids past this point are neither validated nor touched
                if remaining == 0:
                    break

                if stake_id in seen:
                    raise DuplicateId(f"Stake id {stake_id} given twice")
                seen.add(stake_id)

                record = account.get_stake(stake_id)
                if record is None:
                    raise InvalidId(f"Invalid stake ID {stake_id}")
                if record.amount == 0:
                    raise AlreadyWithdrawn(f"Stake {stake_id} already withdrawn")
                if now < record.deposited_at + params.lock_duration:
                    raise LockNotEnded(f"Lock period not ended for stake {stake_id}")

                taken = min(remaining, record.amount)
                record.amount -= taken
                remaining -= taken
                events.append(LedgerEvent(EventType.WITHDRAWN.value, caller, now, {"amount": taken, "stake_id": stake_id}))

            if remaining != 0:
                raise InsufficientStakedBalance(
                    f"Named stakes hold {total_amount - remaining}, requested {total_amount}"
                )

            state.set_account(account)

            if not self.custody.push_to(caller, total_amount):
                raise TransferFailed(f"Could not pay {total_amount} to {caller}")

        logger.info(f"{caller} withdrew {total_amount} from {len(events)} stake(s)")
        return total_amount

    def withdraw_stake(self, caller: str, stake_id: int) -> int:
        """Withdraws the full remaining principal of one stake."""
        with self._lock:
            self._require_not_paused(self.state)
            record = self.state.get_account(caller).get_stake(stake_id)
            if record is None:
                raise InvalidId(f"Invalid stake ID {stake_id}")
            if record.amount == 0:
                raise AlreadyWithdrawn(f"Stake {stake_id} already withdrawn")
            return self.withdraw(caller, [stake_id], record.amount)

    # --- Reward Accrual ---
    def checkpoint(self, caller: str) -> int:
        """Settles `caller`'s stakes. Returns scaled unclaimed reward."""
        with self._operation(OpType.CHECKPOINT) as (state, _):
            account = self._checkpoint(state, caller, self.clock())
            unclaimed = account.unclaimed_reward
        return unclaimed

    def claim_rewards(self, caller: str) -> int:
        """Pays out all whole-unit unclaimed reward. Returns the payout."""
        with self._operation(OpType.CLAIM) as (state, events):
            self._require_not_paused(state)

            now = self.clock()
            account = self._checkpoint(state, caller, now)

            payout = to_whole_units(account.unclaimed_reward)
            if payout <= 0:
                raise NoRewardsToClaim(f"No rewards to claim for {caller}")

            reserve = self.custody.balance() - state.total_staked()
            if payout > reserve:
                raise InsufficientRewardReserve(f"Reward reserve {max(reserve, 0)} cannot cover {payout}")

            # Sub-unit dust is dropped with the rest of the pool
            account.unclaimed_reward = 0
            account.total_claimed += payout
            state.set_account(account)

            if not self.custody.push_to(caller, payout):
                raise TransferFailed(f"Could not pay {payout} to {caller}")

            events.append(LedgerEvent(EventType.REWARDS_CLAIMED.value, caller, now, {"amount": payout}))

        logger.info(f"{caller} claimed {payout} reward")
        return payout

    def fund_rewards(self, caller: str, amount: int) -> None:
        """Owner moves `amount` into custody as reward reserve."""
        with self._operation(OpType.FUND) as (state, events):
            self._require_owner(state, caller)
            if amount <= 0:
                raise InvalidAmount(f"Cannot fund {amount}")
            if not self.custody.pull_from(caller, amount):
                raise TransferFailed(f"Could not pull {amount} from {caller}")
            events.append(LedgerEvent(EventType.REWARDS_FUNDED.value, caller, self.clock(), {"amount": amount}))

        logger.info(f"Reward reserve funded with {amount} by {caller}")

    # --- Parameter Administration ---
    def is_owner(self, caller: str) -> bool:
        return caller == self.params.owner

    def set_lock_duration(self, caller: str, seconds: int) -> None:
        with self._operation(OpType.SET_LOCK_DURATION) as (state, events):
            self._require_owner(state, caller)
            if seconds < 0:
                raise InvalidLockDuration(f"Lock duration cannot be negative: {seconds}")
            old = state.params.lock_duration
            state.params.lock_duration = seconds
            events.append(LedgerEvent(EventType.LOCK_DURATION_UPDATED.value, None, self.clock(), {"old": old, "new": seconds}))

        logger.info(f"Lock duration changed {old}s -> {seconds}s")

    def set_reward_rate(self, caller: str, rate_percent: int) -> None:
        with self._operation(OpType.SET_REWARD_RATE) as (state, events):
            self._require_owner(state, caller)
            if rate_percent <= 0:
                raise InvalidRate(f"Reward rate must be positive, got {rate_percent}")
            old = state.params.reward_rate_percent
            state.params.reward_rate_percent = rate_percent
            events.append(LedgerEvent(EventType.REWARD_RATE_UPDATED.value, None, self.clock(), {"old": old, "new": rate_percent}))

        logger.info(f"Reward rate changed {old}% -> {rate_percent}%")

    def pause(self, caller: str) -> None:
        with self._operation(OpType.PAUSE) as (state, events):
            self._require_owner(state, caller)
            if state.params.paused:
                raise AlreadyPaused("Ledger already paused")
            state.params.paused = True
            events.append(LedgerEvent(EventType.PAUSED.value, None, self.clock()))

        logger.warning(f"Ledger paused by {caller}")

    def unpause(self, caller: str) -> None:
        with self._operation(OpType.UNPAUSE) as (state, events):
            self._require_owner(state, caller)
            if not state.params.paused:
                raise NotPaused("Ledger is not paused")
            state.params.paused = False
            events.append(LedgerEvent(EventType.UNPAUSED.value, None, self.clock()))

        logger.warning(f"Ledger unpaused by {caller}")

    # --- Views ---
    @property
    def params(self) -> LedgerParams:
        return self.state.params

    def stake_info(self, user: str, stake_id: int) -> Tuple[int, int]:
        """Returns (amount, deposited_at)."""
        with self._lock:
            record = self.state.get_account(user).get_stake(stake_id)
            if record is None:
                raise InvalidId(f"Invalid stake ID {stake_id}")
            return record.amount, record.deposited_at

    def all_stakes(self, user: str) -> List[StakeRecord]:
        """All records of `user`, closed ones included."""
        with self._lock:
            return [s.model_copy() for s in self.state.get_account(user).stakes]

    def active_stake_count(self, user: str) -> int:
        with self._lock:
            return len(self.state.get_account(user).active_stakes())

    def can_withdraw(self, user: str, stake_id: int) -> bool:
        with self._lock:
            record = self.state.get_account(user).get_stake(stake_id)
            if record is None:
                return False
            return record.amount > 0 and self.clock() >= record.deposited_at + self.params.lock_duration

    def unlock_time(self, user: str, stake_id: int) -> int:
        with self._lock:
            record = self.state.get_account(user).get_stake(stake_id)
            if record is None:
                raise InvalidId(f"Invalid stake ID {stake_id}")
            return record.deposited_at + self.params.lock_duration

    def accrued_rewards(self, user: str) -> int:
        """Scaled reward a checkpoint now would leave unclaimed."""
        with self._lock:
            return accrued_rewards(self.state.get_account(user), self.params.reward_rate_percent, self.clock())

    def claimable_rewards(self, user: str) -> int:
        """Whole-unit reward a claim now would pay."""
        return to_whole_units(self.accrued_rewards(user))

    def total_staked(self, user: Optional[str] = None) -> int:
        with self._lock:
            if user is not None:
                return self.state.get_account(user).staked_balance
            return self.state.total_staked()

    def events(self, user: Optional[str] = None, limit: int = 100) -> List[LedgerEvent]:
        return [LedgerEvent.from_row(row) for row in self.db.get_events(user, limit)]
