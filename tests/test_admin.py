import pytest

from stakeproto.types.errors import (
    Unauthorized, InvalidRate, InvalidLockDuration, AlreadyPaused, NotPaused,
)


def test_is_owner(ledger, owner, alice):
    assert ledger.is_owner(owner) is True
    assert ledger.is_owner(alice) is False


def test_new_ledger_needs_owner(db, custody):
    from stakeledger.core.ledger import StakingLedger
    from stakeproto.config.params import NetworkConfig

    with pytest.raises(ValueError):
        StakingLedger(db, custody, config=NetworkConfig("ownerless", 10, 60))


def test_initial_params_follow_network(ledger, owner):
    params = ledger.params
    assert params.owner == owner
    assert params.reward_rate_percent == 10
    assert params.max_batch_size == 50
    assert params.paused is False


def test_set_lock_duration(ledger, owner, bus):
    updates = []
    bus.subscribe("LockDurationUpdated", lambda **data: updates.append(data))
    old = ledger.params.lock_duration

    ledger.set_lock_duration(owner, 3600)

    assert ledger.params.lock_duration == 3600
    assert updates[0]["old"] == old
    assert updates[0]["new"] == 3600


def test_set_lock_duration_zero_allowed(ledger, owner):
    ledger.set_lock_duration(owner, 0)
    assert ledger.params.lock_duration == 0


def test_set_lock_duration_negative(ledger, owner):
    old = ledger.params.lock_duration
    with pytest.raises(InvalidLockDuration):
        ledger.set_lock_duration(owner, -1)
    assert ledger.params.lock_duration == old


def test_set_reward_rate(ledger, owner, bus):
    updates = []
    bus.subscribe("RewardRateUpdated", lambda **data: updates.append(data))

    ledger.set_reward_rate(owner, 25)

    assert ledger.params.reward_rate_percent == 25
    assert updates == [{"user": None, "timestamp": updates[0]["timestamp"], "old": 10, "new": 25}]


@pytest.mark.parametrize("rate", [0, -3])
def test_set_reward_rate_must_be_positive(ledger, owner, rate):
    with pytest.raises(InvalidRate):
        ledger.set_reward_rate(owner, rate)
    assert ledger.params.reward_rate_percent == 10


def test_admin_operations_are_owner_only(ledger, alice):
    with pytest.raises(Unauthorized):
        ledger.set_lock_duration(alice, 0)
    with pytest.raises(Unauthorized):
        ledger.set_reward_rate(alice, 50)
    with pytest.raises(Unauthorized):
        ledger.pause(alice)

    assert ledger.params.reward_rate_percent == 10
    assert ledger.params.paused is False


def test_pause_unpause_cycle(ledger, owner, bus):
    seen = []
    bus.subscribe("Paused", lambda **data: seen.append("Paused"))
    bus.subscribe("Unpaused", lambda **data: seen.append("Unpaused"))

    ledger.pause(owner)
    assert ledger.params.paused is True
    with pytest.raises(AlreadyPaused):
        ledger.pause(owner)

    ledger.unpause(owner)
    assert ledger.params.paused is False
    with pytest.raises(NotPaused):
        ledger.unpause(owner)

    assert seen == ["Paused", "Unpaused"]


def test_unpause_is_owner_only(ledger, owner, alice):
    ledger.pause(owner)
    with pytest.raises(Unauthorized):
        ledger.unpause(alice)
    assert ledger.params.paused is True


def test_admin_allowed_while_paused(ledger, owner):
    ledger.pause(owner)
    ledger.set_reward_rate(owner, 12)
    ledger.set_lock_duration(owner, 10)

    assert ledger.params.reward_rate_percent == 12
    assert ledger.params.lock_duration == 10
