import hashlib

import pytest

from stakeledger.storage.db import StorageDB
from stakeledger.core.token import TokenLedger, TokenCustody
from stakeledger.core.ledger import StakingLedger
from stakeledger.core.events import EventBus
from stakeproto.config.params import NetworkConfig, CUSTODY_ADDRESS_LABEL, WEEK
from stakeproto.crypto.addresses import address_from_bytes, address_from_pubkey
from stakeproto.crypto.keys import public_key_from_private


TEST_NETWORK = NetworkConfig(
    network_id="localtest",
    reward_rate_percent=10,
    lock_duration=WEEK,
    max_batch_size=50,
)

START_TIME = 1_700_000_000
INITIAL_BALANCE = 1_000_000
REWARD_RESERVE = 1_000_000


def key_for(label: bytes) -> bytes:
    """Deterministic private key per test account."""
    return hashlib.sha256(label).digest()


def address_for(priv: bytes) -> str:
    return address_from_pubkey(public_key_from_private(priv))


class FakeClock:
    """Controllable ledger time."""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int):
        self.now += seconds


# ═══════════════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════════════

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "ledger.db")


@pytest.fixture
def db(db_path):
    storage = StorageDB(db_path)
    yield storage
    storage.close()


@pytest.fixture
def token(db):
    return TokenLedger(db)


@pytest.fixture
def custody(token):
    return TokenCustody(token, address_from_bytes(CUSTODY_ADDRESS_LABEL))


@pytest.fixture
def bus():
    """Provide a clean EventBus for each test."""
    event_bus = EventBus()
    yield event_bus
    event_bus.clear()


@pytest.fixture
def owner_key():
    return key_for(b"owner")


@pytest.fixture
def owner(owner_key):
    return address_for(owner_key)


@pytest.fixture
def alice_key():
    return key_for(b"alice")


@pytest.fixture
def bob_key():
    return key_for(b"bob")


@pytest.fixture
def alice(token, custody, alice_key):
    addr = address_for(alice_key)
    token.mint(addr, INITIAL_BALANCE)
    token.approve(addr, custody.address, INITIAL_BALANCE)
    return addr


@pytest.fixture
def bob(token, custody, bob_key):
    addr = address_for(bob_key)
    token.mint(addr, INITIAL_BALANCE)
    token.approve(addr, custody.address, INITIAL_BALANCE)
    return addr


@pytest.fixture
def bare_ledger(db, custody, clock, bus, owner):
    """Ledger without any reward reserve."""
    return StakingLedger(db, custody, owner=owner, config=TEST_NETWORK, clock=clock, bus=bus)


@pytest.fixture
def ledger(bare_ledger, token, owner):
    """Ledger with a funded reward reserve."""
    staking = bare_ledger
    token.mint(owner, REWARD_RESERVE)
    token.approve(owner, staking.custody.address, REWARD_RESERVE)
    staking.fund_rewards(owner, REWARD_RESERVE)
    return staking
