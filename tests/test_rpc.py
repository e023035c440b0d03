"""
RPC Tests

Drives the node's HTTP API with FastAPI's TestClient against a ledger backed
by a temporary database. Every mutating call is signed with the caller's key.
"""
import time

import pytest
from fastapi.testclient import TestClient

from stakeledger.rpc import api
from stakeproto.config.params import SECONDS_PER_YEAR
from stakeproto.crypto.keys import sign, public_key_from_private
from stakeproto.types.requests import sign_request, signing_hash, MAX_REQUEST_AGE


@pytest.fixture
def client(ledger, token):
    api.ledger = ledger
    api.token = token
    yield TestClient(api.app)
    api.ledger = None
    api.token = None


def signed(key, **fields):
    return sign_request(fields, key)


def test_status(client, ledger, owner):
    resp = client.get("/status")
    assert resp.status_code == 200

    data = resp.json()
    assert data["network"] == "localtest"
    assert data["params"]["owner"] == owner
    assert data["params"]["paused"] is False
    assert data["params"]["max_batch_size"] == 50
    assert data["total_staked"] == "0"


def test_uninitialized_node(client):
    api.ledger = None
    resp = client.get("/status")
    assert resp.status_code == 503


def test_stake_and_query(client, alice, alice_key, clock):
    resp = client.post("/stake", json=signed(alice_key, amount=100))
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "stake_id": 0}

    data = client.get(f"/stakes/{alice}").json()
    assert data["active_count"] == 1
    assert data["stakes"][0]["amount"] == "100"
    assert data["stakes"][0]["deposited_at"] == clock.now
    assert data["stakes"][0]["can_withdraw"] is False

    single = client.get(f"/stakes/{alice}/0").json()
    assert single["amount"] == "100"
    assert single["unlock_time"] == data["stakes"][0]["unlock_time"]


def test_unknown_stake_is_rejected(client, alice):
    resp = client.get(f"/stakes/{alice}/3")
    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidId"


def test_withdraw_flow(client, ledger, alice, alice_key, clock):
    client.post("/stake", json=signed(alice_key, amount=100))
    client.post("/stake", json=signed(alice_key, amount=200))

    locked = client.post("/withdraw", json=signed(alice_key, stake_ids=[0], total_amount=100))
    assert locked.status_code == 400
    assert locked.json()["error"] == "LockNotEnded"

    clock.advance(ledger.params.lock_duration)
    resp = client.post("/withdraw", json=signed(alice_key, stake_ids=[0, 1], total_amount=300))
    assert resp.status_code == 200
    assert resp.json()["amount"] == "300"

    again = client.post("/withdraw/stake", json=signed(alice_key, stake_id=0))
    assert again.json()["error"] == "AlreadyWithdrawn"


def test_rewards_and_claim(client, alice, alice_key, clock):
    client.post("/stake", json=signed(alice_key, amount=100_000))
    clock.advance(SECONDS_PER_YEAR)

    rewards = client.get(f"/rewards/{alice}").json()
    assert rewards["claimable"] == "10000"

    resp = client.post("/claim", json=signed(alice_key))
    assert resp.status_code == 200
    assert resp.json()["amount"] == "10000"

    rewards = client.get(f"/rewards/{alice}").json()
    assert rewards["claimable"] == "0"
    assert rewards["total_claimed"] == "10000"


def test_checkpoint(client, alice, alice_key, clock):
    client.post("/stake", json=signed(alice_key, amount=100_000))
    clock.advance(SECONDS_PER_YEAR)

    resp = client.post("/checkpoint", json=signed(alice_key))
    assert resp.status_code == 200
    assert int(resp.json()["unclaimed_scaled"]) > 0


def test_admin_requires_owner(client, ledger, alice, alice_key, owner_key):
    resp = client.post("/admin/reward_rate", json=signed(alice_key, rate_percent=50))
    assert resp.status_code == 403
    assert resp.json()["error"] == "Unauthorized"

    resp = client.post("/admin/reward_rate", json=signed(owner_key, rate_percent=50))
    assert resp.status_code == 200
    assert ledger.params.reward_rate_percent == 50

    resp = client.post("/admin/lock_duration", json=signed(owner_key, seconds=5))
    assert resp.status_code == 200
    assert ledger.params.lock_duration == 5


def test_paused_operations_conflict(client, alice, alice_key, owner_key):
    assert client.post("/admin/pause", json=signed(owner_key)).status_code == 200

    resp = client.post("/stake", json=signed(alice_key, amount=100))
    assert resp.status_code == 409
    assert resp.json() == {"error": "ContractPaused", "detail": "Ledger is paused"}

    assert client.post("/admin/unpause", json=signed(owner_key)).status_code == 200
    assert client.post("/stake", json=signed(alice_key, amount=100)).status_code == 200


def test_token_approve_and_balance(client, ledger, alice, alice_key, token):
    resp = client.post("/token/approve", json=signed(alice_key, amount=7))
    assert resp.status_code == 200

    data = client.get(f"/token/balance/{alice}").json()
    assert data["allowance"] == "7"
    assert data["balance"] == str(token.balance_of(alice))


def test_faucet_disabled_on_test_network(client, alice, alice_key):
    resp = client.post("/faucet", json=signed(alice_key))
    assert resp.status_code == 403


def test_events_endpoint(client, alice, alice_key):
    client.post("/stake", json=signed(alice_key, amount=100))

    events = client.get("/events", params={"address": alice}).json()["events"]
    assert events[0]["event"] == "Staked"
    assert events[0]["amount"] == 100
    assert events[0]["user"] == alice


def test_events_limit_is_clamped(client, alice, alice_key):
    client.post("/stake", json=signed(alice_key, amount=100))
    client.post("/stake", json=signed(alice_key, amount=200))

    for limit in (-5, 0, 1):
        events = client.get("/events", params={"address": alice, "limit": limit}).json()["events"]
        assert len(events) == 1

    events = client.get("/events", params={"address": alice, "limit": 10**9}).json()["events"]
    assert len(events) == 2


def test_metrics_endpoint(client, alice, alice_key):
    client.post("/stake", json=signed(alice_key, amount=100))

    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "stakeledger_total_staked 100.0" in resp.text
    assert 'stakeledger_operations_total{op="STAKE",result="ok"}' in resp.text


# ═══════════════════════════════════════════════════════════════════
# CALLER AUTHENTICATION
# ═══════════════════════════════════════════════════════════════════

def test_unsigned_request_rejected(client, ledger, alice):
    resp = client.post("/stake", json={"sender": alice, "amount": 100})
    assert resp.status_code == 422
    assert ledger.all_stakes(alice) == []


def test_invalid_sender_address(client, alice_key):
    body = signed(alice_key, amount=100)
    body["sender"] = "not-an-address"
    resp = client.post("/stake", json=body)
    assert resp.status_code == 422


def test_sender_must_match_signing_key(client, ledger, alice, bob, bob_key):
    """Bob cannot act for Alice by naming her as sender."""
    body = signed(bob_key, amount=100)
    body["sender"] = alice
    body["signature"] = sign(signing_hash(body), bob_key).hex()

    resp = client.post("/stake", json=body)
    assert resp.status_code == 422
    assert ledger.all_stakes(alice) == []
    assert ledger.all_stakes(bob) == []


def test_tampered_body_rejected(client, ledger, alice, alice_key):
    body = signed(alice_key, amount=100)
    body["amount"] = 1000

    resp = client.post("/stake", json=body)
    assert resp.status_code == 422
    assert ledger.all_stakes(alice) == []


def test_owner_cannot_be_impersonated(client, ledger, owner, alice_key):
    body = signed(alice_key, rate_percent=99)
    body["sender"] = owner

    resp = client.post("/admin/reward_rate", json=body)
    assert resp.status_code == 422
    assert ledger.params.reward_rate_percent == 10


def test_replayed_request_rejected(client, ledger, alice, alice_key):
    body = signed(alice_key, amount=100)

    assert client.post("/stake", json=body).status_code == 200
    assert client.post("/stake", json=body).status_code == 422
    assert len(ledger.all_stakes(alice)) == 1


def test_expired_request_rejected(client, ledger, alice, alice_key):
    body = {
        "amount": 100,
        "sender": alice,
        "pub_key": public_key_from_private(alice_key).hex(),
        "timestamp": int(time.time()) - MAX_REQUEST_AGE - 60,
        "nonce": "00",
    }
    body["signature"] = sign(signing_hash(body), alice_key).hex()

    resp = client.post("/stake", json=body)
    assert resp.status_code == 422
    assert ledger.all_stakes(alice) == []


def test_sender_prefix_must_match_network(client, ledger, alice_key):
    body = sign_request({"amount": 100}, alice_key, prefix="cpc")
    assert body["sender"].startswith("cpc1")

    resp = client.post("/stake", json=body)
    assert resp.status_code == 422
    assert ledger.total_staked() == 0
