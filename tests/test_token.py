import pytest

from stakeledger.core.token import TokenLedger, TokenCustody


def test_mint_and_supply(token):
    token.mint("stk1a", 100)
    token.mint("stk1b", 50)
    token.mint("stk1a", 1)

    assert token.balance_of("stk1a") == 101
    assert token.total_supply() == 151


@pytest.mark.parametrize("amount", [0, -1])
def test_mint_rejects_non_positive(token, amount):
    with pytest.raises(ValueError):
        token.mint("stk1a", amount)


def test_transfer(token):
    token.mint("stk1a", 100)

    assert token.transfer("stk1a", "stk1b", 30) is True
    assert token.balance_of("stk1a") == 70
    assert token.balance_of("stk1b") == 30

    assert token.transfer("stk1a", "stk1b", 71) is False
    assert token.transfer("stk1a", "stk1b", -1) is False
    assert token.balance_of("stk1a") == 70


def test_self_transfer_keeps_balance(token):
    token.mint("stk1a", 100)
    assert token.transfer("stk1a", "stk1a", 60) is True
    assert token.balance_of("stk1a") == 100


def test_transfer_from_spends_allowance(token):
    token.mint("stk1a", 100)
    assert token.approve("stk1a", "stk1spender", 40) is True

    assert token.transfer_from("stk1spender", "stk1a", "stk1c", 25) is True
    assert token.allowance("stk1a", "stk1spender") == 15
    assert token.balance_of("stk1c") == 25

    assert token.transfer_from("stk1spender", "stk1a", "stk1c", 16) is False
    assert token.balance_of("stk1a") == 75


def test_transfer_from_needs_balance(token):
    token.mint("stk1a", 10)
    token.approve("stk1a", "stk1spender", 100)

    assert token.transfer_from("stk1spender", "stk1a", "stk1c", 11) is False
    assert token.allowance("stk1a", "stk1spender") == 100


def test_approve_rejects_negative(token):
    assert token.approve("stk1a", "stk1spender", -1) is False
    assert token.allowance("stk1a", "stk1spender") == 0


def test_raising_hook_aborts_transfer(token):
    token.mint("stk1a", 100)

    def veto(sender, recipient, amount):
        raise RuntimeError("veto")

    token.hooks.append(veto)
    with pytest.raises(RuntimeError):
        token.transfer("stk1a", "stk1b", 10)

    assert token.balance_of("stk1a") == 100
    assert token.balance_of("stk1b") == 0


def test_custody_pull_and_push(token):
    custody = TokenCustody(token, "stk1custody")
    token.mint("stk1a", 100)
    token.approve("stk1a", custody.address, 60)

    assert custody.pull_from("stk1a", 60) is True
    assert custody.pull_from("stk1a", 1) is False
    assert custody.balance() == 60

    assert custody.push_to("stk1b", 20) is True
    assert custody.push_to("stk1b", 41) is False
    assert custody.balance() == 40
    assert token.balance_of("stk1b") == 20


def test_balances_persist(db_path, token):
    token.mint("stk1a", 5)

    other = TokenLedger(token.db)
    assert other.balance_of("stk1a") == 5
