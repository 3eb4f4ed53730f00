"""
Tests for concurrent payments.

Payments from one wallet must never spend the same balance twice, while
payments from different wallets proceed independently.
"""

import asyncio

import pytest

from agentpay.core.errors import InsufficientFundsError

RECIPIENT = "0x000000000000000000000000000000000000dEaD"


@pytest.mark.asyncio
async def test_same_user_cannot_overspend(wallet_manager, ledger, store):
    wallet = await wallet_manager.get_or_create_wallet("user-1")
    ledger.fund(wallet.address, 5000)

    results = await asyncio.gather(
        wallet_manager.send_payment("user-1", RECIPIENT, 3000),
        wallet_manager.send_payment("user-1", RECIPIENT, 3000),
        return_exceptions=True,
    )

    succeeded = [r for r in results if isinstance(r, str)]
    failed = [r for r in results if isinstance(r, InsufficientFundsError)]
    assert len(succeeded) == 1
    assert len(failed) == 1
    assert failed[0].balance == 2000
    assert len(ledger.submitted) == 1
    assert ledger.balances[wallet.address] == 2000

    _, total = await store.list_payment_log("user-1")
    assert total == 1


@pytest.mark.asyncio
async def test_same_user_payments_within_balance_all_succeed(wallet_manager, ledger):
    wallet = await wallet_manager.get_or_create_wallet("user-1")
    ledger.fund(wallet.address, 3000)

    tx_ids = await asyncio.gather(
        *(wallet_manager.send_payment("user-1", RECIPIENT, 1000) for _ in range(3))
    )

    assert len(set(tx_ids)) == 3
    assert ledger.balances[wallet.address] == 0


@pytest.mark.asyncio
async def test_different_users_pay_independently(wallet_manager, ledger, store):
    a = await wallet_manager.get_or_create_wallet("user-a")
    b = await wallet_manager.get_or_create_wallet("user-b")
    ledger.fund(a.address, 1000)
    ledger.fund(b.address, 1000)

    tx_a, tx_b = await asyncio.gather(
        wallet_manager.send_payment("user-a", RECIPIENT, 1000),
        wallet_manager.send_payment("user-b", RECIPIENT, 1000),
    )

    assert tx_a != tx_b
    assert (await store.get_payment(tx_a)).user_id == "user-a"
    assert (await store.get_payment(tx_b)).user_id == "user-b"


@pytest.mark.asyncio
async def test_first_payment_for_new_user_creates_one_wallet(wallet_manager, ledger, store):
    results = await asyncio.gather(
        *(wallet_manager.send_payment("fresh", RECIPIENT, 1) for _ in range(3)),
        return_exceptions=True,
    )

    assert all(isinstance(r, InsufficientFundsError) for r in results)
    assert len({r.address for r in results}) == 1
