"""
Tests for the wallet manager.

This module tests wallet provisioning, balance checks and payment
submission against an in-memory ledger.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from agentpay.core.errors import (
    BalanceUnavailableError,
    DuplicateTxError,
    InsufficientFundsError,
    KeyIntegrityError,
    PaymentLogError,
    SubmissionError,
)
from agentpay.services.ledger_client import TransactionStatus
from agentpay.services.wallet_manager import WalletManager
from agentpay.x402.signing import address_from_key

RECIPIENT = "0x000000000000000000000000000000000000dEaD"


class TestWalletProvisioning:
    """Test one-wallet-per-user provisioning."""

    @pytest.mark.asyncio
    async def test_first_call_creates_wallet(self, wallet_manager, store):
        wallet = await wallet_manager.get_or_create_wallet("user-1")

        assert wallet.created is True
        assert wallet.user_id == "user-1"
        assert wallet.network == "testnet"
        assert (await store.get_by_user("user-1")).address == wallet.address

    @pytest.mark.asyncio
    async def test_second_call_returns_same_wallet(self, wallet_manager):
        first = await wallet_manager.get_or_create_wallet("user-1")
        second = await wallet_manager.get_or_create_wallet("user-1")

        assert second.created is False
        assert second.address == first.address

    @pytest.mark.asyncio
    async def test_users_get_distinct_wallets(self, wallet_manager):
        a = await wallet_manager.get_or_create_wallet("user-a")
        b = await wallet_manager.get_or_create_wallet("user-b")

        assert a.address != b.address

    @pytest.mark.asyncio
    async def test_stored_key_is_sealed_and_matches_address(self, wallet_manager, store, vault):
        wallet = await wallet_manager.get_or_create_wallet("user-1")
        record = await store.get_by_user("user-1")

        assert wallet.address not in record.encrypted_key
        assert address_from_key(vault.open(record.encrypted_key)) == wallet.address

    @pytest.mark.asyncio
    async def test_get_wallet_missing_user(self, wallet_manager):
        assert await wallet_manager.get_wallet("nobody") is None

    @pytest.mark.asyncio
    async def test_get_wallet_updates_last_used(self, wallet_manager, store):
        await wallet_manager.get_or_create_wallet("user-1")
        assert (await store.get_by_user("user-1")).last_used_at is None

        await wallet_manager.get_wallet("user-1")

        assert (await store.get_by_user("user-1")).last_used_at is not None

    @pytest.mark.asyncio
    async def test_concurrent_first_calls_share_one_wallet(self, wallet_manager):
        wallets = await asyncio.gather(
            *(wallet_manager.get_or_create_wallet("user-1") for _ in range(5))
        )

        assert len({w.address for w in wallets}) == 1

    @pytest.mark.asyncio
    async def test_lost_insert_race_rereads_winner(self, store, vault, ledger):
        manager = WalletManager(store, vault, ledger)
        winner = await manager.get_or_create_wallet("user-1")
        record = await store.get_by_user("user-1")

        # Another process inserts between our lookup and our insert
        manager._load_wallet = AsyncMock(side_effect=[None, record])
        result = await manager.get_or_create_wallet("user-1")

        assert result.address == winner.address
        assert result.created is False


class TestBalances:
    """Test balance lookups."""

    @pytest.mark.asyncio
    async def test_get_balance(self, wallet_manager, ledger):
        wallet = await wallet_manager.get_or_create_wallet("user-1")
        ledger.fund(wallet.address, 5000)

        assert await wallet_manager.get_balance(wallet.address) == 5000

    @pytest.mark.asyncio
    async def test_unreachable_ledger_is_unknown_not_zero(self, wallet_manager, ledger):
        wallet = await wallet_manager.get_or_create_wallet("user-1")
        ledger.fail_balance = True

        assert await wallet_manager.get_balance(wallet.address) is None

    @pytest.mark.asyncio
    async def test_require_balance_unknown(self, wallet_manager, ledger):
        wallet = await wallet_manager.get_or_create_wallet("user-1")
        ledger.fail_balance = True

        with pytest.raises(BalanceUnavailableError):
            await wallet_manager.require_balance(wallet.address, 1)

    @pytest.mark.asyncio
    async def test_require_balance_short_includes_faucet(self, wallet_manager, ledger):
        wallet = await wallet_manager.get_or_create_wallet("user-1")
        ledger.fund(wallet.address, 1999)

        with pytest.raises(InsufficientFundsError) as exc_info:
            await wallet_manager.require_balance(wallet.address, 2000)

        error = exc_info.value
        assert error.balance == 1999
        assert error.required == 2000
        assert error.shortfall == 1
        assert error.faucet_url == "https://cronos.org/faucet"
        assert "https://cronos.org/faucet" in error.message

    @pytest.mark.asyncio
    async def test_describe_wallet(self, wallet_manager, ledger):
        wallet = await wallet_manager.get_or_create_wallet("user-1")
        ledger.fund(wallet.address, 42)

        info = await wallet_manager.describe_wallet("user-1")

        assert info == {
            "user_id": "user-1",
            "address": wallet.address,
            "network": "testnet",
            "balance": 42,
            "faucet_url": "https://cronos.org/faucet",
        }

    @pytest.mark.asyncio
    async def test_describe_wallet_on_mainnet_has_no_faucet(self, store, vault, ledger):
        manager = WalletManager(store, vault, ledger, network="mainnet", faucet_url=None)

        info = await manager.describe_wallet("user-1")

        assert info["network"] == "mainnet"
        assert info["faucet_url"] is None


class TestSendPayment:
    """Test funded transfer submission."""

    @pytest.fixture
    async def funded(self, wallet_manager, ledger):
        wallet = await wallet_manager.get_or_create_wallet("user-1")
        ledger.fund(wallet.address, 5000)
        return wallet

    @pytest.mark.asyncio
    async def test_exact_balance_succeeds(self, wallet_manager, ledger, store, funded):
        tx_id = await wallet_manager.send_payment("user-1", RECIPIENT, 5000, service="quotes")

        assert ledger.submitted == [
            {"tx_id": tx_id, "sender": funded.address, "recipient": RECIPIENT, "amount": 5000}
        ]
        entry = await store.get_payment(tx_id)
        assert entry.user_id == "user-1"
        assert entry.amount == 5000
        assert entry.service == "quotes"

    @pytest.mark.asyncio
    async def test_one_short_fails_without_submitting(self, wallet_manager, ledger, store, funded):
        with pytest.raises(InsufficientFundsError):
            await wallet_manager.send_payment("user-1", RECIPIENT, 5001)

        assert ledger.submitted == []
        _, total = await store.list_payment_log("user-1")
        assert total == 0

    @pytest.mark.asyncio
    async def test_unknown_balance_fails_without_submitting(self, wallet_manager, ledger, funded):
        ledger.fail_balance = True

        with pytest.raises(BalanceUnavailableError):
            await wallet_manager.send_payment("user-1", RECIPIENT, 1)

        assert ledger.submitted == []

    @pytest.mark.asyncio
    async def test_creates_wallet_for_new_user(self, wallet_manager, ledger):
        with pytest.raises(InsufficientFundsError) as exc_info:
            await wallet_manager.send_payment("new-user", RECIPIENT, 1)

        assert exc_info.value.balance == 0
        assert await wallet_manager.get_wallet("new-user") is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -1, 1.5, True, "100"])
    async def test_invalid_amount(self, wallet_manager, ledger, funded, amount):
        with pytest.raises(ValueError):
            await wallet_manager.send_payment("user-1", RECIPIENT, amount)

        assert ledger.submitted == []

    @pytest.mark.asyncio
    async def test_rejected_submission(self, wallet_manager, ledger, store, funded):
        ledger.reject_submission = True

        with pytest.raises(SubmissionError) as exc_info:
            await wallet_manager.send_payment("user-1", RECIPIENT, 100)

        assert exc_info.value.retryable is False
        assert exc_info.value.recipient == RECIPIENT
        assert exc_info.value.amount == 100
        _, total = await store.list_payment_log("user-1")
        assert total == 0

    @pytest.mark.asyncio
    async def test_unreachable_ledger_on_submission_is_retryable(self, wallet_manager, ledger, funded):
        ledger.fail_submission = True

        with pytest.raises(SubmissionError) as exc_info:
            await wallet_manager.send_payment("user-1", RECIPIENT, 100)

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_tampered_key_is_integrity_error(self, wallet_manager, ledger, store, funded):
        record = await store.get_by_user("user-1")
        nonce, tag, ciphertext = record.encrypted_key.split(":")
        flipped = format(int(ciphertext[0], 16) ^ 1, "x") + ciphertext[1:]

        async def tampered(user_id):
            record.encrypted_key = f"{nonce}:{tag}:{flipped}"
            return record

        store.get_by_user = tampered

        with pytest.raises(KeyIntegrityError):
            await wallet_manager.send_payment("user-1", RECIPIENT, 100)

        assert ledger.submitted == []

    @pytest.mark.asyncio
    async def test_duplicate_log_entry_is_tolerated(self, wallet_manager, ledger, store, funded):
        store.append_payment_log = AsyncMock(side_effect=DuplicateTxError("0x1"))

        tx_id = await wallet_manager.send_payment("user-1", RECIPIENT, 100)

        assert tx_id == ledger.submitted[0]["tx_id"]

    @pytest.mark.asyncio
    async def test_log_failure_after_submission_carries_tx_id(self, wallet_manager, ledger, store, funded):
        store.append_payment_log = AsyncMock(side_effect=SQLAlchemyError("disk I/O error"))
        submitted = []

        with pytest.raises(PaymentLogError) as exc_info:
            await wallet_manager.send_payment("user-1", RECIPIENT, 100, on_submitted=submitted.append)

        assert exc_info.value.tx_id == ledger.submitted[0]["tx_id"]
        assert submitted == [exc_info.value.tx_id]

    @pytest.mark.asyncio
    async def test_cancelled_after_submission_still_logs(self, wallet_manager, ledger, store, funded):
        append = store.append_payment_log
        logging_started = asyncio.Event()

        async def slow_append(*args, **kwargs):
            logging_started.set()
            await asyncio.sleep(0.2)
            return await append(*args, **kwargs)

        store.append_payment_log = slow_append
        submitted = []
        payment = asyncio.create_task(
            wallet_manager.send_payment("user-1", RECIPIENT, 100, on_submitted=submitted.append)
        )
        await logging_started.wait()
        payment.cancel()

        with pytest.raises(asyncio.CancelledError):
            await payment

        assert submitted == [ledger.submitted[0]["tx_id"]]
        assert await store.get_payment(submitted[0]) is not None
        assert not wallet_manager._payment_locks.locked("user-1")

    @pytest.mark.asyncio
    async def test_wallet_row_read_once_per_payment(self, wallet_manager, store, funded):
        store.get_by_user = AsyncMock(wraps=store.get_by_user)
        store.touch_last_used = AsyncMock(wraps=store.touch_last_used)

        await wallet_manager.send_payment("user-1", RECIPIENT, 100)

        assert store.get_by_user.await_count == 1
        assert store.touch_last_used.await_count == 1

    @pytest.mark.asyncio
    async def test_transaction_status(self, wallet_manager, ledger, funded):
        tx_id = await wallet_manager.send_payment("user-1", RECIPIENT, 100)
        assert await wallet_manager.get_transaction_status(tx_id) == TransactionStatus.PENDING

        ledger.statuses[tx_id] = TransactionStatus.SUCCESS
        assert await wallet_manager.get_transaction_status(tx_id) == TransactionStatus.SUCCESS
