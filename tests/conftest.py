"""
Pytest configuration and shared fixtures.

This module provides common test fixtures for the wallet database, the
key vault, an in-memory ledger and the services built on top of them.
"""

import asyncio
import itertools
import os
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine

from agentpay.core.config import Settings
from agentpay.core.database import close_db, create_engine, create_session_maker, init_db
from agentpay.core.errors import LedgerRejectedError, LedgerTransportError
from agentpay.core.vault import KeyVault
from agentpay.services.ledger_client import TransactionStatus
from agentpay.services.wallet_manager import WalletManager
from agentpay.services.wallet_store import WalletStore
from agentpay.x402.signing import address_from_key

TEST_ENCRYPTION_SECRET = "test-wallet-encryption-secret-0123456789"
RECIPIENT = "0x000000000000000000000000000000000000dEaD"


class FakeLedger:
    """
    In-memory Ledger Service.

    Balances are keyed by address. Every call yields to the event loop so
    concurrent callers interleave the way they would against a real node.
    """

    def __init__(self):
        self.balances: dict[str, int] = {}
        self.submitted: list[dict] = []
        self.statuses: dict[str, TransactionStatus] = {}
        self.fail_balance = False
        self.reject_submission = False
        self.fail_submission = False
        self._tx_counter = itertools.count(1)

    def fund(self, address: str, amount: int) -> None:
        self.balances[address] = self.balances.get(address, 0) + amount

    async def get_balance(self, address: str) -> int:
        await asyncio.sleep(0)
        if self.fail_balance:
            raise LedgerTransportError("node unreachable")
        return self.balances.get(address, 0)

    async def submit_transfer(self, private_key: bytes, recipient: str, amount: int) -> str:
        await asyncio.sleep(0)
        if self.fail_submission:
            raise LedgerTransportError("connection reset")
        if self.reject_submission:
            raise LedgerRejectedError("nonce too low")

        sender = address_from_key(private_key)
        await asyncio.sleep(0)
        self.balances[sender] = self.balances.get(sender, 0) - amount
        self.balances[recipient] = self.balances.get(recipient, 0) + amount

        tx_id = f"0x{next(self._tx_counter):064x}"
        self.submitted.append({"tx_id": tx_id, "sender": sender, "recipient": recipient, "amount": amount})
        self.statuses[tx_id] = TransactionStatus.PENDING
        return tx_id

    async def get_transaction_status(self, tx_id: str) -> TransactionStatus:
        await asyncio.sleep(0)
        return self.statuses.get(tx_id, TransactionStatus.PENDING)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with a valid encryption secret and a throwaway database."""
    return Settings(
        wallet_encryption_secret=TEST_ENCRYPTION_SECRET,
        database_url=f"sqlite:///{tmp_path}/settings.db",
        network="testnet",
        x402_settlement_wait_ms=0,
        x402_confirmation_wait_ms=0,
        x402_retry_delay_ms=0,
    )


@pytest.fixture
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    Create a test database engine with the wallet tables.

    File-backed so concurrent sessions get their own connections, as they
    would against a real database.
    """
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path}/wallets.db")
    await init_db(engine)
    yield engine
    await close_db(engine)


@pytest.fixture
def store(async_engine) -> WalletStore:
    return WalletStore(create_session_maker(async_engine))


@pytest.fixture(scope="session")
def vault() -> KeyVault:
    """A vault with a random key; scrypt derivation is exercised separately."""
    return KeyVault(os.urandom(32))


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def wallet_manager(store, vault, ledger) -> WalletManager:
    return WalletManager(
        store=store,
        vault=vault,
        ledger=ledger,
        network="testnet",
        faucet_url="https://cronos.org/faucet",
    )
