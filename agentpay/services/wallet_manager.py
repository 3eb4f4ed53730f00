"""
Wallet manager for custodial agent wallets.

This service ties the wallet store, the key vault and the ledger client
together: it provisions one wallet per user, reads balances and submits
funded transfers with an audit log entry. Payments for the same user are
serialized so two transfers can never spend the same balance snapshot.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from agentpay.core.errors import (
    BalanceUnavailableError,
    DuplicateTxError,
    DuplicateUserError,
    InsufficientFundsError,
    LedgerRejectedError,
    LedgerTransportError,
    PaymentLogError,
    SubmissionError,
)
from agentpay.core.locks import KeyedLock
from agentpay.core.vault import KeyVault, scrub
from agentpay.models.wallets import Network, WalletRecord
from agentpay.services.ledger_client import LedgerClient, TransactionStatus
from agentpay.services.wallet_store import WalletStore
from agentpay.x402.signing import generate_keypair

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalletInfo:
    """Public view of a wallet; never carries key material."""

    user_id: str
    address: str
    network: str
    created: bool = False


class WalletManager:
    """
    Service for custodial wallet operations.

    Payment serialization is per process: run the service with a single
    worker, or two workers could each pass the balance check for the same
    wallet.
    """

    def __init__(
        self,
        store: WalletStore,
        vault: KeyVault,
        ledger: LedgerClient,
        network: Network | str = Network.TESTNET,
        faucet_url: str | None = None,
        key_generator: Callable[[], tuple[bytes, str]] = generate_keypair,
    ):
        """
        Initialize the wallet manager.

        Args:
            store: Durable wallet storage
            vault: Key vault sealing keys at rest
            ledger: Ledger Service client
            network: Network new wallets are created on
            faucet_url: Where empty test wallets can be funded
            key_generator: Returns a fresh (private key, address) pair
        """
        self.store = store
        self.vault = vault
        self.ledger = ledger
        self.network = Network(network)
        self.faucet_url = faucet_url
        self.key_generator = key_generator
        self._payment_locks = KeyedLock()

    async def get_wallet(self, user_id: str) -> WalletInfo | None:
        """
        Look up a user's wallet and mark it as used.

        Args:
            user_id: Opaque user identifier

        Returns:
            WalletInfo, or None if the user has no wallet
        """
        record = await self._load_wallet(user_id)
        if record is None:
            return None
        return self._to_info(record)

    async def get_or_create_wallet(self, user_id: str) -> WalletInfo:
        """
        Return the user's wallet, provisioning one on first use.

        Two concurrent first calls for the same user both end up with the
        single stored wallet: the loser of the insert race re-reads it.

        Args:
            user_id: Opaque user identifier

        Returns:
            WalletInfo with ``created`` set when this call made the wallet
        """
        record, created = await self._get_or_create_record(user_id)
        return self._to_info(record, created=created)

    async def get_balance(self, address: str) -> int | None:
        """
        Get the balance of an address.

        Args:
            address: Wallet address

        Returns:
            Balance in minor units, or None when the ledger could not be
            reached. A failed query is never reported as zero.
        """
        try:
            return await self.ledger.get_balance(address)
        except LedgerTransportError as e:
            logger.warning(f"Balance of {address} is unknown: {e.message}")
            return None

    async def require_balance(self, address: str, amount: int) -> int:
        """
        Check that an address holds at least ``amount``.

        Returns:
            The current balance

        Raises:
            BalanceUnavailableError: If the ledger could not be reached
            InsufficientFundsError: If the balance is below ``amount``
        """
        balance = await self.get_balance(address)
        if balance is None:
            raise BalanceUnavailableError(address)
        if balance < amount:
            raise InsufficientFundsError(
                address=address,
                balance=balance,
                required=amount,
                faucet_url=self.faucet_url,
            )
        return balance

    async def send_payment(
        self,
        user_id: str,
        recipient: str,
        amount: int,
        service: str | None = None,
        on_submitted: Callable[[str], None] | None = None,
    ) -> str:
        """
        Transfer ``amount`` from the user's wallet to ``recipient``.

        The balance is re-checked under the user's payment lock, the key is
        decrypted only for the duration of the submission, and the transfer
        is logged once the ledger accepts it. Submission and logging run to
        completion even if the caller is cancelled, so every transfer that
        reaches the ledger gets its log entry.

        Args:
            user_id: Paying user
            recipient: Recipient address
            amount: Amount in minor units
            service: Optional label of the service paid for
            on_submitted: Called with the transaction id as soon as the
                ledger accepts the transfer, before it is logged

        Returns:
            Ledger transaction id

        Raises:
            InsufficientFundsError: If the wallet cannot cover the amount
            BalanceUnavailableError: If the balance could not be read
            SubmissionError: If the ledger refused or could not take the transfer
            PaymentLogError: If the transfer was submitted but could not be logged
            KeyIntegrityError: If the stored key cannot be opened
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValueError(f"Payment amount must be a positive integer in minor units, got {amount!r}")

        async with self._payment_locks.hold(user_id):
            record, _ = await self._get_or_create_record(user_id)
            await self.require_balance(record.address, amount)

            submission = asyncio.ensure_future(
                self._submit_and_log(user_id, record, recipient, amount, service, on_submitted)
            )
            try:
                tx_id = await asyncio.shield(submission)
            except asyncio.CancelledError:
                # Hold the wallet until the transfer and its log entry settle.
                await asyncio.wait([submission])
                if not submission.cancelled() and submission.exception() is not None:
                    logger.error(
                        f"Payment for user {user_id} failed after cancellation: {submission.exception()}"
                    )
                raise

        logger.info(f"Sent {amount} to {recipient} for user {user_id} | tx: {tx_id}")
        return tx_id

    async def get_transaction_status(self, tx_id: str) -> TransactionStatus:
        """Ask the ledger whether a submitted transfer has settled."""
        return await self.ledger.get_transaction_status(tx_id)

    async def describe_wallet(self, user_id: str) -> dict[str, Any]:
        """
        Summarize a user's wallet for display.

        Returns:
            Dict with address, network, balance (None when unknown) and the
            faucet URL on test networks
        """
        wallet = await self.get_or_create_wallet(user_id)
        balance = await self.get_balance(wallet.address)
        return {
            "user_id": user_id,
            "address": wallet.address,
            "network": wallet.network,
            "balance": balance,
            "faucet_url": self.faucet_url if self.network == Network.TESTNET else None,
        }

    async def _load_wallet(self, user_id: str) -> WalletRecord | None:
        record = await self.store.get_by_user(user_id)
        if record is not None:
            await self.store.touch_last_used(user_id)
        return record

    async def _get_or_create_record(self, user_id: str) -> tuple[WalletRecord, bool]:
        existing = await self._load_wallet(user_id)
        if existing is not None:
            return existing, False

        private_key, address = self.key_generator()
        key_buffer = bytearray(private_key)
        try:
            sealed = self.vault.seal(key_buffer)
        finally:
            scrub(key_buffer)

        try:
            record = await self.store.create(user_id, address, sealed, self.network)
        except DuplicateUserError:
            logger.info(f"Wallet for user {user_id} was created concurrently, re-reading")
            winner = await self._load_wallet(user_id)
            if winner is None:
                raise
            return winner, False

        logger.info(f"Created new wallet for user {user_id}: {address}")
        return record, True

    async def _submit_and_log(
        self,
        user_id: str,
        record: WalletRecord,
        recipient: str,
        amount: int,
        service: str | None,
        on_submitted: Callable[[str], None] | None,
    ) -> str:
        try:
            with self.vault.unsealed(record.encrypted_key) as signing_key:
                tx_id = await self.ledger.submit_transfer(signing_key, recipient, amount)
        except LedgerRejectedError as e:
            raise SubmissionError(
                f"Transaction broadcast failed: {e.message}",
                recipient=recipient,
                amount=amount,
            ) from e
        except LedgerTransportError as e:
            raise SubmissionError(
                f"Ledger unreachable during submission: {e.message}",
                recipient=recipient,
                amount=amount,
                retryable=True,
            ) from e

        if on_submitted is not None:
            on_submitted(tx_id)

        try:
            await self.store.append_payment_log(user_id, tx_id, recipient, amount, service)
        except DuplicateTxError:
            logger.warning(f"Payment {tx_id} was already logged")
        except SQLAlchemyError as e:
            logger.error(f"Payment {tx_id} for user {user_id} was submitted but not logged: {e}")
            raise PaymentLogError(tx_id, str(e)) from e
        return tx_id

    def _to_info(self, record: WalletRecord, created: bool = False) -> WalletInfo:
        return WalletInfo(
            user_id=record.user_id,
            address=record.address,
            network=record.network,
            created=created,
        )
